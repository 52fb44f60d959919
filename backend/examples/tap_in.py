"""
Tap simulator for the PORTA'M validation service.

Posts taps to a running service and prints the outcome, so a trip with
transfers can be replayed from the command line.
"""

import sys

import requests


def tap(base_url: str, suport: int, station: int, lang: str = "en") -> dict:
    """
    Validate one tap via the API.

    Args:
        base_url: API base URL
        suport: UID of the tapped support
        station: Station where the tap happens
        lang: Locale of the returned message

    Returns:
        Decoded response body
    """
    response = requests.post(
        f"{base_url}/api/validation",
        json={"suport": suport, "station": station},
        params={"lang": lang},
        timeout=10,
    )
    body = response.json()

    mark = "✓" if body.get("success") else "✗"
    line = f"{mark} [{response.status_code} {body['status']}] {body['msg']}"
    if body.get("success"):
        uses = "unlimited" if body.get("uses_left") is None else body["uses_left"]
        line += f" | validation {body['validation_id']} | uses left: {uses}"
        if body.get("link"):
            line += " | free transfer"
    print(line)
    return body


def replay_trip(base_url: str, suport: int, stations: list, lang: str = "en"):
    """Tap the same support at each station in order."""
    print(f"Replaying trip of suport {suport} through stations {stations}")
    for station in stations:
        tap(base_url, suport, station, lang)


def show_history(base_url: str, user_id: int):
    response = requests.get(f"{base_url}/api/validation/history/{user_id}", timeout=10)
    data = response.json()
    print(f"\nValidations of user {user_id}:")
    for validation in data.get("validations", []):
        print(f"  {validation['timestamp']}  station {validation['station_id']}  title {validation['user_title_id']}")


def show_usage():
    """Show usage instructions."""
    print("=" * 60)
    print("TAP SIMULATOR")
    print("=" * 60)
    print("\nUsage:")
    print("  python tap_in.py <suport> <station> [<station> ...]   # Replay a trip")
    print("  python tap_in.py history <user_id>                   # Show validations")
    print("\nEnvironment:")
    print("  PORTAM_URL   Service base URL (default http://localhost:8000)")
    print("  PORTAM_LANG  Message locale: ca, en or es (default en)")
    print("\nExample - Tap support 1001 at station 3 via curl:")
    print('  curl -X POST http://localhost:8000/api/validation \\')
    print('    -H "Content-Type: application/json" \\')
    print('    -d \'{"suport": 1001, "station": 3}\'')
    print("\n" + "=" * 60)


if __name__ == "__main__":
    import os

    base_url = os.getenv("PORTAM_URL", "http://localhost:8000")
    lang = os.getenv("PORTAM_LANG", "en")

    try:
        if len(sys.argv) > 2 and sys.argv[1].lower() == "history":
            show_history(base_url, int(sys.argv[2]))
        elif len(sys.argv) > 2:
            replay_trip(base_url, int(sys.argv[1]), [int(s) for s in sys.argv[2:]], lang)
        else:
            show_usage()
    except ValueError:
        print("Invalid input. Please enter numbers only.")
    except requests.RequestException as e:
        print(f"Could not reach {base_url}: {e}")
