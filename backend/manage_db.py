#!/usr/bin/env python3
"""
Database management utility for the PORTA'M validation service.

Usage:
    python manage_db.py init      - Create tables and the demo network
    python manage_db.py show      - Show zones, stations and titles
    python manage_db.py add_zone  - Add a new zone
    python manage_db.py assign    - Issue a title to a rider and activate it
    python manage_db.py history   - Show the validations of a rider
"""

import sys
import os
sys.path.append(os.path.dirname(os.path.abspath(__file__)))

from sqlalchemy import select

from portam.cache import get_zone_cache
from portam.config import settings
from portam.database import DatabaseManager, StationDB, StationZoneDB, TitleDB, ZoneDB
from portam.services import get_validation_engine


def init_database():
    """Initialize database with the demo network."""
    print("Initializing database...")
    db = DatabaseManager()
    db.init_default_network()
    print("Database initialized successfully!")
    show_network()


def show_network():
    """Display zones, stations and titles."""
    db = DatabaseManager()
    session = db.get_session()
    try:
        zones = session.scalars(select(ZoneDB).order_by(ZoneDB.id)).all()
        stations = session.scalars(select(StationDB).order_by(StationDB.id)).all()
        station_zones = {}
        for link in session.scalars(select(StationZoneDB)).all():
            station_zones.setdefault(link.station_id, []).append(link.zone_id)
        titles = session.scalars(select(TitleDB).order_by(TitleDB.id)).all()
    finally:
        session.close()

    print("\n" + "="*60)
    print("ZONES")
    print("="*60)
    print(", ".join(f"{zone.id} ({zone.name})" for zone in zones) or "No zones")

    print("\n" + "="*60)
    print("STATIONS")
    print("="*60)
    print(f"{'ID':<6} {'Name':<24} {'Zones':<12} {'Open':<6}")
    print("-"*50)
    for station in stations:
        zone_list = ",".join(str(z) for z in sorted(station_zones.get(station.id, [])))
        print(f"{station.id:<6} {station.name:<24} {zone_list:<12} {'yes' if station.available else 'no':<6}")

    print("\n" + "="*60)
    print("TITLES")
    print("="*60)
    print(f"{'ID':<4} {'Name':<12} {'Zones':<6} {'Uses':<6} {'Days':<6} {'Link':<6} {'Re-entry':<8}")
    print("-"*52)

    def fmt(value):
        return "-" if value is None else str(value)

    for title in titles:
        print(
            f"{title.id:<4} {title.name:<12} {title.num_zones:<6} {fmt(title.uses):<6} "
            f"{fmt(title.expiration):<6} {fmt(title.link):<6} {fmt(title.re_entry):<8}"
        )
    print("="*60)


def add_new_zone():
    """
    Add a new zone interactively.

    Clears the shared zone catalog in Redis and in this process. A running
    server keeps its in-memory copy until ZONES_CACHE_TTL elapses, so new
    zones reach first-use initialization only after that delay (or a restart).
    """
    print("\nADD NEW ZONE")
    print("-"*30)

    try:
        db = DatabaseManager()
        zone_id = int(input("Enter new zone id: "))
        name = input("Enter zone name (blank for default): ").strip() or None

        db.add_zone(zone_id, name)
        # Title initialisation reads the zone catalog from the cache
        get_zone_cache().invalidate()

        print(f"\n✓ Zone {zone_id} added successfully!")
        print(f"  Running servers pick it up within {settings.ZONES_CACHE_TTL}s or on restart.")

    except ValueError:
        print("Invalid input! Please enter numbers only.")
    except Exception as e:
        print(f"Error adding zone: {e}")


def assign_title():
    """Issue a title to a rider and make it their active one."""
    print("\nASSIGN TITLE")
    print("-"*30)

    try:
        db = DatabaseManager()
        user_id = int(input("Enter user id: "))
        title_id = int(input("Enter title id: "))

        user_title_id = db.assign_title(user_id, title_id)
        db.activate_user_title(user_title_id)

        print(f"✓ User title {user_title_id} issued and activated for user {user_id}")

    except ValueError as e:
        print(f"Invalid input: {e}")
    except Exception as e:
        print(f"Error assigning title: {e}")


def show_history():
    """Display the latest validations of a rider."""
    try:
        user_id = int(input("Enter user id: "))
    except ValueError:
        print("Invalid input! Please enter numbers only.")
        return

    validations = get_validation_engine().history(user_id, settings.HISTORY_LIMIT)

    print(f"\n{'ID':<8} {'Timestamp (UTC)':<28} {'Station':<8} {'Suport':<14} {'Title':<6}")
    print("-"*66)
    for validation in validations:
        print(
            f"{validation.id:<8} {validation.timestamp.isoformat():<28} "
            f"{validation.station_id:<8} {validation.suport_id:<14} {validation.user_title_id:<6}"
        )
    print(f"Total validations shown: {len(validations)}")


def main():
    """Main entry point."""
    if len(sys.argv) < 2:
        print(__doc__)
        return

    command = sys.argv[1].lower()

    commands = {
        'init': init_database,
        'show': show_network,
        'add_zone': add_new_zone,
        'assign': assign_title,
        'history': show_history
    }

    if command in commands:
        commands[command]()
    else:
        print(f"Unknown command: {command}")
        print(__doc__)


if __name__ == "__main__":
    main()
