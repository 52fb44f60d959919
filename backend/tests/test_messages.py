"""Unit tests for the outcome message catalog and locale selection."""

import pytest

from portam.config import Settings
from portam.messages import DOMAIN_DENIALS, MESSAGES, OutcomeKind, get_message, render


class TestCatalog:

    def test_every_outcome_has_a_message(self):
        assert set(MESSAGES) == set(OutcomeKind)

    def test_status_tags_are_distinct(self):
        tags = [record.status for record in MESSAGES.values()]
        assert len(tags) == len(set(tags))

    def test_status_tag_matches_kind(self):
        for kind, record in MESSAGES.items():
            assert record.status == kind.value

    def test_denials_have_distinct_messages(self):
        texts = [get_message(kind).msg["en"] for kind in DOMAIN_DENIALS]
        assert len(texts) == len(set(texts))
        assert len(DOMAIN_DENIALS) == 9

    def test_denials_are_client_errors(self):
        for kind in DOMAIN_DENIALS:
            record = get_message(kind)
            assert record.success is False
            assert 400 <= record.code < 500

    def test_all_locales_present(self):
        for record in MESSAGES.values():
            assert set(record.msg) == {"ca", "en", "es"}
            assert all(record.msg.values())

    def test_success_and_internal_codes(self):
        assert get_message(OutcomeKind.VALIDATION_SUCCESS).code == 200
        assert get_message(OutcomeKind.VALIDATION_SUCCESS).success is True
        assert get_message(OutcomeKind.INTERNAL_ERROR).code == 500
        assert get_message(OutcomeKind.MISSING_PARAMETERS).code == 400


class TestRender:

    def test_render_in_locale(self):
        body = render(OutcomeKind.NO_USES_LEFT, "es")
        assert body == {
            "success": False,
            "code": 410,
            "status": "ERROR_NO_USES_LEFT",
            "msg": "No te quedan viajes disponibles",
        }

    def test_render_merges_data(self):
        body = render(OutcomeKind.VALIDATION_SUCCESS, "ca", uses_left=3, link=True)
        assert body["msg"] == "Validació correcta"
        assert body["uses_left"] == 3
        assert body["link"] is True

    def test_unknown_locale_falls_back_to_english(self):
        assert render(OutcomeKind.SUPPORT_INACTIVE, "fr")["msg"] == "Support inactive"


class TestLocaleResolution:

    @pytest.mark.parametrize("requested, expected", [
        ("es", "es"),
        ("CA", "ca"),
        ("es-ES", "es"),
        ("ca-ES,ca;q=0.9,en;q=0.8", "ca"),
        ("fr-FR,es;q=0.5", "en"),
        (None, "en"),
        ("", "en"),
    ])
    def test_resolve_locale(self, requested, expected):
        assert Settings.resolve_locale(requested) == expected
