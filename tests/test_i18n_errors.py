"""Tests for the message catalog and typed errors.

Covers:
- translate() in both languages, parameter substitution, unknown keys
- resolve_language() precedence
- error status codes, machine codes and localized messages
"""

from __future__ import annotations

import pytest

from src.app.core.errors import (
    AlreadySimulatingError,
    AppError,
    AuthenticationError,
    BadRequestError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    WriteBlockedError,
)
from src.app.core.i18n import MESSAGES, Language, resolve_language, translate

# ── Catalog ───────────────────────────────────────────────────────────────


class TestTranslate:
    def test_every_key_has_both_languages(self):
        for key, entry in MESSAGES.items():
            assert set(entry) == {Language.ENGLISH, Language.FRENCH}, key

    def test_english_and_french(self):
        assert translate("simulation.ended", "en") == "Simulation ended successfully"
        assert translate("simulation.ended", Language.FRENCH) == "Simulation terminée avec succès"

    def test_params_are_substituted(self):
        assert translate("simulation.cleanup_done", "en", count=3) == "3 stuck simulation session(s) ended"
        assert "modules_read" in translate("simulation.unknown_counter", "fr", counter="modules_read")

    def test_unknown_key_is_returned_as_is(self):
        assert translate("nope.missing", "en") == "nope.missing"

    def test_unsupported_language_falls_back_to_default(self):
        # Default language is French
        assert translate("simulation.ended", "de") == "Simulation terminée avec succès"


class TestResolveLanguage:
    def test_preferred_wins_over_header(self):
        assert resolve_language("en", "fr-FR,fr;q=0.9") is Language.ENGLISH

    def test_header_used_without_preference(self):
        assert resolve_language(None, "de-DE, en-GB;q=0.8") is Language.ENGLISH

    def test_preferred_is_case_insensitive(self):
        assert resolve_language("FR") is Language.FRENCH

    def test_default_when_nothing_matches(self):
        assert resolve_language("xx", "de") is Language.FRENCH
        assert resolve_language() is Language.FRENCH


# ── Errors ────────────────────────────────────────────────────────────────


@pytest.mark.parametrize(
    ("error", "status_code", "code"),
    [
        (AuthenticationError(), 401, "NOT_AUTHENTICATED"),
        (ForbiddenError(), 403, "FORBIDDEN"),
        (WriteBlockedError(), 403, "WRITE_BLOCKED"),
        (BadRequestError("simulation.tenant_required"), 400, "BAD_REQUEST"),
        (AlreadySimulatingError(), 400, "ALREADY_IN_SIMULATION"),
        (InvalidStateError(), 400, "SESSION_ALREADY_ENDED"),
        (NotFoundError("simulation.student_not_found"), 404, "NOT_FOUND"),
        (AppError(), 500, "INTERNAL_ERROR"),
    ],
)
def test_error_status_and_code(error, status_code, code):
    assert error.status_code == status_code
    assert error.code == code


class TestErrorMessages:
    def test_message_follows_requested_language(self):
        error = WriteBlockedError()
        assert error.message("en").startswith("This action is not allowed")
        assert error.message("fr").startswith("Cette action")

    def test_explicit_key_and_params(self):
        error = NotFoundError("migration.not_found", name="20250101-a")
        assert error.message_key == "migration.not_found"
        assert "20250101-a" in error.message("en")

    def test_subclasses_are_catchable_as_base(self):
        with pytest.raises(ForbiddenError):
            raise WriteBlockedError()
        with pytest.raises(BadRequestError):
            raise AlreadySimulatingError()
