"""Localized message catalog for user-visible errors and responses.

Provides:
- Language: supported locales (English, French)
- translate(): look up a message key in the requested language
- resolve_language(): pick a language from a claim, header, or the default

Every user-facing error and status message goes through this catalog so
that clients receive text in the caller's preferred language.
"""

from __future__ import annotations

from enum import Enum

import structlog

from src.app.config import get_settings

logger = structlog.get_logger(__name__)


class Language(str, Enum):
    ENGLISH = "en"
    FRENCH = "fr"


# ── Message Catalog ──────────────────────────────────────────────────────────

MESSAGES: dict[str, dict[Language, str]] = {
    # Authentication
    "auth.not_authenticated": {
        Language.ENGLISH: "Not authenticated",
        Language.FRENCH: "Non authentifié",
    },
    "auth.invalid_credentials": {
        Language.ENGLISH: "Could not validate credentials",
        Language.FRENCH: "Impossible de valider les identifiants",
    },
    "auth.invalid_login": {
        Language.ENGLISH: "Invalid email or password",
        Language.FRENCH: "Email ou mot de passe invalide",
    },
    "auth.user_not_found": {
        Language.ENGLISH: "User not found or inactive",
        Language.FRENCH: "Utilisateur introuvable ou inactif",
    },
    # Configuration
    "config.tenant_base_url_missing": {
        Language.ENGLISH: "Tenant database base URL is not configured",
        Language.FRENCH: "L'URL de base des bases de données des écoles n'est pas configurée",
    },
    # Simulation
    "simulation.forbidden_role": {
        Language.ENGLISH: "Only school admins, professors and super admins can simulate a student",
        Language.FRENCH: "Seuls les administrateurs d'école, les professeurs et les super administrateurs peuvent simuler un étudiant",
    },
    "simulation.already_in_simulation": {
        Language.ENGLISH: "You are already in simulation mode. End the current simulation first.",
        Language.FRENCH: "Vous êtes déjà en mode simulation. Terminez d'abord la simulation en cours.",
    },
    "simulation.tenant_required": {
        Language.ENGLISH: "A school must be selected to start a simulation",
        Language.FRENCH: "Une école doit être sélectionnée pour démarrer une simulation",
    },
    "simulation.tenant_not_found": {
        Language.ENGLISH: "School not found",
        Language.FRENCH: "École introuvable",
    },
    "simulation.student_not_found": {
        Language.ENGLISH: "Student not found",
        Language.FRENCH: "Étudiant introuvable",
    },
    "simulation.account_deactivated": {
        Language.ENGLISH: "This student account is deactivated",
        Language.FRENCH: "Ce compte étudiant est désactivé",
    },
    "simulation.session_not_found": {
        Language.ENGLISH: "Simulation session not found",
        Language.FRENCH: "Session de simulation introuvable",
    },
    "simulation.session_already_ended": {
        Language.ENGLISH: "This simulation session has already ended",
        Language.FRENCH: "Cette session de simulation est déjà terminée",
    },
    "simulation.write_blocked": {
        Language.ENGLISH: "This action is not allowed in simulation mode. You are viewing the platform as a student in read-only mode.",
        Language.FRENCH: "Cette action n'est pas autorisée en mode simulation. Vous consultez la plateforme en tant qu'étudiant en lecture seule.",
    },
    "simulation.unknown_counter": {
        Language.ENGLISH: "Unknown activity counter: {counter}",
        Language.FRENCH: "Compteur d'activité inconnu : {counter}",
    },
    "simulation.started": {
        Language.ENGLISH: "Simulation started successfully",
        Language.FRENCH: "Simulation démarrée avec succès",
    },
    "simulation.ended": {
        Language.ENGLISH: "Simulation ended successfully",
        Language.FRENCH: "Simulation terminée avec succès",
    },
    "simulation.no_active_session": {
        Language.ENGLISH: "No active simulation session. You are already in normal mode.",
        Language.FRENCH: "Aucune session de simulation active. Vous êtes déjà en mode normal.",
    },
    "simulation.cleanup_done": {
        Language.ENGLISH: "{count} stuck simulation session(s) ended",
        Language.FRENCH: "{count} session(s) de simulation bloquée(s) terminée(s)",
    },
    # Migrations
    "migration.not_found": {
        Language.ENGLISH: "Migration {name} is unknown, irreversible or not applied",
        Language.FRENCH: "La migration {name} est inconnue, irréversible ou non appliquée",
    },
    "migration.db_name_required": {
        Language.ENGLISH: "A tenant database name is required for tenant migrations",
        Language.FRENCH: "Un nom de base de données d'école est requis pour les migrations d'école",
    },
    # Generic
    "errors.internal": {
        Language.ENGLISH: "Internal server error",
        Language.FRENCH: "Erreur interne du serveur",
    },
}


def resolve_language(
    preferred: str | None = None,
    accept_language: str | None = None,
) -> Language:
    """Pick the response language.

    The credential's preferred language wins, then the first supported
    entry of an Accept-Language header, then the configured default.
    """
    if preferred:
        try:
            return Language(preferred.lower())
        except ValueError:
            pass

    if accept_language:
        for part in accept_language.split(","):
            code = part.split(";")[0].strip().lower()[:2]
            try:
                return Language(code)
            except ValueError:
                continue

    try:
        return Language(get_settings().DEFAULT_LANGUAGE)
    except ValueError:
        return Language.FRENCH


def translate(key: str, language: Language | str | None = None, **params: object) -> str:
    """Return the message for ``key`` in ``language`` with params substituted.

    Unknown keys are returned as-is so a missing catalog entry never turns
    into a server error.
    """
    lang = language if isinstance(language, Language) else resolve_language(language)
    entry = MESSAGES.get(key)
    if entry is None:
        logger.warning("message_key_missing", key=key)
        return key

    template = entry.get(lang) or entry[Language.ENGLISH]
    if params:
        return template.format(**params)
    return template
