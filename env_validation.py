"""Environment variable validation and configuration helpers."""

import os
import logging
from typing import Dict

logger = logging.getLogger(__name__)

DEFAULT_TOTAL_POSSIBLE_NOTES = 36


class EnvironmentError(Exception):
    """Raised when required environment variables are missing or invalid."""
    pass


def validate_environment() -> None:
    """Validate critical environment variables.

    Raises EnvironmentError if validation fails.
    """
    defaults = {
        "DB_PATH": os.getenv("DB_PATH") or "data.db",
    }

    # Apply defaults before validation so dependent modules see consistent values.
    for var, value in defaults.items():
        if not os.getenv(var):
            os.environ[var] = value
            logger.info("Environment variable %s not set; using default '%s'", var, value)

    optional_vars: Dict[str, str] = {
        "SCORES_REMOTE_URL": "Remote document store for session score documents",
        "TRANSPOSITION_ENABLED": "Treat players as advanced by default",
        "PROFICIENCY_BANDS_PATH": "JSON file overriding the proficiency band table",
    }

    url = os.getenv("SCORES_REMOTE_URL")
    if url and not (url.startswith("http://") or url.startswith("https://")):
        raise EnvironmentError(f"Invalid URL format for SCORES_REMOTE_URL: {url}")

    raw_total = os.getenv("PROFICIENCY_TOTAL_NOTES")
    if raw_total:
        try:
            total = int(raw_total)
        except ValueError as exc:
            raise EnvironmentError(
                f"PROFICIENCY_TOTAL_NOTES must be an integer: {raw_total}"
            ) from exc
        if total <= 0:
            raise EnvironmentError("PROFICIENCY_TOTAL_NOTES must be positive")

    for var, description in optional_vars.items():
        if not os.getenv(var):
            logger.debug("Optional environment variable not set: %s (%s)", var, description)


def get_env_bool(name: str, default: bool = False) -> bool:
    """Get boolean value from environment variable."""
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in {"1", "true", "yes", "on", "enabled"}


def get_env_int(name: str, default: int) -> int:
    """Get integer value from environment variable, falling back on bad input."""
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning("Environment variable %s=%r is not an integer; using %s", name, value, default)
        return default


def total_possible_notes() -> int:
    """Size of the note vocabulary used as the coverage denominator."""
    total = get_env_int("PROFICIENCY_TOTAL_NOTES", DEFAULT_TOTAL_POSSIBLE_NOTES)
    return total if total > 0 else DEFAULT_TOTAL_POSSIBLE_NOTES


def default_player_tier() -> str:
    """Return ``advanced`` when transposition practice is enabled, else ``beginner``."""
    return "advanced" if get_env_bool("TRANSPOSITION_ENABLED") else "beginner"
