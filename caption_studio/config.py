"""Configuration constants, language table, and .env loading.

WHY: Centralizes all configurable values so they are easy to find,
update, and override. The language table, supported media formats,
engine tuning values and service defaults are plain data, not buried
in logic, so they can be changed without reading the engine code.

HOW: python-dotenv loads the .env file on import. Constants are defined
as module-level dicts, sets, and numbers. The load_api_key() function
provides a clear error when the key is missing.

RULES:
- LANGUAGES maps ISO 639-1 codes to the display names sent to the
  translation service (10 languages)
- Unknown codes are passed through unchanged by language_name()
- SUPPORTED_MEDIA_FORMATS lists accepted audio/video file extensions
- API key is loaded from .env via python-dotenv, never hardcoded
- All service defaults can be overridden via environment variables
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from the project root (where the script is run from)
load_dotenv()

# ---------------------------------------------------------------------------
# Translation target languages: ISO 639-1 → display name
# ---------------------------------------------------------------------------

LANGUAGES: dict[str, str] = {
    "en": "English",
    "es": "Spanish",
    "fr": "French",
    "de": "German",
    "it": "Italian",
    "pt": "Portuguese",
    "ja": "Japanese",
    "ko": "Korean",
    "zh": "Chinese (Simplified)",
    "ru": "Russian",
}


def language_name(code: str) -> str:
    """Return the display name for a language code.

    The translation prompt reads better with "Spanish" than "es". Codes
    missing from LANGUAGES (or names passed in directly) are returned
    unchanged.
    """
    return LANGUAGES.get(code.lower(), code)


# ---------------------------------------------------------------------------
# Supported audio/video file extensions
# ---------------------------------------------------------------------------

SUPPORTED_MEDIA_FORMATS: set[str] = {
    ".aac", ".aiff", ".flac", ".m4a", ".mkv", ".mov",
    ".mp3", ".mp4", ".ogg", ".opus", ".wav", ".webm",
}
"""Media file extensions accepted for generation (lowercase, with dot)."""

# ---------------------------------------------------------------------------
# Engine constants
# ---------------------------------------------------------------------------

TARGET_SAMPLE_RATE = 16_000
"""Speech models gain nothing above 16 kHz; smaller uploads are faster."""

SEEK_TOLERANCE_S = 0.2
"""Clock updates closer than this to the known position never re-seek."""

DEFAULT_MAX_CHARS_PER_LINE = 42
DEFAULT_MIN_DURATION_S = 1.0
DEFAULT_MAX_DURATION_S = 6.0

# ---------------------------------------------------------------------------
# Service and storage defaults
# ---------------------------------------------------------------------------

GEMINI_BASE_URL = os.getenv(
    "GEMINI_BASE_URL", "https://generativelanguage.googleapis.com/v1beta"
)
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
DEFAULT_TARGET_LANGUAGE = os.getenv("DEFAULT_TARGET_LANGUAGE", "en")
HISTORY_CAPACITY = int(os.getenv("HISTORY_CAPACITY", "50"))
PROJECT_STORE_DIR = Path(
    os.getenv("PROJECT_STORE_DIR", str(Path.home() / ".caption_studio" / "projects"))
)


def load_api_key() -> str:
    """Load the Gemini API key from the environment.

    WHY: The API key is required for all generation and translation
    calls. Loading it from the environment (via .env) keeps it out of
    source code.

    HOW: Reads GEMINI_API_KEY from os.environ (populated by python-dotenv).

    RULES:
    - Raises ValueError if the key is missing or empty
    - Never returns a default/placeholder value
    """
    key = os.getenv("GEMINI_API_KEY", "").strip()
    if not key:
        raise ValueError(
            "Gemini API key not configured. "
            "Add GEMINI_API_KEY to the .env file in the app folder."
        )
    return key
