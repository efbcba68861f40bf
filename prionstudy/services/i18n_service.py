import json
import logging
import os
from functools import lru_cache

logger = logging.getLogger(__name__)

SUPPORTED_LANGUAGES = ["es", "ca", "en", "eu"]
DEFAULT_LANGUAGE = "es"
LOCALES_DIR = os.path.join(os.path.dirname(os.path.dirname(__file__)), "locales")


@lru_cache()
def load_translations(lang: str) -> dict:
    if lang not in SUPPORTED_LANGUAGES:
        lang = DEFAULT_LANGUAGE
    try:
        with open(os.path.join(LOCALES_DIR, f"{lang}.json"), encoding="utf-8") as f:
            return json.load(f)
    except (OSError, ValueError) as e:
        logger.error("Error loading translations for %s: %s", lang, e)
        if lang != DEFAULT_LANGUAGE:
            return load_translations(DEFAULT_LANGUAGE)
        return {}


def get_all_translations() -> dict:
    return {lang: load_translations(lang) for lang in SUPPORTED_LANGUAGES}


def translate(lang: str, key: str) -> str:
    """Dotted-key lookup ("login.submit"); unknown keys come back unchanged."""
    value = load_translations(lang)
    for part in key.split("."):
        if isinstance(value, dict) and part in value:
            value = value[part]
        else:
            return key
    return value
