"""Error-message catalogues, one JSON file per language under ``locales/``.

Keys look like ``errors.shift_not_open``; values may carry ``{name}``
placeholders filled from the error's params.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from functools import lru_cache
from pathlib import Path

logger = logging.getLogger(__name__)

LOCALES_DIR = Path(__file__).resolve().parent.parent / "locales"
DEFAULT_LANGUAGE = "en"
SUPPORTED_LANGUAGES = frozenset({"en", "es"})


class _KeepUnknown(dict):
    """Leaves placeholders without a value in the text as ``{name}``."""

    def __missing__(self, name: str) -> str:
        return "{" + name + "}"


@lru_cache(maxsize=None)
def catalogue(language: str) -> Mapping[str, str]:
    if language not in SUPPORTED_LANGUAGES:
        return {}
    path = LOCALES_DIR / language / "messages.json"
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        logger.warning("Message catalogue missing for %s: %s", language, path)
        return {}


def translate(lang: str, key: str, **params: str) -> str:
    """Message for *key* in *lang*, else English, else the key itself."""
    template = catalogue(lang).get(key) or catalogue(DEFAULT_LANGUAGE).get(key)
    if template is None:
        logger.debug("No message registered for %s", key)
        return key
    if not params:
        return template
    return template.format_map(_KeepUnknown(params))
