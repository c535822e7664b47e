"""
i18n.py — In-process translation bundle.

Loads `en.yaml` and `zh_tw.yaml` from I18N_DIR once at startup. Catalog
files are nested YAML; keys are addressed by dotted path:

    notification:
      symptom_follow_up:
        heading: "How are you feeling today?"
        content: "Yesterday you reported {{.Symptoms}}. …"

    localize("zh-Hant", "notification.symptom_follow_up.content",
             {"Symptoms": "咳嗽, 發燒"})

Unknown languages fall back to English; unknown keys raise KeyError so
callers can decide on their own fallback (e.g. raw symptom names).

TESTING
────────
    bundle = Bundle().load_messages("en", {"a": {"b": "hi {{.Name}}"}})
    bundle.localize("en", "a.b", {"Name": "x"})   # → "hi x"
"""

import logging
import re
from pathlib import Path
from typing import Any, Optional

import yaml

logger = logging.getLogger(__name__)

DEFAULT_LANGUAGE = "en"

# Push vendor language code → catalog language
VENDOR_LANGUAGE_CODES = {
    "en": "en",
    "zh-Hant": "zh_tw",
}

_CATALOG_FILES = {"en": "en.yaml", "zh_tw": "zh_tw.yaml"}
_TEMPLATE_VAR = re.compile(r"\{\{\s*\.(\w+)\s*\}\}")


def normalize_language(lang: str) -> str:
    lang = (lang or "").strip()
    if lang in VENDOR_LANGUAGE_CODES:
        return VENDOR_LANGUAGE_CODES[lang]
    return lang.lower().replace("-", "_")


def _flatten(tree: dict, prefix: str = "") -> dict[str, str]:
    flat = {}
    for key, value in (tree or {}).items():
        path = f"{prefix}{key}"
        if isinstance(value, dict):
            # go-i18n style plural entries collapse to their "other" form
            if "other" in value and all(isinstance(v, str) for v in value.values()):
                flat[path] = value["other"]
            else:
                flat.update(_flatten(value, f"{path}."))
        elif value is not None:
            flat[path] = str(value)
    return flat


class Bundle:
    def __init__(self) -> None:
        self._messages: dict[str, dict[str, str]] = {}

    @property
    def languages(self) -> list[str]:
        return sorted(self._messages)

    def load_dir(self, directory: str | Path) -> "Bundle":
        directory = Path(directory)
        for lang, filename in _CATALOG_FILES.items():
            path = directory / filename
            with path.open(encoding="utf-8") as fh:
                self.load_messages(lang, yaml.safe_load(fh) or {})
        logger.info("Loaded message catalogs %s from %s", self.languages, directory)
        return self

    def load_messages(self, lang: str, tree: dict) -> "Bundle":
        self._messages.setdefault(normalize_language(lang), {}).update(_flatten(tree))
        return self

    def localize(self, lang: str, key: str, variables: Optional[dict[str, Any]] = None) -> str:
        lang = normalize_language(lang)
        message = self._messages.get(lang, {}).get(key)
        if message is None:
            message = self._messages.get(DEFAULT_LANGUAGE, {}).get(key)
        if message is None:
            raise KeyError(key)
        if not variables:
            return message
        return _TEMPLATE_VAR.sub(lambda m: str(variables.get(m.group(1), "")), message)


# Module-level singleton, filled at startup by load_bundle()
bundle = Bundle()


def load_bundle(directory: str | Path) -> Bundle:
    return bundle.load_dir(directory)


def localize(lang: str, key: str, variables: Optional[dict[str, Any]] = None) -> str:
    return bundle.localize(lang, key, variables)
