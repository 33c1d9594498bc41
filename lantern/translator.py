"""Translation lookup for Lantern templates.

Theme language files live in `<themeDir>/languages/<name>.yml`. Each file is a
nested mapping; templates look strings up with a dotted key through the `__`
helper, which falls back to the `default` language and finally to the key.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigError
from .logging import get_logger

logger = get_logger("translator")

DEFAULT_LANGUAGE = "default"


class Translator:
    """Registry of language mappings."""

    def __init__(self) -> None:
        self._languages: dict[str, Mapping[str, Any]] = {}

    def register(self, language: str, mapping: Mapping[str, Any]) -> None:
        """Register (or replace) the strings of a language."""
        self._languages[language] = mapping

    def languages(self) -> list[str]:
        return sorted(self._languages)

    def load_dir(self, directory: Path) -> None:
        """Register every `*.yml`/`*.yaml` file of a directory by file stem.

        Args:
            directory: Theme languages directory. Missing directories are skipped.

        Raises:
            ConfigError: If a language file cannot be read or parsed.
        """
        if not directory.is_dir():
            logger.debug("No languages directory at `%s`", directory)
            return
        for path in sorted([*directory.glob("*.yml"), *directory.glob("*.yaml")]):
            try:
                with open(path, encoding="utf-8") as f:
                    payload = yaml.safe_load(f) or {}
            except (OSError, UnicodeDecodeError, yaml.YAMLError) as exc:
                raise ConfigError(f"Cannot read language file {path}: {exc}") from exc
            if not isinstance(payload, dict):
                logger.warning("Skipping language file `%s`: not a mapping", path)
                continue
            logger.debug("Loading language `%s`...", path.stem)
            self.register(path.stem, payload)

    def get_translate_fn(self, language: str | None = None) -> Callable[..., str]:
        """Return the `__(key, *args)` lookup bound to a language.

        Positional arguments are substituted with `str.format`.
        """
        chain = [
            self._languages[name]
            for name in (language, DEFAULT_LANGUAGE)
            if name is not None and name in self._languages
        ]

        def translate(key: str, *args: Any) -> str:
            for mapping in chain:
                value = _lookup(mapping, key)
                if value is not None:
                    text = str(value)
                    return text.format(*args) if args else text
            return key

        return translate


def _lookup(mapping: Mapping[str, Any], key: str) -> Any:
    node: Any = mapping
    for part in key.split("."):
        if not isinstance(node, Mapping) or part not in node:
            return None
        node = node[part]
    return None if isinstance(node, Mapping) else node
