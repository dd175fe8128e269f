from __future__ import annotations

import json
import logging
import re
from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field, PrivateAttr, field_validator

from validation_trainer.core.config import settings

DATA_DIR = Path(__file__).resolve().parents[1] / "data"
INVALIDATING_FILE = DATA_DIR / "invalidating_phrases.json"
MICRO_VALIDATIONS_FILE = DATA_DIR / "micro_validations.json"

logger = logging.getLogger("validation.catalog")


class InvalidatingLanguage(BaseModel):
    phrases: list[str] = Field(default_factory=list)
    patterns: list[str] = Field(default_factory=list)

    @field_validator("patterns")
    @classmethod
    def patterns_must_compile(cls, value: list[str]) -> list[str]:
        for pattern in value:
            try:
                re.compile(pattern)
            except re.error as exc:
                raise ValueError(f"invalid pattern {pattern!r}: {exc}") from exc
        return value


class MicroValidations(BaseModel):
    phrases: list[str] = Field(default_factory=list)


class PhraseCatalog(BaseModel):
    """Wording lists the classifier matches against.

    Kept as data so coaching language can change without touching the
    scoring rules. Phrases are matched as lowercase substrings, patterns as
    case-insensitive regular expressions.
    """

    invalidating: InvalidatingLanguage
    micro_validations: MicroValidations

    _invalidating_phrases: tuple[str, ...] = PrivateAttr(default=())
    _invalidating_patterns: tuple[re.Pattern[str], ...] = PrivateAttr(default=())
    _micro_phrases: tuple[str, ...] = PrivateAttr(default=())

    def model_post_init(self, __context) -> None:
        self._invalidating_phrases = tuple(
            p.lower() for p in self.invalidating.phrases if p.strip()
        )
        self._invalidating_patterns = tuple(
            re.compile(p, re.IGNORECASE) for p in self.invalidating.patterns
        )
        self._micro_phrases = tuple(
            p.lower() for p in self.micro_validations.phrases if p.strip()
        )

    def has_invalidating(self, text: str) -> bool:
        lowered = text.lower()
        if any(phrase in lowered for phrase in self._invalidating_phrases):
            return True
        return any(pattern.search(text) for pattern in self._invalidating_patterns)

    def has_micro_validation(self, text: str) -> bool:
        lowered = text.lower()
        return any(phrase in lowered for phrase in self._micro_phrases)


def _read_json(path: Path) -> dict:
    payload = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(payload, dict):
        raise ValueError(f"{path} is not object json")
    return payload


def load_phrase_catalog(path: Path | None = None) -> PhraseCatalog:
    """Load the catalog from one combined file, or the bundled pair of files."""
    if path is not None:
        logger.info("loading phrase catalog from %s", path)
        return PhraseCatalog.model_validate(_read_json(path))
    return PhraseCatalog(
        invalidating=InvalidatingLanguage.model_validate(_read_json(INVALIDATING_FILE)),
        micro_validations=MicroValidations.model_validate(
            _read_json(MICRO_VALIDATIONS_FILE)
        ),
    )


@lru_cache(maxsize=1)
def get_default_catalog() -> PhraseCatalog:
    override = settings.phrase_catalog_path
    return load_phrase_catalog(Path(override) if override else None)
