"""
Word-preservation validation.

Enrichment may only add ``[[...]]`` annotations. Everything else in a block
must come back exactly as it was sent. The rules applied here:

1. Missing or empty enhanced text is invalid.
2. An annotation is ``[[`` up to the next ``]]``. Removing one also removes any
   whitespace immediately before it, so ``"word [[note]], next"`` strips to
   ``"word, next"``.
3. Both texts are NFKC-normalized and typographic quotes are mapped to ASCII.
   Comparison is case-sensitive.
4. The whitespace-split tokens of the stripped enhanced text must equal those of
   the stripped original.
5. Annotations already present in the original must survive, in order.
6. No new annotation may be placed inside a markdown link target or inline code.
   Ones already there in the original are left alone.
"""

import re
import unicodedata
from collections import Counter
from dataclasses import dataclass
from functools import lru_cache
from typing import Mapping, Optional

from loguru import logger

from context_enricher.models import ValidationOutcome

ANNOTATION_PATTERN = re.compile(r"\[\[.*?\]\]", re.DOTALL)
_ANNOTATION_WITH_LEADING_SPACE = re.compile(r"\s*\[\[.*?\]\]", re.DOTALL)
_LINK_TARGET_PATTERN = re.compile(r"\]\([^)]*\)")
_INLINE_CODE_PATTERN = re.compile(r"`[^`\n]*`")

_QUOTE_TRANSLATION = str.maketrans(
    {
        "‘": "'",
        "’": "'",
        "‚": "'",
        "′": "'",
        "“": '"',
        "”": '"',
        "„": '"',
        "″": '"',
    }
)


@dataclass(frozen=True)
class ValidationResult:
    """Either valid, or invalid with a reason."""

    valid: bool
    reason: Optional[str] = None

    @classmethod
    def ok(cls) -> "ValidationResult":
        return cls(valid=True)

    @classmethod
    def invalid(cls, reason: str) -> "ValidationResult":
        return cls(valid=False, reason=reason)

    def __bool__(self) -> bool:
        return self.valid


def strip_annotations(text: str) -> str:
    """Remove every ``[[...]]`` annotation and the whitespace directly before it."""
    return _ANNOTATION_WITH_LEADING_SPACE.sub("", text)


def extract_annotations(text: str) -> list[str]:
    """Return the inner text of each ``[[...]]`` annotation, in order."""
    return [match[2:-2] for match in ANNOTATION_PATTERN.findall(text)]


def _normalize(text: str) -> str:
    return unicodedata.normalize("NFKC", text).translate(_QUOTE_TRANSLATION)


def _tokens(text: str) -> list[str]:
    return _normalize(text).split()


def _is_ordered_subsequence(needles: list[str], haystack: list[str]) -> bool:
    remaining = iter(haystack)
    return all(any(needle == candidate for candidate in remaining) for needle in needles)


def _protected_annotations(text: str) -> list[str]:
    """Annotations whose opening brackets fall inside a link target or inline code span."""
    protected = [m.span() for m in _LINK_TARGET_PATTERN.finditer(text)]
    protected += [m.span() for m in _INLINE_CODE_PATTERN.finditer(text)]
    if not protected:
        return []
    return [
        match.group()
        for match in ANNOTATION_PATTERN.finditer(text)
        if any(start < match.start() < end for start, end in protected)
    ]


def _adds_protected_annotation(original: str, enhanced: str) -> bool:
    added = Counter(_protected_annotations(enhanced))
    added.subtract(_protected_annotations(original))
    return any(count > 0 for count in added.values())


@lru_cache(maxsize=4096)
def validate_enhancement(original: str, enhanced: Optional[str]) -> ValidationResult:
    """
    Check that ``enhanced`` is ``original`` plus ``[[...]]`` annotations only.

    Pure and memoised on the (original, enhanced) pair, so retries of identical
    pairs are not recomputed.

    Args:
        original: Text that was sent to the model
        enhanced: Text the model returned for the same key

    Returns:
        ValidationResult: ``valid`` or ``invalid`` with a short reason
    """
    if not enhanced or not enhanced.strip():
        return ValidationResult.invalid("missing")

    if _adds_protected_annotation(original, enhanced):
        return ValidationResult.invalid("annotation inside markdown link target or inline code")

    original_annotations = extract_annotations(original)
    if original_annotations and not _is_ordered_subsequence(original_annotations, extract_annotations(enhanced)):
        return ValidationResult.invalid("existing annotations were removed or reordered")

    original_tokens = _tokens(strip_annotations(original))
    enhanced_tokens = _tokens(strip_annotations(enhanced))
    if original_tokens == enhanced_tokens:
        return ValidationResult.ok()

    for position, (expected, actual) in enumerate(zip(original_tokens, enhanced_tokens)):
        if expected != actual:
            return ValidationResult.invalid(f"word {position + 1} changed: expected {expected!r}, got {actual!r}")
    return ValidationResult.invalid(
        f"word count changed: expected {len(original_tokens)}, got {len(enhanced_tokens)}"
    )


def validate_batch(originals: Mapping[str, str], enhanced: Mapping[str, str]) -> ValidationOutcome:
    """
    Validate every block of a batch against the model's response.

    Args:
        originals: key -> text that was sent
        enhanced: key -> text the model returned

    Returns:
        ValidationOutcome: Accepted texts, and failed keys in ``originals`` order.
        Keys missing from the response count as failures.
    """
    validated: dict[str, str] = {}
    failed: list[str] = []

    for key, original in originals.items():
        candidate = enhanced.get(key)
        result = validate_enhancement(original, candidate if isinstance(candidate, str) else None)
        if result.valid:
            validated[key] = candidate
        else:
            logger.debug(f"Block {key}: validation failed - {result.reason}")
            failed.append(key)

    return ValidationOutcome(validated=validated, failed_keys=tuple(failed))
