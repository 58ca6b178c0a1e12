"""Named text transforms used to derive lookup keys from entry text.

Every transform takes a single string and returns a tuple of one or more
strings. Transforms that strip an affix return the original text together
with the stripped variant so that later pipeline stages see both forms.
"""

from __future__ import annotations

import re
import unicodedata
from typing import Callable, Tuple

KeyTransform = Callable[[str], Tuple[str, ...]]

KEY_CHARACTERS_TO_REMOVE = re.compile(r"[\s'\"`’\-_/\\,.:;()\[\]{}]+")

GENE_NAME_SUFFIXES = ("genes", "gene", "mrna", "proteins", "protein")
FAMILY_SUFFIXES = ("protein family", "superfamily", "subfamily", "family", "complex")
MUTANT_AFFIX = "mutant"
PTM_PREFIXES = (
    "phosphorylated",
    "phospho",
    "ubiquitinated",
    "acetylated",
    "methylated",
    "sumoylated",
    "hydroxylated",
    "glycosylated",
)

_AFFIX_SEPARATOR = r"[\s\-]+"


def _suffix_pattern(suffixes: Tuple[str, ...]) -> re.Pattern[str]:
    joined = "|".join(re.escape(suffix).replace(r"\ ", _AFFIX_SEPARATOR) for suffix in suffixes)
    return re.compile(rf"^(?P<stem>.+?){_AFFIX_SEPARATOR}(?:{joined})s?$", re.IGNORECASE)


def _prefix_pattern(prefixes: Tuple[str, ...]) -> re.Pattern[str]:
    joined = "|".join(re.escape(prefix) for prefix in prefixes)
    return re.compile(rf"^(?:{joined}){_AFFIX_SEPARATOR}(?P<stem>.+)$", re.IGNORECASE)


_GENE_SUFFIX_RE = _suffix_pattern(GENE_NAME_SUFFIXES)
_FAMILY_SUFFIX_RE = _suffix_pattern(FAMILY_SUFFIXES)
_MUTANT_SUFFIX_RE = _suffix_pattern((MUTANT_AFFIX,))
_MUTANT_PREFIX_RE = _prefix_pattern((MUTANT_AFFIX,))
_PTM_PREFIX_RE = _prefix_pattern(PTM_PREFIXES)


def _with_stem(text: str, match: re.Match[str] | None) -> Tuple[str, ...]:
    if match is None:
        return (text,)
    stem = match.group("stem").strip()
    if not stem:
        return (text,)
    return (text, stem)


def identity(text: str) -> Tuple[str, ...]:
    return (text,)


def lowercase(text: str) -> Tuple[str, ...]:
    return (text.lower(),)


def casefold(text: str) -> Tuple[str, ...]:
    """Unicode-aware case folding after NFKC normalisation."""
    return (unicodedata.normalize("NFKC", text).casefold(),)


def canonical(text: str) -> Tuple[str, ...]:
    """Lowercase the text and drop whitespace and punctuation."""
    return (KEY_CHARACTERS_TO_REMOVE.sub("", text.lower()),)


def split_hyphens(text: str) -> Tuple[str, ...]:
    """Return hyphen-free variants: spaced and joined."""
    if "-" not in text:
        return (text,)
    spaced = " ".join(part for part in text.split("-") if part)
    joined = text.replace("-", "")
    return (text, spaced, joined)


def strip_gene_affixes(text: str) -> Tuple[str, ...]:
    return _with_stem(text, _GENE_SUFFIX_RE.match(text))


def strip_family_suffixes(text: str) -> Tuple[str, ...]:
    return _with_stem(text, _FAMILY_SUFFIX_RE.match(text))


def strip_mutant(text: str) -> Tuple[str, ...]:
    match = _MUTANT_PREFIX_RE.match(text) or _MUTANT_SUFFIX_RE.match(text)
    return _with_stem(text, match)


def strip_ptm_prefixes(text: str) -> Tuple[str, ...]:
    return _with_stem(text, _PTM_PREFIX_RE.match(text))


BUILTIN_TRANSFORMS: dict[str, KeyTransform] = {
    "identity": identity,
    "lowercase": lowercase,
    "casefold": casefold,
    "canonical": canonical,
    "split_hyphens": split_hyphens,
    "strip_gene_affixes": strip_gene_affixes,
    "strip_family_suffixes": strip_family_suffixes,
    "strip_mutant": strip_mutant,
    "strip_ptm_prefixes": strip_ptm_prefixes,
}
