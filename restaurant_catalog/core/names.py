"""Restaurant name canonicalisation used for fuzzy duplicate detection."""

import re
import unicodedata

from rapidfuzz import fuzz

_DISALLOWED = re.compile(r"[^a-z0-9 ]+")
_WHITESPACE = re.compile(r"\s+")
# Brazilian company-registration suffixes that show up in provider names.
_LEGAL_SUFFIXES = ("ltda", "eireli", "epp", "me")
# token_set_ratio scores 100 exactly when one word set contains the other.
TOKEN_SET_MATCH = 100


def normalize(name: str) -> str:
    """Lowercase, strip accents and punctuation, and collapse whitespace.

    `"Restaurante Costa Ltda."` and `"restaurante costa"` normalize to the
    same string.
    """
    if not name:
        return ""
    decomposed = unicodedata.normalize("NFKD", name)
    ascii_only = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    cleaned = _DISALLOWED.sub("", _WHITESPACE.sub(" ", ascii_only.lower()))
    tokens = _WHITESPACE.sub(" ", cleaned).strip().split(" ")
    while len(tokens) > 1 and tokens[-1] in _LEGAL_SUFFIXES:
        tokens.pop()
    return " ".join(tokens).strip()


def names_match(first: str, second: str) -> bool:
    """Loose same-place test on normalized names.

    Equal, substring in either direction, or one name's words all present in
    the other ("Costa Restaurante" / "Restaurante Costa"). This also merges
    pairs like "Bar do Ze" / "Ze Bar".
    """
    a = normalize(first)
    b = normalize(second)
    if not a or not b:
        return False
    if a == b or a in b or b in a:
        return True
    return fuzz.token_set_ratio(a, b) >= TOKEN_SET_MATCH
