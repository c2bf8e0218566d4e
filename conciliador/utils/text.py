"""Text normalization shared by search filters and description scoring."""

import re
import unicodedata
from typing import List

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")
_SPACES = re.compile(r"\s+")


def strip_accents(text: str) -> str:
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_text(text: str) -> str:
    """Lower-case, accent-free, punctuation-free, single-spaced."""
    if not text:
        return ""
    text = strip_accents(text.lower())
    text = _NON_ALNUM.sub(" ", text)
    return _SPACES.sub(" ", text).strip()


def tokenize(text: str, min_length: int = 3) -> List[str]:
    """Normalized tokens, dropping words shorter than ``min_length``."""
    return [w for w in normalize_text(text).split(" ") if len(w) >= min_length]
