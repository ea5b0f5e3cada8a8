from __future__ import annotations
import re
import unicodedata

_QUOTE_MAP = {
    "’": "'",
    "‘": "'",
    "“": "\"",
    "”": "\"",
}

def _nfkc_normalize(s: str) -> str:
    if not s:
        return ""
    s = unicodedata.normalize("NFKC", s)
    for src, dst in _QUOTE_MAP.items():
        s = s.replace(src, dst)
    return s

def norm_text(s: str) -> str:
    s = _nfkc_normalize(s or "")
    s = s.strip()
    s = re.sub(r"\s+", " ", s)
    return s

def norm_option_key(s: str) -> str:
    # Two options with equal keys read as the same answer to a student.
    return norm_text(s).casefold()

def norm_study_key(s: str) -> str:
    return norm_text(s)

def norm_username(s: str) -> str:
    return norm_text(s).lstrip("@").casefold()
