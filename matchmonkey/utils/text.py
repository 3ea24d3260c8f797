"""Text normalization helpers for artist names and track titles"""

import re
import unicodedata
from typing import Iterable, List, Optional, Set


# Qualifiers that mark an alternate version of a title
VERSION_MARKERS = [
    'remix', 'mix', 'edit', 'version', 'acoustic', 'live', 'instrumental',
    'extended', 'radio edit', 'demo', 'remaster', 'remastered', 'mono',
    'stereo', 'single', 'bonus', 'deluxe', 'take', 'session', 'cover',
]

_FEATURED_RE = re.compile(r'\s+(?:feat\.?|ft\.?|featuring)\s+.*$', re.IGNORECASE)
_BRACKETED_RE = re.compile(r'\s*[\[\(\{].*?[\]\)\}]')
_DASH_SUFFIX_RE = re.compile(r'\s+[-–—]\s+(.*)$')
_NON_WORD_RE = re.compile(r'[^\w\s]')


def split_artists(value: Optional[str], delimiter: str = ";") -> List[str]:
    """Split a multi-artist field into trimmed names.

    Args:
        value: Raw artist field, e.g. "Artist A; Artist B"
        delimiter: Separator used by the host

    Returns:
        Non-empty artist names in original order
    """
    if not value:
        return []
    return [name.strip() for name in value.split(delimiter) if name.strip()]


def fix_prefixes(name: str, prefixes: Iterable[str]) -> str:
    """Move a trailing article back to the front ("Beatles, The" -> "The Beatles").

    Args:
        name: Artist name as stored in the library
        prefixes: Articles to recognise, e.g. ["The", "A"]

    Returns:
        Name suitable for external service queries
    """
    stripped = name.strip()
    for prefix in prefixes:
        prefix = prefix.strip()
        if not prefix:
            continue
        suffix = f", {prefix}"
        if stripped.lower().endswith(suffix.lower()):
            return f"{prefix} {stripped[:-len(suffix)].strip()}"
    return stripped


def artist_key(name: str) -> str:
    return " ".join((name or "").split()).upper()


def strip_diacritics(text: str) -> str:
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def strip_featured(text: str) -> str:
    """Remove featured artist variations ("feat. X", "ft X", "featuring X")."""
    return _FEATURED_RE.sub('', text).strip()


def has_version_marker(text: str) -> Optional[str]:
    """Return the first version marker found in text, or None."""
    text_lower = text.lower()
    for marker in VERSION_MARKERS:
        if re.search(r'\b' + re.escape(marker) + r'\b', text_lower):
            return marker
    return None


def normalize_title(text: str) -> str:
    """Normalize a title for equality comparison.

    Drops featured artists, bracketed qualifiers, dash-separated version
    suffixes ("Song - Remastered 2011"), diacritics and punctuation.

    Args:
        text: Raw title

    Returns:
        Lowercase, single-spaced title
    """
    if not text:
        return ""
    text = strip_featured(text)
    text = _BRACKETED_RE.sub('', text)
    match = _DASH_SUFFIX_RE.search(text)
    if match and has_version_marker(match.group(1)):
        text = text[:match.start()]
    text = strip_diacritics(text)
    text = _NON_WORD_RE.sub(' ', text)
    return ' '.join(text.split()).lower()


def tokenize(text: str, min_length: int = 3) -> Set[str]:
    """Split a title into normalized words of at least min_length characters."""
    words = strip_diacritics(text or "").lower()
    words = _NON_WORD_RE.sub(' ', words)
    return {word for word in words.split() if len(word) >= min_length}
