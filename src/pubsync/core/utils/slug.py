"""Slug generation for post and category identifiers"""

import re


SLUG_MAX_LENGTH = 100   # matches the posts.slug column

# Lower-case letters only: input is lower-cased before substitution.
DIACRITICS: dict[str, str] = {
    # Romanian (comma-below and legacy cedilla forms)
    'ă': 'a', 'â': 'a', 'î': 'i', 'ș': 's', 'ş': 's', 'ț': 't', 'ţ': 't',
    # Western European
    'à': 'a', 'á': 'a', 'ä': 'a', 'ã': 'a', 'å': 'a', 'æ': 'ae',
    'ç': 'c',
    'è': 'e', 'é': 'e', 'ê': 'e', 'ë': 'e',
    'ì': 'i', 'í': 'i', 'ï': 'i',
    'ñ': 'n',
    'ò': 'o', 'ó': 'o', 'ô': 'o', 'ö': 'o', 'õ': 'o', 'ø': 'o', 'œ': 'oe',
    'ù': 'u', 'ú': 'u', 'û': 'u', 'ü': 'u',
    'ý': 'y', 'ÿ': 'y',
    'ß': 'ss',
    # Central European
    'č': 'c', 'ć': 'c', 'ď': 'd', 'đ': 'd', 'ě': 'e', 'ğ': 'g', 'ı': 'i',
    'ł': 'l', 'ń': 'n', 'ň': 'n', 'ő': 'o', 'ř': 'r', 'ś': 's', 'š': 's',
    'ť': 't', 'ů': 'u', 'ű': 'u', 'ź': 'z', 'ż': 'z', 'ž': 'z',
}

_TRANSLATION = str.maketrans(DIACRITICS)
_INVALID_RE = re.compile(r'[^a-z0-9\s-]')
_SPACE_RE = re.compile(r'\s+')
_HYPHENS_RE = re.compile(r'-{2,}')


def transliterate(text: str) -> str:
    """Replace known diacritics in lower-case text with their base Latin letters."""
    return text.translate(_TRANSLATION)


def normalize_slug(text: str, max_length: int = SLUG_MAX_LENGTH) -> str:
    """Convert a title or slug to a lowercase, hyphen-separated URL-safe slug.

    Never raises: empty, None-ish or pure-punctuation input yields ''.
    """
    if not text:
        return ''
    text = transliterate(str(text).lower())
    text = _INVALID_RE.sub('', text)
    text = _SPACE_RE.sub('-', text.strip())
    text = _HYPHENS_RE.sub('-', text).strip('-')
    if max_length > 0:
        text = text[:max_length].rstrip('-')
    return text
