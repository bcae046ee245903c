"""Identity keys for media filenames and category titles"""

import re
from urllib.parse import unquote, urlsplit


IMAGE_EXTENSIONS = {
    '.jpg', '.jpeg', '.png', '.gif', '.webp', '.avif',
    '.svg', '.bmp', '.tif', '.tiff', '.heic',
}

# Applied in order, each at most once. Covers WordPress "big image" copies,
# generated size variants, and duplicate-upload counters.
VARIANT_SUFFIXES: tuple[tuple[re.Pattern, str], ...] = (
    (re.compile(r'-scaled$'), ''),
    (re.compile(r'-\d+x\d+$'), ''),
    (re.compile(r'(-featured)-\d+$'), r'\1'),
    (re.compile(r'-\d+$'), ''),
)


def media_filename(url_or_path: str) -> str:
    """Return the decoded basename of a URL or filesystem path."""
    path = urlsplit(url_or_path).path if '://' in url_or_path else url_or_path.split('?', 1)[0]
    return unquote(path.replace('\\', '/').rsplit('/', 1)[-1])


def strip_extension(name: str) -> str:
    """Drop a trailing image extension, if it is a known one."""
    stem, dot, ext = name.rpartition('.')
    if dot and stem and f'.{ext.lower()}' in IMAGE_EXTENSIONS:
        return stem
    return name


def normalize_media_basename(filename: str) -> str:
    """Return the key shared by every upload and format of one logical image.

    'Photo-2.jpg', 'photo.webp' and 'photo-1024x768.jpg' all map to 'photo'.
    """
    if not filename:
        return ''
    stem = strip_extension(media_filename(filename).strip().lower())
    key = stem
    for pattern, repl in VARIANT_SUFFIXES:
        key = pattern.sub(repl, key, count=1)
    return key or stem


def normalize_category_title(title: str) -> str:
    """Trim and case-fold a category title. Display casing lives on the entity."""
    return (title or '').strip().casefold()
