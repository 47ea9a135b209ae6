"""Title/artist normalization for matching and deduplication.

Hey future me - this module is the ONE place that decides when two releases are
"the same record". The merge engine, the ownership lookup and the store's unique
constraint all have to agree, otherwise a record shows up as "not owned" in search
while the add call fails with a conflict. Don't add a second normalizer elsewhere!

Rule: lowercase, then strip every character that isn't a-z or 0-9.

Examples:
    >>> normalize_key("Pink Floyd")
    'pinkfloyd'
    >>> release_key("AC/DC", "Back In Black")
    'acdc::backinblack'
    >>> split_combined_title("Radiohead - OK Computer")
    ('Radiohead', 'OK Computer')
"""

import re

_NON_ALNUM = re.compile(r"[^a-z0-9]")

# Discogs search results glue artist and title together as "Artist - Title"
COMBINED_TITLE_SEPARATOR = " - "


def normalize_key(value: str | None) -> str:
    """Lowercase and strip all non-alphanumeric characters."""
    if not value:
        return ""
    return _NON_ALNUM.sub("", value.lower())


# Hey future me, "!!!" and "???" are real band names and normalize to "". Fall back to the plain
# lowercased value so they don't all collapse into one artist. The store and the search merge
# both key on this, so an owned "!!!" record matches its catalogue hit and nothing else.
def dedup_key(value: str | None) -> str:
    """Normalized key, or the lowercased value when nothing alphanumeric is left."""
    if not value:
        return ""
    return normalize_key(value) or value.strip().lower()


def release_key(artist: str | None, title: str | None) -> str:
    """Build the normalized ``artist::title`` dedup key."""
    return f"{dedup_key(artist)}::{dedup_key(title)}"


def external_key(provider: str, external_id: str | int | None) -> str | None:
    """Build the ``provider:id`` key used for id-based dedup."""
    if external_id is None or external_id == "":
        return None
    return f"{provider}:{external_id}"


# Yo, this splits on the FIRST " - " only. "Emerson, Lake & Palmer - Works" is fine, but an
# artist whose name itself contains " - " gets cut in the wrong place. That's a known ambiguity,
# not something to guess-fix here: callers override with explicit artist fields when the
# provider has them (release details do, search results don't).
def split_combined_title(value: str | None) -> tuple[str | None, str | None]:
    """Split ``"Artist - Title"`` on its first separator.

    Returns:
        (artist, title). artist is None when there is no separator (or the
        separator is at position 0); title is None only for empty input.
    """
    if not value:
        return None, None
    index = value.find(COMBINED_TITLE_SEPARATOR)
    if index > 0:
        artist = value[:index].strip()
        title = value[index + len(COMBINED_TITLE_SEPARATOR) :].strip()
        return artist, title
    return None, value


def parse_year(value: str | int | None) -> int | None:
    """Parse a year from an int or a date string like ``1997-05-21``."""
    if value is None or value == "":
        return None
    if isinstance(value, int):
        return value or None
    head = str(value).strip()[:4]
    if len(head) == 4 and head.isdigit():
        year = int(head)
        return year or None
    return None
