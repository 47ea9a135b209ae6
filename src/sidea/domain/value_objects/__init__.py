"""Domain value objects."""

from sidea.domain.value_objects.normalization import (
    dedup_key,
    external_key,
    normalize_key,
    parse_year,
    release_key,
    split_combined_title,
)

__all__ = [
    "dedup_key",
    "external_key",
    "normalize_key",
    "parse_year",
    "release_key",
    "split_combined_title",
]
