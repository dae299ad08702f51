"""
Normalization utilities for portal and password matching.

Provides consistent URL, domain, identifier and tag normalization used when
locating the portal and vault records that belong together.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from urllib.parse import urlsplit

# Prefix used for tags that associate a vault entry with a family member
FAMILY_TAG_PREFIX = "family:"


def normalize_url(value: str | None) -> str:
    """
    Normalize user supplied URL input so that it carries a protocol.

    Args:
        value: URL in any user-entered form ("example.com", "www.example.com",
               "https://example.com/login")

    Returns:
        The trimmed URL with an ``https://`` prefix added when no
        http(s) protocol is present, or an empty string for empty input
    """
    if not value:
        return ""

    url = value.strip()
    if not url:
        return ""

    if url.startswith("http://") or url.startswith("https://"):
        return url

    return f"https://{url}"


def extract_domain(url: str | None) -> str:
    """
    Extract the lowercase hostname of a URL for fuzzy matching.

    Falls back to the lowercased, trimmed input when the URL cannot be
    parsed into a hostname.

    Args:
        url: URL in any user-entered form

    Returns:
        Lowercase hostname (e.g. "portal.clinic.com"), or "" for empty input
    """
    if not url:
        return ""

    try:
        hostname = urlsplit(normalize_url(url)).hostname
    except ValueError:
        hostname = None

    if hostname:
        return hostname.lower()
    return url.strip().lower()


def friendly_domain(url: str | None) -> str:
    """
    Return a display-friendly domain without protocol, www, path or query.

    Args:
        url: Full URL

    Returns:
        Domain such as "example.com"
    """
    if not url:
        return ""
    stripped = re.sub(r"^https?://(www\.)?", "", url.strip())
    return stripped.split("/")[0].split("?")[0]


def normalize_provider_key(provider_name: str | None) -> str:
    """
    Build the case-insensitive identity key for a provider name.

    Portals are unique per (portal_type, provider_key).

    Args:
        provider_name: Provider display name (e.g. "Dr. Lee")

    Returns:
        Trimmed, lowercased name; inner whitespace is kept as-is
    """
    if not provider_name:
        return ""
    return provider_name.strip().lower()


def unique_ids(values: Iterable[str | None] | None) -> list[str]:
    """
    De-duplicate identifiers, dropping empty values and keeping first-seen order.

    Args:
        values: Iterable of identifiers, possibly containing None or ""

    Returns:
        List of unique, non-empty identifiers
    """
    seen: set[str] = set()
    result: list[str] = []
    for value in values or ():
        if not value or value in seen:
            continue
        seen.add(value)
        result.append(value)
    return result


def family_tags(entity_ids: Iterable[str | None] | None) -> list[str]:
    """Build one ``family:<id>`` tag per associated entity id."""
    return [f"{FAMILY_TAG_PREFIX}{entity_id}" for entity_id in unique_ids(entity_ids)]


def merge_family_tags(
    existing_tags: Iterable[str] | None, entity_ids: Iterable[str | None] | None
) -> list[str]:
    """
    Merge the family tags of this call into an existing tag list.

    Existing ``family:`` tags are replaced by the tags for ``entity_ids``
    while every other tag is kept in its original order. When no entity ids
    are given the existing tags are returned unchanged.

    Args:
        existing_tags: Tags currently stored on the vault entry
        entity_ids: Associated person/pet ids passed in this call

    Returns:
        The merged tag list
    """
    current = [tag for tag in (existing_tags or []) if isinstance(tag, str)]
    new_tags = family_tags(entity_ids)
    if not new_tags:
        return current

    non_family = [tag for tag in current if not tag.startswith(FAMILY_TAG_PREFIX)]
    return unique_ids([*non_family, *new_tags])
