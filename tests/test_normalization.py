"""
Unit tests for the normalization module.

Tests URL, domain, provider-key, identifier and tag normalization.
"""

import pytest

from portal_sync.utils.normalization import (
    extract_domain,
    family_tags,
    friendly_domain,
    merge_family_tags,
    normalize_provider_key,
    normalize_url,
    unique_ids,
)


class TestNormalizeUrl:
    """Tests for normalize_url."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("example.com", "https://example.com"),
            ("www.example.com/login", "https://www.example.com/login"),
            ("  portal.clinic.com  ", "https://portal.clinic.com"),
            ("http://example.com", "http://example.com"),
            ("https://example.com/a?b=1", "https://example.com/a?b=1"),
        ],
    )
    def test_normalizes_protocol(self, value, expected):
        """Test that a protocol is added only when missing."""
        assert normalize_url(value) == expected

    def test_empty_values(self):
        """Test that empty input normalizes to an empty string."""
        assert normalize_url(None) == ""
        assert normalize_url("") == ""
        assert normalize_url("   ") == ""


class TestExtractDomain:
    """Tests for extract_domain."""

    def test_extracts_lowercase_hostname(self):
        """Test hostname extraction from a full URL."""
        assert extract_domain("https://Portal.Clinic.com/login") == "portal.clinic.com"

    def test_extracts_from_bare_domain(self):
        """Test hostname extraction when the protocol is missing."""
        assert extract_domain("vet.example.org/path") == "vet.example.org"

    def test_empty_returns_empty(self):
        """Test that empty input yields an empty domain."""
        assert extract_domain(None) == ""
        assert extract_domain("") == ""

    def test_unparseable_falls_back_to_input(self):
        """Test fallback to the lowercased input when parsing fails."""
        assert extract_domain("http://[bad") == "http://[bad"


class TestFriendlyDomain:
    """Tests for friendly_domain."""

    def test_strips_protocol_www_and_path(self):
        """Test display domain extraction."""
        assert friendly_domain("https://www.example.com/login?x=1") == "example.com"

    def test_empty(self):
        """Test empty input."""
        assert friendly_domain(None) == ""


class TestNormalizeProviderKey:
    """Tests for normalize_provider_key."""

    def test_case_insensitive_and_trimmed(self):
        """Test that casing and outer spacing variants share one key."""
        assert normalize_provider_key("Dr. Lee") == "dr. lee"
        assert normalize_provider_key("  DR. LEE ") == "dr. lee"

    def test_inner_whitespace_kept(self):
        """Test that names differing in inner spacing get different keys."""
        assert normalize_provider_key("Dr.  Lee") == "dr.  lee"
        assert normalize_provider_key("Dr.  Lee") != normalize_provider_key("Dr. Lee")

    def test_empty(self):
        """Test empty input."""
        assert normalize_provider_key(None) == ""


class TestUniqueIds:
    """Tests for unique_ids."""

    def test_preserves_first_seen_order(self):
        """Test de-duplication keeps first occurrences in order."""
        assert unique_ids(["b", "a", "b", "c", "a"]) == ["b", "a", "c"]

    def test_drops_falsy_values(self):
        """Test that None and empty strings are dropped."""
        assert unique_ids(["a", None, "", "b"]) == ["a", "b"]

    def test_none_input(self):
        """Test None input."""
        assert unique_ids(None) == []


class TestFamilyTags:
    """Tests for family tag building and merging."""

    def test_family_tags(self):
        """Test one tag per unique entity id."""
        assert family_tags(["P1", "P2", "P1"]) == ["family:P1", "family:P2"]

    def test_merge_replaces_family_tags(self):
        """Test that family tags become exactly the new set."""
        merged = merge_family_tags(
            ["work", "family:A", "family:B", "important"], ["C"]
        )
        assert merged == ["work", "important", "family:C"]

    def test_merge_without_entities_keeps_existing(self):
        """Test that existing tags are untouched when no entity ids are given."""
        existing = ["work", "family:A"]
        assert merge_family_tags(existing, []) == existing
        assert merge_family_tags(existing, None) == existing

    def test_merge_with_no_existing_tags(self):
        """Test merging into an empty tag list."""
        assert merge_family_tags(None, ["A"]) == ["family:A"]

    def test_merge_ignores_non_string_tags(self):
        """Test that malformed stored tags are discarded."""
        assert merge_family_tags(["ok", 3, None], ["A"]) == ["ok", "family:A"]
