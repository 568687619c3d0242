"""Unit tests for the OData query builders.

The feed matches on the literal filter text, so these tests pin the exact
strings (before and after ``encodeURI``-style percent-encoding).
"""

from __future__ import annotations

from urllib.parse import unquote

from homeswipe.core.models import EPOCH_CURSOR, Cursor
from homeswipe.feed.query import (
    RESIDENTIAL_FILTER,
    active_keys_path,
    encode_uri,
    incremental_predicate,
    media_path,
    odata_literal,
    property_count_path,
    property_page_path,
)

__all__: list[str] = []


class TestLiterals:
    def test_single_quotes_doubled(self) -> None:
        assert odata_literal("O'Brien") == "O''Brien"

    def test_encode_uri_keeps_reserved(self) -> None:
        raw = "/Property?$filter=A eq 'x,y' and (B gt 1)&$top=5"
        assert encode_uri(raw) == "/Property?$filter=A%20eq%20'x,y'%20and%20(B%20gt%201)&$top=5"

    def test_encode_uri_escapes_non_ascii_and_percent(self) -> None:
        assert encode_uri("é 100%") == "%C3%A9%20100%25"


class TestResidentialFilter:
    def test_prefix_and_first_clause(self) -> None:
        assert RESIDENTIAL_FILTER.startswith(
            "ContractStatus eq 'Available' and "
            "((PropertySubType eq 'Residential' or PropertyType eq 'Residential') or "
        )

    def test_last_clause(self) -> None:
        assert RESIDENTIAL_FILTER.endswith(
            "(PropertySubType eq 'Apartment' or PropertyType eq 'Apartment'))"
        )

    def test_one_clause_per_subtype(self) -> None:
        assert RESIDENTIAL_FILTER.count("PropertySubType eq") == 16


class TestIncrementalPredicate:
    def test_exact_text(self) -> None:
        cursor = Cursor(timestamp="2025-01-02T03:04:05Z", key="X9")
        assert incremental_predicate(cursor) == (
            "(ModificationTimestamp gt 2025-01-02T03:04:05Z or "
            "(ModificationTimestamp eq 2025-01-02T03:04:05Z and ListingKey gt 'X9'))"
        )

    def test_key_is_escaped(self) -> None:
        cursor = Cursor(timestamp="2025-01-01T00:00:00Z", key="a'b")
        assert "ListingKey gt 'a''b'" in incremental_predicate(cursor)


class TestPropertyPaths:
    def test_page_path(self) -> None:
        path = unquote(property_page_path(EPOCH_CURSOR, 1000, filter_expr="F"))
        assert path == (
            "/Property?$filter=F and "
            "(ModificationTimestamp gt 1970-01-01T00:00:00Z or "
            "(ModificationTimestamp eq 1970-01-01T00:00:00Z and ListingKey gt '0'))"
            "&$orderby=ModificationTimestamp,ListingKey&$top=1000"
        )

    def test_page_path_is_encoded(self) -> None:
        path = property_page_path(EPOCH_CURSOR, 10)
        assert " " not in path
        assert "%20" in path
        assert "$orderby=ModificationTimestamp,ListingKey" in path

    def test_count_path(self) -> None:
        path = unquote(property_count_path(EPOCH_CURSOR, filter_expr="F"))
        assert path.endswith("&$orderby=ModificationTimestamp,ListingKey&$top=0&$count=true")

    def test_active_keys_path(self) -> None:
        path = unquote(active_keys_path(500, 1500, filter_expr="F"))
        assert path == "/Property?$filter=F&$select=ListingKey&$orderby=ListingKey&$top=500&$skip=1500"


class TestMediaPath:
    def test_default(self) -> None:
        assert unquote(media_path("X1", 50)) == (
            "/Media?$filter=ResourceRecordKey eq 'X1'&$orderby=Order&$top=50"
        )

    def test_with_size_description(self) -> None:
        assert unquote(media_path("X1", 1, "Largest")) == (
            "/Media?$filter=ResourceRecordKey eq 'X1' and "
            "ImageSizeDescription eq 'Largest'&$orderby=Order&$top=1"
        )

    def test_record_id_escaped(self) -> None:
        assert "ResourceRecordKey eq 'O''K'" in unquote(media_path("O'K", 5))
