from __future__ import annotations

from message_ledger.records.identifiers import (
    IdentifierShape,
    classify_identifier,
    group_identifier,
    is_flat_source,
    part_index,
    preferred_identifier,
)


def test_identifier_shapes_are_classified_by_provenance() -> None:
    assert classify_identifier("csv:12:0") is IdentifierShape.LINE_PART
    assert classify_identifier("DB:abc-123") is IdentifierShape.DIRECT
    assert classify_identifier("p:1/DB:abc-123") is IdentifierShape.PART
    assert classify_identifier("shared-1") is IdentifierShape.DIRECT


def test_part_identifier_exposes_index_and_group() -> None:
    assert part_index("p:2/DB:abc") == 2
    assert group_identifier("p:2/DB:abc") == "DB:abc"
    assert part_index("DB:abc") is None
    assert group_identifier("csv:1:0") is None


def test_preferred_identifier_favors_direct_extraction() -> None:
    assert preferred_identifier("csv:4:0", "DB:xyz") == "DB:xyz"
    assert preferred_identifier("DB:xyz", "csv:4:0") == "DB:xyz"
    assert preferred_identifier("p:0/DB:xyz", "csv:4:0") == "p:0/DB:xyz"
    assert is_flat_source("csv:4:0")
    assert not is_flat_source("p:0/DB:xyz")


def test_preferred_identifier_uses_second_argument_within_same_class() -> None:
    assert preferred_identifier("DB:left", "DB:right") == "DB:right"
    assert preferred_identifier("csv:1:0", "csv:2:0") == "csv:2:0"
