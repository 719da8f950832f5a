"""Dedup merge of record sources and enrichment-result merge."""

from .dedup import (
    DataLossError,
    MergeOutcome,
    MergeStats,
    content_key,
    dedup_merge,
    merge_records,
    normalize_body,
    verify_no_data_loss,
)
from .enrichment import (
    EnrichmentMergeResult,
    backup_enriched_file,
    load_enriched_file,
    merge_enrichments,
    merge_record_enrichments,
    write_merged_enriched_file,
)

__all__ = [
    "DataLossError",
    "EnrichmentMergeResult",
    "MergeOutcome",
    "MergeStats",
    "backup_enriched_file",
    "content_key",
    "dedup_merge",
    "load_enriched_file",
    "merge_enrichments",
    "merge_record_enrichments",
    "merge_records",
    "normalize_body",
    "verify_no_data_loss",
    "write_merged_enriched_file",
]
