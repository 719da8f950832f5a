"""Enrichment loop driver and idempotent enrichment helpers."""

from .idempotency import (
    add_enrichment,
    dedupe_enrichments_by_kind,
    get_enrichment,
    has_enrichment_kind,
)
from .runner import (
    EnrichmentAbortedError,
    EnrichmentProvider,
    EnrichmentRunResult,
    run_enrichment,
)

__all__ = [
    "EnrichmentAbortedError",
    "EnrichmentProvider",
    "EnrichmentRunResult",
    "add_enrichment",
    "dedupe_enrichments_by_kind",
    "get_enrichment",
    "has_enrichment_kind",
    "run_enrichment",
]
