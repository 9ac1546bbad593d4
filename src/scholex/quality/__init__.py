"""Record quality diagnostics.

Reports how complete an extracted record is, with missing fields listed in
the catalog's field-priority order so operators see the most important gaps
first. Used by the CLI and batch summaries only; nothing here changes what
gets extracted.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List

from ..catalog import DEFAULT_CATALOG, FormatCatalog
from ..rules import ExtractedRecord


def assess_record(record: ExtractedRecord, catalog: FormatCatalog = DEFAULT_CATALOG) -> Dict[str, Any]:
    """Assess one record.

    Returns:
        Dictionary with:
        - completeness: share of priority fields present (0-1)
        - missing_fields: absent fields, most important first
        - has_identifier: whether a DOI or URL is present
        - abstract_chars: abstract length (0 when absent)
    """
    present = record.as_dict()
    missing = [f for f in catalog.field_priority if f not in present]
    total = len(catalog.field_priority)
    return {
        "completeness": round((total - len(missing)) / total, 3) if total else 0.0,
        "missing_fields": missing,
        "has_identifier": bool(record.doi or record.url),
        "abstract_chars": len(record.abstract or ""),
    }


def summarize_records(records: Iterable[ExtractedRecord], catalog: FormatCatalog = DEFAULT_CATALOG) -> Dict[str, Any]:
    """Aggregate completeness and per-field coverage over a batch."""
    records = list(records)
    if not records:
        return {"records": 0, "avg_completeness": 0.0, "field_coverage": {}}
    coverage: Dict[str, int] = {f: 0 for f in catalog.field_priority}
    completeness: List[float] = []
    for record in records:
        report = assess_record(record, catalog)
        completeness.append(report["completeness"])
        for f in catalog.field_priority:
            if f not in report["missing_fields"]:
                coverage[f] += 1
    return {
        "records": len(records),
        "avg_completeness": round(sum(completeness) / len(completeness), 3),
        "field_coverage": {f: round(c / len(records), 3) for f, c in coverage.items()},
    }
