"""
Export mining results as JSON, CSV or TSV.

Tabular exports carry a fixed set of columns, one row per normalized record,
with every field quoted and embedded quotes doubled.
"""

import json
from typing import Any

import polars as pl

from ddi_miner.evidence.model import DrugInteractionEvidence, EvidenceLevel, Severity, SourceType

EXPORT_COLUMNS = (
    "drug1_name",
    "drug1_rxcui",
    "drug2_name",
    "drug2_rxcui",
    "severity",
    "mechanism",
    "enzyme_pathway",
    "effect",
    "source_type",
    "evidence_level",
    "composite_score",
    "source_title",
    "source_url",
)

SEPARATORS = {"csv": ",", "tsv": "\t"}
EXPORT_FORMATS = ("json", *SEPARATORS)


def _row(record: DrugInteractionEvidence) -> dict[str, str]:
    score = record.evidence.composite_score
    return {
        "drug1_name": record.drug1.name or "",
        "drug1_rxcui": record.drug1.rxcui or "",
        "drug2_name": record.drug2.name or "",
        "drug2_rxcui": record.drug2.rxcui or "",
        "severity": Severity(record.interaction.severity).value,
        "mechanism": record.interaction.mechanism or "",
        "enzyme_pathway": ", ".join(record.interaction.enzyme_pathway),
        "effect": record.interaction.effect or "",
        "source_type": SourceType(record.source_type).value,
        "evidence_level": EvidenceLevel(record.evidence.level).value,
        "composite_score": "" if score is None else str(score),
        "source_title": record.source.title or "",
        "source_url": record.source.url or "",
    }


def evidence_frame(records: list[DrugInteractionEvidence]) -> pl.DataFrame:
    """Export columns as an all-string DataFrame."""
    rows = [_row(r) for r in records]
    return pl.DataFrame(
        {col: [row[col] for row in rows] for col in EXPORT_COLUMNS},
        schema={col: pl.String for col in EXPORT_COLUMNS},
    )


def export_table(records: list[DrugInteractionEvidence], fmt: str = "csv") -> str:
    separator = SEPARATORS.get(fmt.lower())
    if separator is None:
        raise ValueError(f"Unsupported export format: {fmt}")
    return evidence_frame(records).write_csv(separator=separator, quote_style="always")


def export_json(result: dict[str, Any]) -> str:
    return json.dumps(result, indent=2, default=str)
