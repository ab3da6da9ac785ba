"""
Extraction report for a mining run.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import asdict, dataclass, field
from typing import Any

from ddi_miner.evidence.model import DrugInteractionEvidence, SourceType

TOP_DRUGS = 10


@dataclass
class ExtractionReport:
    drugs_processed: int
    total_evidence: int
    average_evidence_per_drug: float
    success_rate: float
    by_source: dict[str, int] = field(default_factory=dict)
    coverage: dict[str, int] = field(default_factory=dict)
    top_drugs: list[dict[str, Any]] = field(default_factory=list)
    errors: list[dict[str, Any]] = field(default_factory=list)
    complete: bool = True
    unprocessed_drugs: list[str] = field(default_factory=list)

    @property
    def drugs_with_evidence(self) -> int:
        return sum(1 for count in self.coverage.values() if count)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["drugs_with_evidence"] = self.drugs_with_evidence
        return data


def build_extraction_report(
    drugs: list[str],
    per_drug: dict[str, list[DrugInteractionEvidence]],
    errors: list[dict[str, Any]],
    unprocessed: list[str] | None = None,
) -> ExtractionReport:
    """
    Summarise raw extraction output.

    Coverage is keyed by requested drug and counts the records mined for it,
    so drugs with nothing found appear with zero. A drug counts as failed
    when at least one of its sources raised.
    """
    unprocessed = unprocessed or []
    processed = [d for d in drugs if d not in set(unprocessed)]
    evidence = [record for d in processed for record in per_drug.get(d, [])]
    coverage = {d: len(per_drug.get(d, [])) for d in drugs}
    failed = {e["drug"] for e in errors}
    n = len(processed)

    top = sorted(((d, c) for d, c in coverage.items() if c), key=lambda item: item[1], reverse=True)[:TOP_DRUGS]
    return ExtractionReport(
        drugs_processed=n,
        total_evidence=len(evidence),
        average_evidence_per_drug=round(len(evidence) / n, 1) if n else 0.0,
        success_rate=round((1 - len(failed & set(processed)) / n) * 100, 1) if n else 0.0,
        by_source=dict(Counter(SourceType(r.source_type).value for r in evidence)),
        coverage=coverage,
        top_drugs=[{"drug": d, "evidence_count": c} for d, c in top],
        errors=list(errors),
        complete=not unprocessed,
        unprocessed_drugs=list(unprocessed),
    )
