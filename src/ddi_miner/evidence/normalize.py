"""
Evidence normalization: standardize, merge per drug pair, score and filter.

Records for the same (order-independent) drug pair are merged into one
representative record. The merged record keeps the most severe severity and
the highest evidence level seen, unions mechanisms, effects, management
phrases and enzyme pathways, and carries a composite score:

    composite = source reliability x confidence (0-100) x severity weight

Normalizing an already-normalized set with no duplicate pairs is a no-op.
"""

from __future__ import annotations

import copy
import re
from collections import Counter
from collections.abc import Iterable
from dataclasses import asdict, dataclass, field

from ddi_miner.cache import CacheStats, TTLCache
from ddi_miner.config import settings
from ddi_miner.evidence.model import (
    DEFAULT_MANAGEMENT,
    EFFECT_NOT_SPECIFIED,
    MECHANISM_NOT_SPECIFIED,
    DrugInteractionEvidence,
    EvidenceLevel,
    Severity,
    SourceType,
)
from ddi_miner.resolve import DrugResolver

SOURCE_RELIABILITY: dict[str, float] = {
    SourceType.REGULATORY_LABEL.value: 1.0,
    SourceType.CLINICAL_TRIAL.value: 0.85,
    SourceType.PUBLICATION.value: 0.8,
}

SEVERITY_WEIGHT: dict[Severity, float] = {
    Severity.CONTRAINDICATED: 1.0,
    Severity.MAJOR: 0.95,
    Severity.MODERATE: 0.85,
    Severity.MINOR: 0.75,
}

SEVERITY_SYNONYMS: dict[str, Severity] = {
    "contraindicated": Severity.CONTRAINDICATED,
    "avoid": Severity.CONTRAINDICATED,
    "major": Severity.MAJOR,
    "high": Severity.MAJOR,
    "severe": Severity.MAJOR,
    "serious": Severity.MAJOR,
    "significant": Severity.MAJOR,
    "moderate": Severity.MODERATE,
    "medium": Severity.MODERATE,
    "minor": Severity.MINOR,
    "low": Severity.MINOR,
    "mild": Severity.MINOR,
}

ENZYME_ALIASES = {
    "PGP": "P-gp",
    "P-GP": "P-gp",
    "P-GLYCOPROTEIN": "P-gp",
    "PGLYCOPROTEIN": "P-gp",
    "MDR1": "P-gp",
    "ABCB1": "P-gp",
    "ABCG2": "BCRP",
}

DRUG_ABBREVIATIONS = {
    "5-fu": "fluorouracil",
    "ctx": "cyclophosphamide",
    "mtx": "methotrexate",
    "cddp": "cisplatin",
    "asa": "aspirin",
}

DOSAGE_FORMS = re.compile(
    r"\b(?:tablets?|capsules?|for injection|injection|oral solution|oral suspension|"
    r"extended[- ]release|delayed[- ]release|film[- ]coated)\b",
    re.IGNORECASE,
)

MECHANISM_CATEGORIES = (
    ("inhibition", "enzyme_inhibition"),
    ("induction", "enzyme_induction"),
    ("substrate", "substrate_competition"),
    ("protein binding", "protein_binding"),
    ("renal", "renal_clearance"),
    ("absorption", "absorption"),
    ("pharmacodynamic", "pharmacodynamic"),
    ("qt prolongation", "pharmacodynamic"),
)

HIGH_QUALITY_SCORE = 70


@dataclass
class QualityThresholds:
    """Quality filter settings; None or 0 disables a numeric threshold."""

    min_composite_score: float | None = 30.0
    min_confidence: float | None = 40.0
    require_mechanism: bool = False

    @classmethod
    def from_settings(cls) -> QualityThresholds:
        return cls(
            min_composite_score=settings.min_composite_score,
            min_confidence=settings.min_confidence,
            require_mechanism=settings.require_mechanism,
        )


@dataclass
class NormalizationReport:
    original_count: int
    normalized_count: int
    reduction_percentage: float
    by_source: dict[str, int] = field(default_factory=dict)
    by_severity: dict[str, int] = field(default_factory=dict)
    by_evidence_level: dict[str, int] = field(default_factory=dict)
    by_mechanism: dict[str, int] = field(default_factory=dict)
    average_composite_score: float = 0.0
    high_quality_count: int = 0
    mechanism_known_count: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


def standardize_drug_name(name: str) -> str:
    """Lower-case, drop dosage-form words and expand common abbreviations."""
    cleaned = " ".join(DOSAGE_FORMS.sub(" ", name).split()).lower()
    return DRUG_ABBREVIATIONS.get(cleaned, cleaned)


def standardize_enzyme(name: str) -> str:
    compact = re.sub(r"\s+", "", name).upper()
    return ENZYME_ALIASES.get(compact, compact)


def standardize_severity(value: Severity | str | None) -> Severity | str | None:
    """Map severity synonyms onto Severity; unknown values pass through unchanged."""
    if isinstance(value, Severity):
        return value
    if isinstance(value, str):
        return SEVERITY_SYNONYMS.get(value.strip().lower(), value)
    return value


def mechanism_category(mechanism: str) -> str:
    if not mechanism or mechanism == MECHANISM_NOT_SPECIFIED:
        return "unknown"
    lowered = mechanism.lower()
    for needle, category in MECHANISM_CATEGORIES:
        if needle in lowered:
            return category
    return "other"


def _union_phrases(values: Iterable[str], placeholder: str) -> str:
    phrases: list[str] = []
    for value in values:
        for phrase in (value or "").split("; "):
            if phrase and phrase != placeholder and phrase not in phrases:
                phrases.append(phrase)
    return "; ".join(phrases) or placeholder


def _union(lists: Iterable[Iterable[str]]) -> list[str]:
    merged: list[str] = []
    for values in lists:
        for value in values:
            if value not in merged:
                merged.append(value)
    return merged


def _source_types(record: DrugInteractionEvidence) -> list[str]:
    return record.extraction_metadata.source_types or [SourceType(record.source_type).value]


def _merged_sources(record: DrugInteractionEvidence) -> list[str]:
    return record.extraction_metadata.merged_sources or [
        f"{SourceType(record.source_type).value}:{record.source_id}"
    ]


def composite_score(record: DrugInteractionEvidence) -> float:
    """Source reliability x confidence x severity weight, on [0, 100]."""
    reliability = max(SOURCE_RELIABILITY.get(t, 0.5) for t in _source_types(record))
    weight = SEVERITY_WEIGHT[Severity(record.interaction.severity)]
    score = reliability * record.evidence.confidence_percent * weight
    return round(min(max(score, 0.0), 100.0), 1)


class EvidenceNormalizer:
    """Merge, score and filter evidence gathered from all extractors."""

    def __init__(self, resolver: DrugResolver | None = None, cache_ttl: float | None = None):
        self.resolver = resolver
        self.cache = TTLCache(
            default_ttl=cache_ttl if cache_ttl is not None else settings.cache_ttl_seconds,
            max_size=settings.cache_max_size,
        )

    async def normalize_evidence(self, records: list[DrugInteractionEvidence]) -> list[DrugInteractionEvidence]:
        """Fill missing RXCUIs through the resolver (cached), then normalize."""
        if self.resolver is None:
            return self.normalize(records)
        records = [copy.deepcopy(record) for record in records]
        for record in records:
            for drug in (record.drug1, record.drug2):
                if drug.rxcui is None and drug.name.strip():
                    drug.rxcui = await self._resolve(drug.name)
        return self.normalize(records)

    async def _resolve(self, name: str) -> str | None:
        key = standardize_drug_name(name)
        cached = self.cache.get(key)
        if cached is not None:
            return cached or None
        rxcui = await self.resolver.resolve(name)
        self.cache.set(key, rxcui or "")
        return rxcui

    def normalize(self, records: list[DrugInteractionEvidence]) -> list[DrugInteractionEvidence]:
        """
        Standardize, validate and merge records per drug pair.

        Returns one record per pair, in order of each pair's first appearance.
        Input records are not modified.
        """
        groups: dict[str, list[DrugInteractionEvidence]] = {}
        for record in records:
            standardized = self._standardize(record)
            if standardized.is_valid():
                groups.setdefault(standardized.pair_key(), []).append(standardized)
        return [self._merge(group) for group in groups.values()]

    def _standardize(self, record: DrugInteractionEvidence) -> DrugInteractionEvidence:
        record = copy.deepcopy(record)
        record.drug1.name = standardize_drug_name(record.drug1.name or "")
        record.drug2.name = standardize_drug_name(record.drug2.name or "")
        record.interaction.severity = standardize_severity(record.interaction.severity)
        record.interaction.enzyme_pathway = _union(
            [[standardize_enzyme(e) for e in record.interaction.enzyme_pathway]]
        )
        record.evidence.level = EvidenceLevel(record.evidence.level)
        if record.evidence.confidence_scale != 100:
            record.evidence.confidence = round(record.evidence.confidence_percent, 2)
            record.evidence.confidence_scale = 100.0
        return record

    def quality_score(self, record: DrugInteractionEvidence) -> float:
        return composite_score(record)

    def _merge(self, group: list[DrugInteractionEvidence]) -> DrugInteractionEvidence:
        ranked = sorted(group, key=self.quality_score, reverse=True)
        merged = ranked[0]

        severities = _union([[Severity(r.interaction.severity) for r in ranked]])
        conflict = _union(
            [[Severity(s) for s in r.extraction_metadata.severity_conflict] for r in ranked]
            + ([severities] if len(severities) > 1 else [])
        )

        interaction = merged.interaction
        interaction.severity = Severity.most_severe(severities)
        interaction.mechanism = _union_phrases((r.interaction.mechanism for r in ranked), MECHANISM_NOT_SPECIFIED)
        interaction.effect = _union_phrases((r.interaction.effect for r in ranked), EFFECT_NOT_SPECIFIED)
        interaction.management = _union_phrases((r.interaction.management for r in ranked), DEFAULT_MANAGEMENT)
        interaction.enzyme_pathway = _union(r.interaction.enzyme_pathway for r in ranked)
        types = {r.interaction.interaction_type for r in ranked} - {"unknown"}
        if len(types) > 1:
            interaction.interaction_type = "mixed"
        elif types:
            interaction.interaction_type = types.pop()

        if merged.pharmacokinetics is None or merged.pharmacokinetics.is_empty():
            merged.pharmacokinetics = next(
                (r.pharmacokinetics for r in ranked if r.pharmacokinetics and not r.pharmacokinetics.is_empty()),
                None,
            )

        merged.evidence.level = max((EvidenceLevel(r.evidence.level) for r in ranked), key=lambda lvl: lvl.rank)
        merged.evidence.confidence = max(r.evidence.confidence for r in ranked)

        metadata = merged.extraction_metadata
        metadata.merged_sources = _union(_merged_sources(r) for r in ranked)
        metadata.source_types = _union(_source_types(r) for r in ranked)
        metadata.merged_record_count = sum(r.extraction_metadata.merged_record_count for r in ranked)
        metadata.severity_conflict = [s.value for s in sorted(conflict, key=lambda s: s.rank, reverse=True)]

        merged.evidence.composite_score = composite_score(merged)
        return merged

    def apply_quality_filters(
        self,
        records: list[DrugInteractionEvidence],
        thresholds: QualityThresholds | None = None,
    ) -> list[DrugInteractionEvidence]:
        """Keep records passing every enabled threshold, preserving order."""
        thresholds = thresholds or QualityThresholds.from_settings()
        kept = []
        for record in records:
            if thresholds.min_composite_score and (record.evidence.composite_score or 0.0) < thresholds.min_composite_score:
                continue
            if thresholds.min_confidence and record.evidence.confidence_percent < thresholds.min_confidence:
                continue
            if thresholds.require_mechanism and not record.interaction.mechanism_known:
                continue
            kept.append(record)
        return kept

    def generate_normalization_report(
        self,
        raw_count: int,
        normalized: list[DrugInteractionEvidence],
    ) -> NormalizationReport:
        scores = [r.evidence.composite_score for r in normalized if r.evidence.composite_score is not None]
        reduction = (raw_count - len(normalized)) / raw_count * 100 if raw_count else 0.0
        return NormalizationReport(
            original_count=raw_count,
            normalized_count=len(normalized),
            reduction_percentage=round(reduction, 1),
            by_source=dict(Counter(SourceType(r.source_type).value for r in normalized)),
            by_severity=dict(Counter(Severity(r.interaction.severity).value for r in normalized)),
            by_evidence_level=dict(Counter(EvidenceLevel(r.evidence.level).value for r in normalized)),
            by_mechanism=dict(Counter(mechanism_category(r.interaction.mechanism) for r in normalized)),
            average_composite_score=round(sum(scores) / len(scores), 1) if scores else 0.0,
            high_quality_count=sum(1 for s in scores if s >= HIGH_QUALITY_SCORE),
            mechanism_known_count=sum(1 for r in normalized if r.interaction.mechanism_known),
        )

    def clear_caches(self) -> None:
        self.cache.clear()

    def cache_stats(self) -> CacheStats:
        return self.cache.stats()
