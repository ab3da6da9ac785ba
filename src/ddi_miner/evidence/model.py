"""
Canonical evidence record for one claimed drug-drug interaction.

A DrugInteractionEvidence is created by an extractor from a single text
passage. The normalizer later merges records describing the same drug pair
into one representative record carrying a composite score.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

RAW_TEXT_LIMIT = 1000
MECHANISM_NOT_SPECIFIED = "Mechanism not specified"
EFFECT_NOT_SPECIFIED = "Effect not specified"
DEFAULT_MANAGEMENT = "Standard monitoring"


class SourceType(str, Enum):
    """Corpus an evidence record was mined from."""

    CLINICAL_TRIAL = "clinical_trial"
    REGULATORY_LABEL = "regulatory_label"
    PUBLICATION = "publication"


class Severity(str, Enum):
    """Interaction severity, ordered minor < moderate < major < contraindicated."""

    MINOR = "minor"
    MODERATE = "moderate"
    MAJOR = "major"
    CONTRAINDICATED = "contraindicated"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    @classmethod
    def most_severe(cls, values: list[Severity]) -> Severity:
        return max(values, key=lambda s: s.rank)


_SEVERITY_RANK = {
    Severity.MINOR: 1,
    Severity.MODERATE: 2,
    Severity.MAJOR: 3,
    Severity.CONTRAINDICATED: 4,
}


class EvidenceLevel(str, Enum):
    """Coarse trust classification of a record's source context."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return {"low": 1, "medium": 2, "high": 3}[self.value]


@dataclass
class DrugRef:
    """A drug mention with its RxNorm identifier when resolved."""

    name: str
    rxcui: str | None = None

    @property
    def token(self) -> str:
        """Identity used for pair keys: RXCUI if known, else the lower-cased name."""
        return self.rxcui or self.name.strip().lower()


@dataclass
class Interaction:
    mechanism: str = MECHANISM_NOT_SPECIFIED
    enzyme_pathway: list[str] = field(default_factory=list)
    severity: Severity | str = Severity.MODERATE
    effect: str = EFFECT_NOT_SPECIFIED
    management: str = DEFAULT_MANAGEMENT
    interaction_type: str = "unknown"  # pharmacokinetic, pharmacodynamic, mixed, unknown

    @property
    def mechanism_known(self) -> bool:
        return bool(self.mechanism) and self.mechanism != MECHANISM_NOT_SPECIFIED


@dataclass
class EvidenceDetails:
    """
    Strength of a claim.

    `confidence` is expressed on `confidence_scale`: 100 for labels,
    publications and normalized records, 1 for raw clinical-trial records.
    """

    level: EvidenceLevel = EvidenceLevel.LOW
    confidence: float = 0.0
    confidence_scale: float = 100.0
    composite_score: float | None = None
    evidence_context: str = ""
    study_type: str = ""

    @property
    def confidence_percent(self) -> float:
        if self.confidence_scale == 100:
            return self.confidence
        return self.confidence / self.confidence_scale * 100


@dataclass
class SourceInfo:
    title: str = ""
    url: str = ""
    section: str | None = None
    raw_text: str = ""

    def __post_init__(self):
        if len(self.raw_text) > RAW_TEXT_LIMIT:
            self.raw_text = self.raw_text[:RAW_TEXT_LIMIT]


@dataclass
class ClinicalTrialInfo:
    nct_id: str
    phase: str | None = None
    status: str | None = None
    study_type: str | None = None
    conditions: list[str] = field(default_factory=list)
    exclusion_mention: bool = False
    concomitant_use_allowed: bool = True


@dataclass
class RegulatoryLabelInfo:
    label_id: str
    product_name: str | None = None
    manufacturer: str | None = None
    label_section: str | None = None
    contraindication: bool = False
    warning_type: str | None = None  # boxed_warning, warning, precaution
    dosing_adjustment: bool = False
    product_rxcui: str | None = None  # openFDA SCD/SBD identifier of the labelled product


@dataclass
class PharmacokineticChanges:
    """Quantitative PK deltas, e.g. "80%" or "3-fold"."""

    auc_change: str | None = None
    cmax_change: str | None = None
    clearance_change: str | None = None
    half_life_change: str | None = None

    def is_empty(self) -> bool:
        return not any(asdict(self).values())


@dataclass
class PublicationInfo:
    pmid: str
    journal: str | None = None
    publication_date: str | None = None
    authors: list[str] = field(default_factory=list)
    doi: str | None = None
    pmcid: str | None = None
    population_size: int | None = None
    p_value: str | None = None


@dataclass
class ExtractionMetadata:
    extracted_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    extraction_method: str = ""
    text_extraction_confidence: float = 0.0
    validation_status: str = "pending"
    merged_sources: list[str] = field(default_factory=list)
    source_types: list[str] = field(default_factory=list)
    merged_record_count: int = 1
    severity_conflict: list[str] = field(default_factory=list)


@dataclass
class DrugInteractionEvidence:
    """One claimed interaction between drug1 and drug2 from one source passage."""

    source_type: SourceType
    source_id: str
    drug1: DrugRef
    drug2: DrugRef
    interaction: Interaction = field(default_factory=Interaction)
    evidence: EvidenceDetails = field(default_factory=EvidenceDetails)
    source: SourceInfo = field(default_factory=SourceInfo)
    extraction_metadata: ExtractionMetadata = field(default_factory=ExtractionMetadata)
    clinical_trial: ClinicalTrialInfo | None = None
    regulatory_label: RegulatoryLabelInfo | None = None
    pharmacokinetics: PharmacokineticChanges | None = None
    publication: PublicationInfo | None = None

    def is_valid(self) -> bool:
        """Both names present, distinct (case-insensitive), severity recognised."""
        name1 = (self.drug1.name or "").strip()
        name2 = (self.drug2.name or "").strip()
        if not name1 or not name2:
            return False
        if name1.lower() == name2.lower():
            return False
        try:
            Severity(self.interaction.severity)
        except ValueError:
            return False
        return True

    def pair_key(self) -> str:
        """Order-independent identity of the drug pair."""
        return "__".join(sorted((self.drug1.token, self.drug2.token)))

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready nested dictionary."""
        return json.loads(json.dumps(asdict(self), default=_json_default))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DrugInteractionEvidence:
        interaction = dict(data.get("interaction") or {})
        if "severity" in interaction:
            interaction["severity"] = Severity(interaction["severity"])
        evidence = dict(data.get("evidence") or {})
        if "level" in evidence:
            evidence["level"] = EvidenceLevel(evidence["level"])
        metadata = dict(data.get("extraction_metadata") or {})
        if isinstance(metadata.get("extracted_at"), str):
            metadata["extracted_at"] = datetime.fromisoformat(metadata["extracted_at"])

        def optional(key: str, kind: type) -> Any:
            value = data.get(key)
            return kind(**value) if value else None

        return cls(
            source_type=SourceType(data["source_type"]),
            source_id=data["source_id"],
            drug1=DrugRef(**data["drug1"]),
            drug2=DrugRef(**data["drug2"]),
            interaction=Interaction(**interaction),
            evidence=EvidenceDetails(**evidence),
            source=SourceInfo(**(data.get("source") or {})),
            extraction_metadata=ExtractionMetadata(**metadata),
            clinical_trial=optional("clinical_trial", ClinicalTrialInfo),
            regulatory_label=optional("regulatory_label", RegulatoryLabelInfo),
            pharmacokinetics=optional("pharmacokinetics", PharmacokineticChanges),
            publication=optional("publication", PublicationInfo),
        )

    def to_record(self) -> dict[str, Any]:
        """Flat row for the drug_interaction_evidence table."""
        interaction = self.interaction
        severity = Severity(interaction.severity)
        pk = self.pharmacokinetics
        return {
            "interaction_key": self.pair_key(),
            "drug1_name": self.drug1.name,
            "drug1_rxcui": self.drug1.rxcui,
            "drug2_name": self.drug2.name,
            "drug2_rxcui": self.drug2.rxcui,
            "interaction_type": interaction.interaction_type,
            "mechanism": interaction.mechanism,
            "enzyme_pathway": ", ".join(interaction.enzyme_pathway),
            "severity": severity.value,
            "effect": interaction.effect,
            "management": interaction.management,
            "evidence_level": EvidenceLevel(self.evidence.level).value,
            "confidence": round(self.evidence.confidence_percent, 1),
            "composite_score": self.evidence.composite_score,
            "study_type": self.evidence.study_type,
            "source_type": SourceType(self.source_type).value,
            "source_id": self.source_id,
            "source_title": self.source.title,
            "source_url": self.source.url,
            "source_section": self.source.section,
            "raw_text": self.source.raw_text,
            "pharmacokinetics_json": json.dumps(asdict(pk)) if pk and not pk.is_empty() else None,
            "merged_sources": ", ".join(self.extraction_metadata.merged_sources),
            "sources_count": self.extraction_metadata.merged_record_count,
            "severity_conflict": ", ".join(self.extraction_metadata.severity_conflict) or None,
            "extraction_method": self.extraction_metadata.extraction_method,
            "validation_status": self.extraction_metadata.validation_status,
            "extracted_at": self.extraction_metadata.extracted_at,
        }


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")
