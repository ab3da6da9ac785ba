"""
Evidence model and normalization.

- model: DrugInteractionEvidence record and its parts
- normalize: pair-level merging, composite scoring and quality filtering
"""

from ddi_miner.evidence.model import (
    DrugInteractionEvidence,
    DrugRef,
    EvidenceDetails,
    EvidenceLevel,
    ExtractionMetadata,
    Interaction,
    Severity,
    SourceInfo,
    SourceType,
)
from ddi_miner.evidence.normalize import EvidenceNormalizer, NormalizationReport, QualityThresholds

__all__ = [
    "DrugInteractionEvidence",
    "DrugRef",
    "EvidenceDetails",
    "EvidenceLevel",
    "EvidenceNormalizer",
    "ExtractionMetadata",
    "Interaction",
    "NormalizationReport",
    "QualityThresholds",
    "Severity",
    "SourceInfo",
    "SourceType",
]
