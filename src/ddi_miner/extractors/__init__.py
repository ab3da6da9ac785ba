"""
DDI source extractors.

Each extractor turns one external corpus into DrugInteractionEvidence records
for a single drug:
- clinical_trials: ClinicalTrials.gov eligibility criteria and descriptions
- labels: openFDA label sections and DailyMed SPL documents
- publications: PubMed abstracts (optionally PMC full text)

Shared heuristics live in `rules`.
"""

from ddi_miner.extractors.base import BaseExtractor, ExtractionOptions
from ddi_miner.extractors.clinical_trials import ClinicalTrialsExtractor
from ddi_miner.extractors.labels import RegulatoryLabelExtractor
from ddi_miner.extractors.publications import PublicationExtractor

__all__ = [
    "BaseExtractor",
    "ClinicalTrialsExtractor",
    "ExtractionOptions",
    "PublicationExtractor",
    "RegulatoryLabelExtractor",
]
