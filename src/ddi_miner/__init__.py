"""
ddi_miner: Drug-Drug Interaction Evidence Miner

Harvests drug-drug interaction (DDI) claims from public sources and
consolidates them into a curated evidence dataset:

    Source documents → Extractors → Raw evidence → Normalizer → Curated evidence → Store

Sources:
- ClinicalTrials.gov v2 (eligibility criteria, interventions, summaries)
- openFDA drug labels and DailyMed SPL documents
- PubMed abstracts (optionally PMC full text)

Core constraints:
- Best-effort heuristic extraction, output is meant for downstream curation
- Never a clinical decision-support engine
"""

__version__ = "0.1.0"
