"""Tests for the evidence model."""

import json

from ddi_miner.evidence.model import (
    RAW_TEXT_LIMIT,
    DrugInteractionEvidence,
    DrugRef,
    EvidenceDetails,
    EvidenceLevel,
    Interaction,
    PharmacokineticChanges,
    PublicationInfo,
    Severity,
    SourceInfo,
    SourceType,
)


def make(drug1="warfarin", drug2="aspirin", severity=Severity.MAJOR, rxcui1=None, rxcui2=None):
    return DrugInteractionEvidence(
        source_type=SourceType.REGULATORY_LABEL,
        source_id="label-1",
        drug1=DrugRef(drug1, rxcui1),
        drug2=DrugRef(drug2, rxcui2),
        interaction=Interaction(mechanism="CYP2C9 inhibition", enzyme_pathway=["CYP2C9"], severity=severity),
        evidence=EvidenceDetails(level=EvidenceLevel.HIGH, confidence=90),
        source=SourceInfo(title="Coumadin prescribing information", url="https://example.org/label"),
    )


def test_validity_gate():
    assert make().is_valid()
    assert not make(drug2="").is_valid()
    assert not make(drug1="   ").is_valid()
    assert not make(drug2="Warfarin").is_valid()
    assert not make(severity="catastrophic").is_valid()


def test_pair_key_is_order_independent():
    forward = make("warfarin", "aspirin")
    backward = make("aspirin", "warfarin")
    assert forward.pair_key() == backward.pair_key() == "aspirin__warfarin"


def test_pair_key_prefers_rxcui():
    record = make(rxcui1="11289", rxcui2="1191")
    assert record.pair_key() == "1191__11289"
    assert make("Warfarin", "ASPIRIN").pair_key() == "aspirin__warfarin"


def test_raw_text_is_truncated():
    source = SourceInfo(raw_text="x" * (RAW_TEXT_LIMIT + 50))
    assert len(source.raw_text) == RAW_TEXT_LIMIT


def test_severity_order():
    assert Severity.most_severe([Severity.MINOR, Severity.CONTRAINDICATED, Severity.MAJOR]) is Severity.CONTRAINDICATED
    assert Severity.MODERATE.rank < Severity.MAJOR.rank


def test_confidence_percent():
    assert EvidenceDetails(confidence=0.85, confidence_scale=1.0).confidence_percent == 85.0
    assert EvidenceDetails(confidence=72.5).confidence_percent == 72.5


def test_mechanism_known():
    assert Interaction(mechanism="CYP3A4 inhibition").mechanism_known
    assert not Interaction().mechanism_known


def test_pharmacokinetics_empty():
    assert PharmacokineticChanges().is_empty()
    assert not PharmacokineticChanges(auc_change="80%").is_empty()


def test_dict_round_trip():
    record = make()
    record.pharmacokinetics = PharmacokineticChanges(auc_change="3-fold")
    record.publication = PublicationInfo(pmid="123", authors=["Smith J"])
    data = record.to_dict()
    json.dumps(data)
    assert data["interaction"]["severity"] == "major"
    restored = DrugInteractionEvidence.from_dict(data)
    assert restored == record


def test_to_record_columns():
    record = make(rxcui1="11289")
    record.evidence.composite_score = 85.5
    row = record.to_record()
    assert row["interaction_key"] == record.pair_key()
    assert row["drug1_rxcui"] == "11289"
    assert row["severity"] == "major"
    assert row["evidence_level"] == "high"
    assert row["source_type"] == "regulatory_label"
    assert row["enzyme_pathway"] == "CYP2C9"
    assert row["pharmacokinetics_json"] is None
    assert row["severity_conflict"] is None
    assert row["sources_count"] == 1
