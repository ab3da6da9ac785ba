"""Tests for tabular and JSON exports."""

import csv
import io
import json
from datetime import UTC, datetime

import polars as pl
import pytest

from ddi_miner.evidence.model import (
    DrugInteractionEvidence,
    DrugRef,
    EvidenceDetails,
    EvidenceLevel,
    Interaction,
    Severity,
    SourceInfo,
    SourceType,
)
from ddi_miner.mining.export import EXPORT_COLUMNS, evidence_frame, export_json, export_table


@pytest.fixture
def records():
    tricky = DrugInteractionEvidence(
        source_type=SourceType.PUBLICATION,
        source_id="31234567",
        drug1=DrugRef("ibrutinib", "1442981"),
        drug2=DrugRef("itraconazole"),
        interaction=Interaction(
            mechanism='CYP3A4 inhibition, "strong"',
            enzyme_pathway=["CYP3A4", "P-gp"],
            severity=Severity.MAJOR,
            effect="Increased drug exposure",
        ),
        evidence=EvidenceDetails(level=EvidenceLevel.HIGH, confidence=95.0, composite_score=72.2),
        source=SourceInfo(
            title="Effect of itraconazole, a CYP3A4\tinhibitor, on ibrutinib",
            url="https://pubmed.ncbi.nlm.nih.gov/31234567/",
        ),
    )
    plain = DrugInteractionEvidence(
        source_type=SourceType.REGULATORY_LABEL,
        source_id="d3f0e1a2-warfarin",
        drug1=DrugRef("warfarin", "11289"),
        drug2=DrugRef("NSAIDs"),
    )
    return [tricky, plain]


def read(text, delimiter):
    return list(csv.reader(io.StringIO(text), delimiter=delimiter))


def test_csv_export(records):
    rows = read(export_table(records, "csv"), ",")
    assert tuple(rows[0]) == EXPORT_COLUMNS
    first = dict(zip(rows[0], rows[1]))
    assert first["mechanism"] == 'CYP3A4 inhibition, "strong"'
    assert first["enzyme_pathway"] == "CYP3A4, P-gp"
    assert first["drug2_rxcui"] == ""
    assert first["composite_score"] == "72.2"
    assert first["source_type"] == "publication"
    second = dict(zip(rows[0], rows[2]))
    assert second["severity"] == "moderate"
    assert second["composite_score"] == ""
    assert second["mechanism"] == "Mechanism not specified"


def test_every_field_is_quoted(records):
    text = export_table(records[1:], "csv")
    data_line = text.splitlines()[1]
    assert data_line.startswith('"warfarin","11289","NSAIDs",""')


def test_tsv_export(records):
    rows = read(export_table(records, "tsv"), "\t")
    first = dict(zip(rows[0], rows[1]))
    assert first["source_title"] == "Effect of itraconazole, a CYP3A4\tinhibitor, on ibrutinib"
    assert len(rows) == 3


def test_empty_export_has_header():
    rows = read(export_table([], "csv"), ",")
    assert rows == [list(EXPORT_COLUMNS)]


def test_unsupported_format(records):
    with pytest.raises(ValueError, match="Unsupported export format"):
        export_table(records, "xlsx")


def test_frame_is_all_strings(records):
    frame = evidence_frame(records)
    assert frame.columns == list(EXPORT_COLUMNS)
    assert frame.height == 2
    assert frame.dtypes == [pl.String] * len(EXPORT_COLUMNS)


def test_json_export_serialises_datetimes():
    text = export_json({"finished_at": datetime(2025, 1, 2, tzinfo=UTC), "count": 1})
    assert json.loads(text) == {"finished_at": "2025-01-02 00:00:00+00:00", "count": 1}
