"""
Database schema for curated DDI evidence.

Creates dbo.drug_interaction_evidence, one row per normalized drug pair.
"""

from ddi_miner.db.connection import run_script

EVIDENCE_TABLE = "drug_interaction_evidence"

SCHEMA_SQL = f"""
IF OBJECT_ID('dbo.{EVIDENCE_TABLE}', 'U') IS NULL
CREATE TABLE dbo.{EVIDENCE_TABLE} (
    evidence_id         BIGINT IDENTITY(1,1) PRIMARY KEY,
    interaction_key     NVARCHAR(400) NOT NULL,
    drug1_name          NVARCHAR(200) NOT NULL,
    drug1_rxcui         NVARCHAR(20) NULL,
    drug2_name          NVARCHAR(200) NOT NULL,
    drug2_rxcui         NVARCHAR(20) NULL,
    interaction_type    NVARCHAR(40) NULL,
    mechanism           NVARCHAR(1000) NULL,
    enzyme_pathway      NVARCHAR(400) NULL,
    severity            NVARCHAR(20) NOT NULL,
    effect              NVARCHAR(1000) NULL,
    management          NVARCHAR(1000) NULL,
    evidence_level      NVARCHAR(10) NOT NULL,
    confidence          FLOAT NULL,
    composite_score     FLOAT NULL,
    study_type          NVARCHAR(40) NULL,
    source_type         NVARCHAR(40) NOT NULL,
    source_id           NVARCHAR(100) NOT NULL,
    source_title        NVARCHAR(1000) NULL,
    source_url          NVARCHAR(1000) NULL,
    source_section      NVARCHAR(100) NULL,
    raw_text            NVARCHAR(1000) NULL,
    pharmacokinetics_json NVARCHAR(MAX) NULL,
    merged_sources      NVARCHAR(MAX) NULL,
    sources_count       INT NOT NULL DEFAULT 1,
    severity_conflict   NVARCHAR(100) NULL,
    extraction_method   NVARCHAR(100) NULL,
    validation_status   NVARCHAR(20) NOT NULL DEFAULT 'pending',
    extracted_at        DATETIMEOFFSET NULL,
    loaded_at           DATETIMEOFFSET NOT NULL DEFAULT SYSDATETIMEOFFSET()
);
GO
IF NOT EXISTS (SELECT 1 FROM sys.indexes WHERE name = 'IX_{EVIDENCE_TABLE}_key')
CREATE INDEX IX_{EVIDENCE_TABLE}_key ON dbo.{EVIDENCE_TABLE} (interaction_key);
GO
"""


def init_schema() -> None:
    """Create the evidence table and its pair-key index if missing."""
    run_script(SCHEMA_SQL)


def drop_schema() -> None:
    """
    Drop the evidence table.

    WARNING: This destroys all data!
    """
    run_script(f"DROP TABLE IF EXISTS dbo.{EVIDENCE_TABLE};")
