"""
Persistence for mined evidence.

SQL Server through mssql-python, or Parquet part files through polars.
"""

from ddi_miner.db.connection import fetch_all, get_connection, insert_rows
from ddi_miner.db.schema import EVIDENCE_TABLE, drop_schema, init_schema
from ddi_miner.db.store import EvidenceStore, ParquetEvidenceStore, SqlServerEvidenceStore

__all__ = [
    "EVIDENCE_TABLE",
    "EvidenceStore",
    "ParquetEvidenceStore",
    "SqlServerEvidenceStore",
    "drop_schema",
    "fetch_all",
    "get_connection",
    "init_schema",
    "insert_rows",
]
