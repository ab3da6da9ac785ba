"""
Evidence stores used by the mining orchestrator.

A store persists evidence rows in batches and can list the drug universe to
mine. Stores are synchronous; the orchestrator calls them from a worker
thread.
"""

from pathlib import Path
from typing import Any, Protocol

import mssql_python
import polars as pl

from ddi_miner.config import settings
from ddi_miner.db.connection import fetch_all, insert_rows
from ddi_miner.errors import PersistenceError

ONCOLOGY_TERMS = ("oncology", "cancer", "antineoplastic", "tumor", "carcinoma", "lymphoma", "leukemia")
MAX_UNIVERSE = 200


class EvidenceStore(Protocol):
    def insert_batch(self, table: str, records: list[dict[str, Any]]) -> int:
        """Persist one batch; raises PersistenceError on failure."""
        ...

    def fetch_drug_names(self, indications: list[str] | None = None) -> list[str]:
        """Drug names for the given indications, or the oncology universe."""
        ...


class SqlServerEvidenceStore:
    """Evidence rows in SQL Server via mssql-python."""

    def __init__(self, connection_string: str | None = None, schema: str = "dbo"):
        self.connection_string = connection_string or settings.connection_string()
        self.schema = schema

    def insert_batch(self, table: str, records: list[dict[str, Any]]) -> int:
        qualified = table if "." in table else f"{self.schema}.{table}"
        try:
            return insert_rows(qualified, records, self.connection_string)
        except mssql_python.Error as e:
            raise PersistenceError(f"insert into {qualified} failed: {e}") from e

    def fetch_drug_names(self, indications: list[str] | None = None) -> list[str]:
        if indications:
            clause = " OR ".join("indication LIKE ?" for _ in indications)
            params = tuple(f"%{term}%" for term in indications)
        else:
            clause = " OR ".join("therapeutic_class LIKE ? OR indication LIKE ?" for _ in ONCOLOGY_TERMS)
            params = tuple(f"%{term}%" for term in ONCOLOGY_TERMS for _ in range(2))
        sql = (
            f"SELECT DISTINCT TOP {MAX_UNIVERSE} generic_name FROM {self.schema}.drugs "
            f"WHERE generic_name IS NOT NULL AND ({clause}) ORDER BY generic_name"
        )
        try:
            rows = fetch_all(sql, params, self.connection_string)
        except mssql_python.Error as e:
            raise PersistenceError(f"drug universe query failed: {e}") from e
        return [row[0] for row in rows if row[0]]


class ParquetEvidenceStore:
    """
    Evidence rows as Parquet part files under `<root>/<table>/`.

    The drug universe is read from an optional Parquet file (default
    `<raw_dir>/drugs.parquet`) with columns `generic_name` and, for
    indication queries, `indication`.
    """

    def __init__(self, root: Path | None = None, drugs_path: Path | None = None):
        self.root = root or settings.gold_dir
        self.drugs_path = drugs_path or settings.raw_dir / "drugs.parquet"

    def insert_batch(self, table: str, records: list[dict[str, Any]]) -> int:
        if not records:
            return 0
        table_dir = self.root / table
        try:
            table_dir.mkdir(parents=True, exist_ok=True)
            part = len(list(table_dir.glob("part-*.parquet")))
            df = pl.DataFrame(records, infer_schema_length=None)
            df = df.with_columns(
                pl.col(name).cast(pl.String) for name, dtype in df.schema.items() if dtype == pl.Null
            )
            df.write_parquet(table_dir / f"part-{part:05d}.parquet")
        except (OSError, pl.exceptions.PolarsError) as e:
            raise PersistenceError(f"write to {table_dir} failed: {e}") from e
        return df.height

    def read_table(self, table: str) -> pl.DataFrame:
        """All persisted rows of `table` (empty frame when nothing was written)."""
        parts = sorted((self.root / table).glob("part-*.parquet"))
        if not parts:
            return pl.DataFrame()
        return pl.concat([pl.read_parquet(p) for p in parts], how="diagonal_relaxed")

    def fetch_drug_names(self, indications: list[str] | None = None) -> list[str]:
        if not self.drugs_path.exists():
            return []
        try:
            df = pl.read_parquet(self.drugs_path)
        except (OSError, pl.exceptions.PolarsError) as e:
            raise PersistenceError(f"cannot read {self.drugs_path}: {e}") from e
        if indications and "indication" in df.columns:
            indication = pl.col("indication").str.to_lowercase()
            df = df.filter(
                pl.any_horizontal([indication.str.contains(term.lower(), literal=True) for term in indications])
            )
        return df.get_column("generic_name").drop_nulls().unique(maintain_order=True).head(MAX_UNIVERSE).to_list()
