"""
SQL Server connection management.

Uses mssql-python (Microsoft's native Python driver) for database access.
https://github.com/microsoft/mssql-python
"""

import re
from collections.abc import Generator
from contextlib import contextmanager
from typing import Any

import mssql_python
from mssql_python import connect as mssql_connect
from mssql_python.connection import Connection

from ddi_miner.config import settings

IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)?$")


@contextmanager
def get_connection(connection_string: str | None = None) -> Generator[Connection, None, None]:
    """
    Open a database connection as a context manager.

    Usage:
        with get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT 1")
    """
    conn = mssql_connect(connection_string or settings.connection_string())
    try:
        yield conn
    finally:
        conn.close()


def fetch_all(sql: str, params: tuple | None = None, connection_string: str | None = None) -> list[Any]:
    """Run a query and return all rows."""
    with get_connection(connection_string) as conn:
        cursor = conn.cursor()
        if params:
            cursor.execute(sql, *params)
        else:
            cursor.execute(sql)
        try:
            return cursor.fetchall()
        except mssql_python.ProgrammingError:
            # Statement produced no result set
            return []


def insert_rows(table: str, rows: list[dict[str, Any]], connection_string: str | None = None) -> int:
    """
    Insert dict rows into `table` in one executemany call.

    All rows must share the keys of the first row, which name the columns.

    Returns:
        Number of rows inserted
    """
    if not rows:
        return 0
    if not IDENTIFIER.match(table):
        raise ValueError(f"Invalid table name: {table!r}")
    columns = list(rows[0])
    bad = [c for c in columns if not IDENTIFIER.match(c) or "." in c]
    if bad:
        raise ValueError(f"Invalid column names: {bad!r}")
    sql = (
        f"INSERT INTO {table} ({', '.join(columns)}) "
        f"VALUES ({', '.join('?' for _ in columns)})"
    )
    with get_connection(connection_string) as conn:
        cursor = conn.cursor()
        cursor.executemany(sql, [tuple(row[c] for c in columns) for row in rows])
        conn.commit()
    return len(rows)


def run_script(sql_script: str, connection_string: str | None = None) -> None:
    """Execute a multi-statement script split on GO lines."""
    with get_connection(connection_string) as conn:
        cursor = conn.cursor()
        for batch in re.split(r"(?m)^\s*GO\s*$", sql_script, flags=re.IGNORECASE):
            batch = batch.strip()
            if batch:
                cursor.execute(batch)
        conn.commit()
