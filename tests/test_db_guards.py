"""Tests for insert_rows argument checks (no database needed)."""

import pytest

from ddi_miner.db import insert_rows


def test_insert_rejects_bad_table_name():
    with pytest.raises(ValueError, match="Invalid table name"):
        insert_rows("evidence; DROP TABLE x", [{"a": 1}])


def test_insert_rejects_bad_column_names():
    with pytest.raises(ValueError, match="Invalid column names"):
        insert_rows("dbo.drug_interaction_evidence", [{"drug1_name": "warfarin", "x) VALUES (1); --": 1}])


def test_insert_without_rows_is_a_no_op():
    assert insert_rows("not a table", []) == 0
