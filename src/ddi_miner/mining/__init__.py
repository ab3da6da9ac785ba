"""
Mining orchestration: batching over drugs, progress, reports and export.
"""

from ddi_miner.mining.export import EXPORT_COLUMNS, export_table
from ddi_miner.mining.orchestrator import MiningConfig, MiningOrchestrator, MiningPhase, MiningResult
from ddi_miner.mining.progress import ProgressSnapshot
from ddi_miner.mining.reports import ExtractionReport

__all__ = [
    "EXPORT_COLUMNS",
    "ExtractionReport",
    "MiningConfig",
    "MiningOrchestrator",
    "MiningPhase",
    "MiningResult",
    "ProgressSnapshot",
    "export_table",
]
