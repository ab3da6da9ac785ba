"""
Shared rich console and level-aware message helpers.

All user-facing diagnostics are printed through one rich Console using the
markup conventions of the CLI: a yellow "[warn]" or red "[error]" prefix, dim debug.
"""

from rich.console import Console
from rich.markup import escape

from ddi_miner.config import settings

console = Console()

_LEVELS = {"DEBUG": 10, "INFO": 20, "WARNING": 30, "ERROR": 40}


def _enabled(level: str) -> bool:
    return _LEVELS[level] >= _LEVELS[settings.log_level]


def debug(message: str) -> None:
    if _enabled("DEBUG"):
        console.print(f"[dim]{escape(message)}[/]")


def info(message: str) -> None:
    if _enabled("INFO"):
        console.print(message)


def warn(message: str) -> None:
    if _enabled("WARNING"):
        console.print(f"[yellow]\\[warn][/] {escape(message)}")


def error(message: str) -> None:
    console.print(f"[red]\\[error][/] {escape(message)}")
