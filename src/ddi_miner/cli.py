"""
Command-line interface for ddi_miner.

Commands:
- init-db: Create the evidence table in SQL Server
- mine: Mine DDI evidence for drugs, indications or the oncology universe
- extract: Run one extractor for one drug and print what it finds
"""

import asyncio
from pathlib import Path
from typing import Annotated

import typer
from rich.markup import escape
from rich.progress import BarColumn, MofNCompleteColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table

from ddi_miner.console import console, error

app = typer.Typer(
    name="ddi-miner",
    help="Drug-drug interaction evidence miner",
    no_args_is_help=True,
)

SOURCE_FLAGS = {
    "clinical_trial": "enable_clinical_trials",
    "regulatory_label": "enable_regulatory_labels",
    "publication": "enable_publications",
}
STORES = ("none", "parquet", "sqlserver")


@app.command()
def init_db(
    drop: Annotated[bool, typer.Option("--drop", help="Drop the evidence table first (destroys data)")] = False,
):
    """Initialize the database schema (create dbo.drug_interaction_evidence)."""
    from ddi_miner.db import drop_schema, init_schema

    if drop:
        console.print("[bold red]Dropping evidence table...[/]")
        drop_schema()
    console.print("[bold blue]Initializing database schema...[/]")
    init_schema()
    console.print("[bold green]Done. Schema created successfully[/]")


def _make_store(kind: str):
    if kind == "parquet":
        from ddi_miner.db import ParquetEvidenceStore

        return ParquetEvidenceStore()
    if kind == "sqlserver":
        from ddi_miner.db import SqlServerEvidenceStore

        return SqlServerEvidenceStore()
    return None


def _summary_table(result) -> Table:
    table = Table(title="Mining Summary", show_header=True)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green", justify="right")

    extraction = result.extraction_report
    if extraction is not None:
        table.add_row("Drugs processed", str(extraction.drugs_processed))
        table.add_row("Drugs with evidence", str(extraction.drugs_with_evidence))
        table.add_row("Raw evidence", str(extraction.total_evidence))
        for source, count in sorted(extraction.by_source.items()):
            table.add_row(f"  {source}", str(count))
        table.add_row("Success rate", f"{extraction.success_rate}%")
        table.add_row("Errors", str(len(extraction.errors)))
        if not extraction.complete:
            table.add_row("Unprocessed drugs", str(len(extraction.unprocessed_drugs)))
    normalization = result.normalization_report
    if normalization is not None:
        table.add_row("Normalized evidence", str(normalization.normalized_count))
        table.add_row("Reduction", f"{normalization.reduction_percentage}%")
        table.add_row("Avg composite score", str(normalization.average_composite_score))
        table.add_row("High quality", str(normalization.high_quality_count))
    table.add_row("Persisted", str(result.persisted_count))
    table.add_row("Duration (s)", str(result.duration_seconds))
    return table


@app.command()
def mine(
    drugs: Annotated[list[str] | None, typer.Option("--drug", "-d", help="Drug names to mine")] = None,
    indications: Annotated[
        list[str] | None, typer.Option("--indication", "-i", help="Cancer indications to mine")
    ] = None,
    all_drugs: bool = typer.Option(False, "--all", help="Mine the full oncology drug universe"),
    batch_size: int | None = typer.Option(None, "--batch-size", "-b", help="Drugs per batch (1-20)"),
    delay: int | None = typer.Option(None, "--delay", help="Delay between batches in ms (>= 1000)"),
    sources: Annotated[
        list[str] | None,
        typer.Option("--source", "-s", help="Restrict to clinical_trial, regulatory_label, publication"),
    ] = None,
    store: str = typer.Option("none", "--store", help="Persistence: none, parquet or sqlserver"),
    fmt: str = typer.Option("json", "--format", "-f", help="Export format: json, csv or tsv"),
    output: Path | None = typer.Option(None, "--output", "-o", help="Write the export to this file"),
    normalize: bool = typer.Option(True, "--normalize/--no-normalize", help="Merge and filter evidence"),
):
    """Mine DDI evidence and export the results."""
    from ddi_miner.errors import ConfigurationError
    from ddi_miner.mining import MiningOrchestrator
    from ddi_miner.mining.export import EXPORT_FORMATS

    if not (drugs or indications or all_drugs):
        error("give --drug, --indication or --all")
        raise typer.Exit(code=2)
    if store not in STORES:
        error(f"unknown store {store!r}; choose from {', '.join(STORES)}")
        raise typer.Exit(code=2)
    if fmt.lower() not in EXPORT_FORMATS:
        error(f"unknown format {fmt!r}; choose from {', '.join(EXPORT_FORMATS)}")
        raise typer.Exit(code=2)

    overrides: dict = {"enable_normalization": normalize, "enable_persistence": store != "none"}
    if batch_size is not None:
        overrides["batch_size"] = batch_size
    if delay is not None:
        overrides["delay_between_batches_ms"] = delay
    if sources:
        unknown = sorted(set(sources) - set(SOURCE_FLAGS))
        if unknown:
            error(f"unknown source(s): {', '.join(unknown)}")
            raise typer.Exit(code=2)
        overrides.update({flag: name in sources for name, flag in SOURCE_FLAGS.items()})

    async def run():
        async with MiningOrchestrator(store=_make_store(store)) as miner:
            await miner.initialize(overrides)
            with Progress(
                SpinnerColumn(),
                TextColumn("[bold cyan]{task.description}"),
                BarColumn(),
                MofNCompleteColumn(),
                console=console,
            ) as progress:
                task = progress.add_task("initializing", total=None)

                def on_progress(snapshot):
                    progress.update(
                        task,
                        description=snapshot.phase,
                        completed=snapshot.completed,
                        total=snapshot.total or None,
                    )

                miner.set_progress_callback(on_progress)
                if drugs:
                    result = await miner.mine_ddi_for_multiple_drugs(drugs)
                elif indications:
                    result = await miner.mine_ddi_for_indications(indications)
                else:
                    result = await miner.mine_all_oncology_drugs()
            return result, miner.export_results(fmt)

    try:
        result, exported = asyncio.run(run())
    except ConfigurationError as e:
        error(str(e))
        raise typer.Exit(code=1) from e

    console.print(_summary_table(result))
    if output:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(exported, encoding="utf-8")
        console.print(f"[green]✓[/] Wrote {fmt} export to {escape(str(output))}")


@app.command()
def extract(
    source: str = typer.Argument(..., help="clinical_trial, regulatory_label or publication"),
    drug: str = typer.Argument(..., help="Drug name"),
    max_results: int = typer.Option(10, "--max", "-n", help="Max documents to fetch"),
):
    """Run a single extractor for one drug (debugging aid)."""
    from ddi_miner.evidence import Severity
    from ddi_miner.extractors import (
        ClinicalTrialsExtractor,
        ExtractionOptions,
        PublicationExtractor,
        RegulatoryLabelExtractor,
    )

    extractors = {
        "clinical_trial": ClinicalTrialsExtractor,
        "regulatory_label": RegulatoryLabelExtractor,
        "publication": PublicationExtractor,
    }
    if source not in extractors:
        error(f"unknown source {source!r}; choose from {', '.join(extractors)}")
        raise typer.Exit(code=2)

    async def run():
        extractor = extractors[source]()
        try:
            return await extractor.extract_ddi_for_drug(drug, ExtractionOptions(max_results=max_results))
        finally:
            await extractor.aclose()

    records = asyncio.run(run())

    table = Table(title=f"{source} evidence for {escape(drug)}", show_header=True)
    table.add_column("Drug 2", style="cyan")
    table.add_column("Severity", style="red")
    table.add_column("Mechanism", style="yellow")
    table.add_column("Level")
    table.add_column("Confidence", justify="right")
    table.add_column("Source", style="dim")
    for record in records:
        table.add_row(
            escape(record.drug2.name),
            Severity(record.interaction.severity).value,
            escape(record.interaction.mechanism),
            record.evidence.level.value,
            f"{record.evidence.confidence_percent:.0f}",
            record.source_id,
        )
    console.print(table)
    console.print(f"[green]✓[/] {len(records)} records")


if __name__ == "__main__":
    app()
