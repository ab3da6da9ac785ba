"""
Mining orchestrator: fan extraction out over drugs and sources, then
normalize, report and persist.

Phases:
    idle -> initializing -> extracting -> normalizing -> persisting -> completed
    error is entered when the run configuration is rejected.

Usage:
    async with MiningOrchestrator(store=ParquetEvidenceStore()) as miner:
        await miner.initialize({"batch_size": 3})
        result = await miner.mine_ddi_for_multiple_drugs(["warfarin", "imatinib"])
        print(miner.export_results("csv"))
"""

from __future__ import annotations

import asyncio
import dataclasses
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from rich.markup import escape

from ddi_miner.config import settings
from ddi_miner.console import debug, info, warn
from ddi_miner.db.schema import EVIDENCE_TABLE
from ddi_miner.db.store import EvidenceStore
from ddi_miner.errors import ConfigurationError, PersistenceError
from ddi_miner.evidence.model import DrugInteractionEvidence, SourceType
from ddi_miner.evidence.normalize import EvidenceNormalizer, NormalizationReport, QualityThresholds
from ddi_miner.extractors import (
    BaseExtractor,
    ClinicalTrialsExtractor,
    ExtractionOptions,
    PublicationExtractor,
    RegulatoryLabelExtractor,
)
from ddi_miner.mining.export import export_json, export_table
from ddi_miner.mining.progress import ProgressCallback, ProgressDispatcher, ProgressSnapshot
from ddi_miner.mining.reports import ExtractionReport, build_extraction_report
from ddi_miner.mining.universe import ONCOLOGY_DRUGS, drugs_for_indications
from ddi_miner.resolve import DrugResolver, RxNormResolver

MIN_BATCH_SIZE = 1
MAX_BATCH_SIZE = 20
MIN_BATCH_DELAY_MS = 1000


class MiningPhase(str, Enum):
    """Phase of a mining run."""

    IDLE = "idle"
    INITIALIZING = "initializing"
    EXTRACTING = "extracting"
    NORMALIZING = "normalizing"
    PERSISTING = "persisting"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass
class MiningConfig:
    """Run configuration; defaults come from Settings."""

    enable_clinical_trials: bool = True
    enable_regulatory_labels: bool = True
    enable_publications: bool = True
    enable_normalization: bool = True
    enable_persistence: bool = True

    # Batching
    batch_size: int | None = 5
    delay_between_batches_ms: int | None = 2000
    persist_batch_size: int = 50

    # Quality filters
    min_composite_score: float | None = 30.0
    min_confidence: float | None = 40.0
    require_mechanism: bool = False

    # Per-source limits and flags
    max_clinical_trials_per_drug: int = 50
    max_regulatory_labels_per_drug: int = 20
    max_publications_per_drug: int = 100
    include_completed_trials: bool = True
    include_brand_names: bool = True
    include_dailymed: bool = True
    include_full_text: bool = False
    publication_year_range: int = 10

    REQUIRED = ("batch_size", "delay_between_batches_ms", "min_composite_score")

    @classmethod
    def from_settings(cls) -> MiningConfig:
        return cls(
            batch_size=settings.batch_size,
            delay_between_batches_ms=settings.delay_between_batches_ms,
            persist_batch_size=settings.persist_batch_size,
            min_composite_score=settings.min_composite_score,
            min_confidence=settings.min_confidence,
            require_mechanism=settings.require_mechanism,
            max_clinical_trials_per_drug=settings.max_clinical_trials_per_drug,
            max_regulatory_labels_per_drug=settings.max_regulatory_labels_per_drug,
            max_publications_per_drug=settings.max_publications_per_drug,
        )

    def merged(self, overrides: Mapping[str, Any] | None) -> MiningConfig:
        """Copy with `overrides` applied; unknown keys are rejected."""
        if not overrides:
            return replace(self)
        known = {f.name for f in dataclasses.fields(self)}
        unknown = sorted(set(overrides) - known)
        if unknown:
            raise ConfigurationError([f"unknown configuration key: {key}" for key in unknown])
        return replace(self, **overrides)

    def problems(self) -> list[str]:
        problems = [f"missing required configuration: {key}" for key in self.REQUIRED if getattr(self, key) is None]
        if self.batch_size is not None and not MIN_BATCH_SIZE <= self.batch_size <= MAX_BATCH_SIZE:
            problems.append(f"batch_size must be between {MIN_BATCH_SIZE} and {MAX_BATCH_SIZE}")
        if self.delay_between_batches_ms is not None and self.delay_between_batches_ms < MIN_BATCH_DELAY_MS:
            problems.append(f"delay_between_batches_ms must be at least {MIN_BATCH_DELAY_MS}")
        if self.persist_batch_size < 1:
            problems.append("persist_batch_size must be positive")
        return problems

    def enabled_sources(self) -> set[SourceType]:
        enabled = set()
        if self.enable_clinical_trials:
            enabled.add(SourceType.CLINICAL_TRIAL)
        if self.enable_regulatory_labels:
            enabled.add(SourceType.REGULATORY_LABEL)
        if self.enable_publications:
            enabled.add(SourceType.PUBLICATION)
        return enabled

    def extraction_options(self) -> dict[SourceType, ExtractionOptions]:
        return {
            SourceType.CLINICAL_TRIAL: ExtractionOptions(
                max_results=self.max_clinical_trials_per_drug,
                flags={"include_completed": self.include_completed_trials},
            ),
            SourceType.REGULATORY_LABEL: ExtractionOptions(
                max_results=self.max_regulatory_labels_per_drug,
                flags={"include_brand_names": self.include_brand_names, "include_dailymed": self.include_dailymed},
            ),
            SourceType.PUBLICATION: ExtractionOptions(
                max_results=self.max_publications_per_drug,
                flags={"year_range": self.publication_year_range, "include_full_text": self.include_full_text},
            ),
        }

    def thresholds(self) -> QualityThresholds:
        return QualityThresholds(
            min_composite_score=self.min_composite_score,
            min_confidence=self.min_confidence,
            require_mechanism=self.require_mechanism,
        )


@dataclass
class MiningResult:
    """Outcome of one mining run."""

    raw_evidence: list[DrugInteractionEvidence] = field(default_factory=list)
    normalized_evidence: list[DrugInteractionEvidence] = field(default_factory=list)
    extraction_report: ExtractionReport | None = None
    normalization_report: NormalizationReport | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None
    duration_seconds: float | None = None
    persisted_count: int = 0

    @property
    def reports(self) -> dict[str, Any]:
        return {"extraction": self.extraction_report, "normalization": self.normalization_report}

    def to_dict(self) -> dict[str, Any]:
        return {
            "raw_evidence": [r.to_dict() for r in self.raw_evidence],
            "normalized_evidence": [r.to_dict() for r in self.normalized_evidence],
            "reports": {
                name: report.to_dict() if report is not None else None
                for name, report in self.reports.items()
            },
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "duration_seconds": self.duration_seconds,
            "persisted_count": self.persisted_count,
        }


DrugOutcome = tuple[list[DrugInteractionEvidence], list[dict[str, Any]]]


class MiningOrchestrator:
    """Coordinates extractors, the normalizer and the evidence store."""

    def __init__(
        self,
        extractors: list[BaseExtractor] | None = None,
        normalizer: EvidenceNormalizer | None = None,
        store: EvidenceStore | None = None,
        resolver: DrugResolver | None = None,
        config: MiningConfig | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.resolver = resolver if resolver is not None else RxNormResolver()
        self.extractors = extractors if extractors is not None else [
            ClinicalTrialsExtractor(resolver=self.resolver),
            RegulatoryLabelExtractor(resolver=self.resolver),
            PublicationExtractor(resolver=self.resolver),
        ]
        self.normalizer = normalizer or EvidenceNormalizer(resolver=self.resolver)
        self.store = store
        self.config = config or MiningConfig.from_settings()
        self.drug_universe: list[str] = []
        self._sleep = sleep
        self._dispatcher = ProgressDispatcher()
        self._progress = ProgressSnapshot()
        self._errors: list[dict[str, Any]] = []
        self._results: MiningResult | None = None
        self._stop_requested = False

    async def __aenter__(self) -> MiningOrchestrator:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # -- configuration ----------------------------------------------------

    async def initialize(self, config_overrides: Mapping[str, Any] | None = None) -> None:
        """Apply overrides, validate, and load the drug universe."""
        self._set_phase(MiningPhase.INITIALIZING)
        try:
            self.config = self.config.merged(config_overrides)
            self.validate_config()
        except ConfigurationError:
            self._set_phase(MiningPhase.ERROR)
            raise
        self.drug_universe = await self._load_drug_universe()
        info(f"[bold cyan]Initialized[/] with {len(self.drug_universe)} oncology drugs")
        self._set_phase(MiningPhase.IDLE)

    def validate_config(self, config: MiningConfig | None = None) -> bool:
        """Raise ConfigurationError listing every problem with the configuration."""
        problems = (config or self.config).problems()
        if problems:
            raise ConfigurationError(problems)
        return True

    def update_config(self, **changes: Any) -> MiningConfig:
        self.config = self.config.merged(changes)
        debug("mining configuration updated")
        return self.config

    def _run_config(self, options: Mapping[str, Any] | None) -> MiningConfig:
        try:
            config = self.config.merged(options)
            self.validate_config(config)
        except ConfigurationError:
            self._set_phase(MiningPhase.ERROR)
            raise
        return config

    # -- drug universe ----------------------------------------------------

    async def _fetch_drug_names(self, indications: list[str] | None = None) -> list[str]:
        if self.store is None:
            return []
        try:
            return await asyncio.to_thread(self.store.fetch_drug_names, indications)
        except PersistenceError as e:
            warn(f"could not load drugs from store: {e}")
            return []

    async def _load_drug_universe(self) -> list[str]:
        names = await self._fetch_drug_names()
        if names:
            return list(dict.fromkeys(names))
        return list(ONCOLOGY_DRUGS)

    async def get_drugs_for_indications(self, indications: list[str]) -> list[str]:
        names = await self._fetch_drug_names(indications)
        if names:
            return list(dict.fromkeys(names))
        return drugs_for_indications(indications)

    # -- mining -----------------------------------------------------------

    def _active_extractors(self, config: MiningConfig) -> list[BaseExtractor]:
        enabled = config.enabled_sources()
        return [ex for ex in self.extractors if ex.source_type in enabled]

    async def _mine_drug(self, drug_name: str, config: MiningConfig) -> DrugOutcome:
        """Run every enabled extractor for one drug; never raises for extractor failures."""
        extractors = self._active_extractors(config)
        options = config.extraction_options()
        results = await asyncio.gather(
            *(
                ex.extract_ddi_for_drug(
                    drug_name,
                    options.get(ex.source_type, ExtractionOptions(max_results=ex.default_max_results)),
                )
                for ex in extractors
            ),
            return_exceptions=True,
        )
        evidence: list[DrugInteractionEvidence] = []
        errors: list[dict[str, Any]] = []
        for extractor, result in zip(extractors, results):
            if isinstance(result, Exception):
                warn(f"{extractor.name} failed for {drug_name}: {result}")
                errors.append({
                    "drug": drug_name,
                    "source": extractor.name,
                    "message": str(result) or type(result).__name__,
                    "timestamp": datetime.now(UTC).isoformat(),
                })
            elif isinstance(result, BaseException):
                raise result
            else:
                evidence.extend(result)
        debug(f"{drug_name}: {len(evidence)} raw records")
        return evidence, errors

    async def mine_ddi_for_single_drug(
        self,
        drug_name: str,
        options: Mapping[str, Any] | None = None,
    ) -> list[DrugInteractionEvidence]:
        """Extract evidence for one drug from all enabled sources."""
        config = self._run_config(options)
        evidence, errors = await self._mine_drug(drug_name, config)
        self._errors.extend(errors)
        self._update(errors=tuple(self._errors))
        return evidence

    async def mine_ddi_for_multiple_drugs(
        self,
        drugs: list[str],
        options: Mapping[str, Any] | None = None,
    ) -> MiningResult:
        """
        Mine a drug list in batches, then normalize, report and persist.

        Args:
            drugs: Drug names; duplicates and blanks are ignored
            options: Per-run configuration overrides

        Returns:
            MiningResult with raw and normalized evidence plus reports

        Raises:
            ConfigurationError: if the run configuration is invalid
        """
        config = self._run_config(options)
        drugs = list(dict.fromkeys(d.strip() for d in drugs if d and d.strip()))
        total = len(drugs)
        self._stop_requested = False
        self._errors = []
        started_at = datetime.now(UTC)
        t0 = time.perf_counter()
        self._update(
            phase=MiningPhase.INITIALIZING.value, completed=0, total=total, current_drug=None,
            extracted_evidence=0, normalized_evidence=0, errors=(),
        )

        per_drug: dict[str, list[DrugInteractionEvidence]] = {}
        raw: list[DrugInteractionEvidence] = []
        batch_size = config.batch_size
        batches = [drugs[i:i + batch_size] for i in range(0, total, batch_size)]
        completed = 0

        for index, batch in enumerate(batches):
            if index:
                if self._stop_requested:
                    break
                await self._sleep(config.delay_between_batches_ms / 1000)
                if self._stop_requested:
                    break
            info(f"[bold cyan]Batch {index + 1}/{len(batches)}[/] {escape(', '.join(batch))}")
            outcomes = await asyncio.gather(*(self._mine_drug(drug, config) for drug in batch))
            for drug, (evidence, errors) in zip(batch, outcomes):
                per_drug[drug] = evidence
                raw.extend(evidence)
                self._errors.extend(errors)
            completed += len(batch)
            self._update(
                phase=MiningPhase.EXTRACTING.value, completed=completed, total=total,
                current_drug=batch[-1], extracted_evidence=len(raw), errors=tuple(self._errors),
            )

        unprocessed = drugs[completed:]
        if unprocessed:
            warn(f"stopped early; {len(unprocessed)} drugs not processed")

        result = MiningResult(raw_evidence=raw, normalized_evidence=list(raw), started_at=started_at)
        if config.enable_normalization:
            self._update(phase=MiningPhase.NORMALIZING.value, current_drug=None)
            normalized = await self.normalizer.normalize_evidence(raw) if raw else []
            normalized = self.normalizer.apply_quality_filters(normalized, config.thresholds())
            result.normalized_evidence = normalized
            result.normalization_report = self.normalizer.generate_normalization_report(len(raw), normalized)
            self._update(normalized_evidence=len(normalized))

        result.extraction_report = build_extraction_report(drugs, per_drug, self._errors, unprocessed)

        if config.enable_persistence and self.store is not None and result.normalized_evidence:
            self._update(phase=MiningPhase.PERSISTING.value)
            result.persisted_count = await self._persist(result.normalized_evidence, config.persist_batch_size)

        result.finished_at = datetime.now(UTC)
        result.duration_seconds = round(time.perf_counter() - t0, 3)
        self._results = result
        self._update(phase=MiningPhase.COMPLETED.value, current_drug=None)
        await self._dispatcher.drain()
        info(
            f"[green]✓[/] Mining completed: {len(raw)} raw, "
            f"{len(result.normalized_evidence)} normalized, {len(self._errors)} errors"
        )
        return result

    async def mine_all_oncology_drugs(self, options: Mapping[str, Any] | None = None) -> MiningResult:
        if not self.drug_universe:
            self.drug_universe = await self._load_drug_universe()
        return await self.mine_ddi_for_multiple_drugs(self.drug_universe, options)

    async def mine_ddi_for_indications(
        self,
        indications: list[str],
        options: Mapping[str, Any] | None = None,
    ) -> MiningResult:
        drugs = await self.get_drugs_for_indications(indications)
        if not drugs:
            warn(f"no drugs known for indications: {', '.join(indications)}")
        return await self.mine_ddi_for_multiple_drugs(drugs, options)

    def request_stop(self) -> None:
        """Stop before the next batch; the current batch finishes."""
        self._stop_requested = True

    # -- persistence ------------------------------------------------------

    async def _persist(self, records: list[DrugInteractionEvidence], batch_size: int) -> int:
        persisted = 0
        for start in range(0, len(records), batch_size):
            rows = [r.to_record() for r in records[start:start + batch_size]]
            try:
                persisted += await asyncio.to_thread(self.store.insert_batch, EVIDENCE_TABLE, rows)
            except PersistenceError as e:
                warn(f"persisting records {start}-{start + len(rows)} failed: {e}")
                continue
            debug(f"persisted {persisted}/{len(records)} records")
        return persisted

    # -- progress and results ---------------------------------------------

    def set_progress_callback(self, callback: ProgressCallback | None) -> None:
        self._dispatcher.callback = callback

    def _update(self, **changes: Any) -> None:
        self._progress = replace(self._progress, **changes)
        self._dispatcher.emit(self._progress)

    def _set_phase(self, phase: MiningPhase) -> None:
        self._update(phase=phase.value)

    def get_progress(self) -> ProgressSnapshot:
        return self._progress

    def get_results(self) -> MiningResult | None:
        return self._results

    def export_results(self, fmt: str = "json") -> str:
        """Serialise the last run as json, csv or tsv."""
        result = self._results or MiningResult()
        fmt = fmt.lower()
        if fmt == "json":
            return export_json(result.to_dict())
        return export_table(result.normalized_evidence, fmt)

    def reset(self) -> None:
        self._progress = ProgressSnapshot()
        self._errors = []
        self._results = None
        self._stop_requested = False

    # -- housekeeping -----------------------------------------------------

    def clear_caches(self) -> None:
        for extractor in self.extractors:
            extractor.clear_cache()
        self.normalizer.clear_caches()
        if isinstance(self.resolver, RxNormResolver):
            self.resolver.clear_cache()
        info("All DDI mining caches cleared")

    def cache_stats(self) -> dict[str, dict[str, Any]]:
        stats = {extractor.name: extractor.cache_stats().to_dict() for extractor in self.extractors}
        stats["normalizer"] = self.normalizer.cache_stats().to_dict()
        if isinstance(self.resolver, RxNormResolver):
            stats["rxnorm"] = self.resolver.cache_stats().to_dict()
        return stats

    async def aclose(self) -> None:
        for extractor in self.extractors:
            await extractor.aclose()
        if isinstance(self.resolver, RxNormResolver):
            await self.resolver.aclose()
