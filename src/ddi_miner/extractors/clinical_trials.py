"""
ClinicalTrials.gov DDI extractor.

Mines eligibility criteria (prohibited/excluded concomitant medications),
intervention descriptions and study summaries of interventional trials.

API: https://clinicaltrials.gov/data-api/api (v2)
"""

from ddi_miner.console import warn
from ddi_miner.evidence.model import (
    ClinicalTrialInfo,
    DrugInteractionEvidence,
    DrugRef,
    EvidenceDetails,
    EvidenceLevel,
    ExtractionMetadata,
    Interaction,
    Severity,
    SourceInfo,
    SourceType,
)
from ddi_miner.extractors.base import PARSE_ERRORS, BaseExtractor, ExtractionOptions
from ddi_miner.extractors.rules import (
    MIN_ENTRY_LENGTH,
    TRIAL_DDI_KEYWORDS,
    TRIAL_SEVERITY_RULES,
    classify_interaction_type,
    classify_severity,
    describe_effect,
    describe_management,
    describe_mechanism,
    extract_drug_mentions,
    extract_enzymes,
    split_entries,
)

CLINICALTRIALS_URL = "https://clinicaltrials.gov/api/v2/studies"
STUDY_URL = "https://clinicaltrials.gov/study/"
ACTIVE_STATUSES = ("RECRUITING", "ACTIVE_NOT_RECRUITING")
SEARCH_FIELDS = "NCTId,BriefTitle,OverallStatus,Phase"
MAX_LINES_PER_CRITERION = 3


def parse_criteria_sections(criteria: str) -> dict[str, list[str]]:
    """
    Split eligibility criteria into inclusion and exclusion blocks.

    Lines are grouped under the most recent "Inclusion Criteria" or
    "Exclusion Criteria" header. A block closes on a line ending with '.' or
    ';', or once it holds more than MAX_LINES_PER_CRITERION lines.
    """
    sections: dict[str, list[str]] = {"inclusion": [], "exclusion": []}
    current: str | None = None
    group: list[str] = []

    def flush() -> None:
        if current and group:
            sections[current].append(" ".join(group))
        group.clear()

    for raw in criteria.splitlines():
        line = raw.strip().lstrip("*-•").strip()
        if not line:
            continue
        lowered = line.lower()
        if "inclusion criteria" in lowered:
            flush()
            current = "inclusion"
            continue
        if "exclusion criteria" in lowered:
            flush()
            current = "exclusion"
            continue
        if current is None:
            continue
        group.append(line)
        if line.endswith((".", ";")) or len(group) > MAX_LINES_PER_CRITERION:
            flush()
    flush()
    return sections


def study_passages(protocol: dict) -> list[tuple[str, str]]:
    """(context, entry) pairs worth mining from a study's protocol section."""
    passages: list[tuple[str, str]] = []

    eligibility = (protocol.get("eligibilityModule") or {}).get("eligibilityCriteria") or ""
    criteria = parse_criteria_sections(eligibility)
    for kind in ("exclusion", "inclusion"):
        for block in criteria[kind]:
            if len(block) > MIN_ENTRY_LENGTH and TRIAL_DDI_KEYWORDS.search(block):
                passages.append((f"{kind}_criteria", block))

    interventions = (protocol.get("armsInterventionsModule") or {}).get("interventions") or []
    for intervention in interventions:
        text = f"{intervention.get('name', '')}: {intervention.get('description', '')}"
        passages.extend(("intervention", entry) for entry in split_entries(text, TRIAL_DDI_KEYWORDS))

    description = protocol.get("descriptionModule") or {}
    for key in ("briefSummary", "detailedDescription"):
        text = description.get(key) or ""
        passages.extend(("description", entry) for entry in split_entries(text, TRIAL_DDI_KEYWORDS))
    return passages


def trial_evidence_level(context: str, severity: Severity) -> EvidenceLevel:
    if context == "exclusion_criteria":
        return EvidenceLevel.HIGH if severity is Severity.CONTRAINDICATED else EvidenceLevel.MEDIUM
    return EvidenceLevel.LOW


def trial_confidence(text: str, mechanism_known: bool, severity: Severity, has_enzyme: bool) -> float:
    """Confidence on a 0-1 scale."""
    score = 0.5
    if mechanism_known:
        score += 0.2
    if severity is not Severity.MODERATE:
        score += 0.15
    if len(text) > 100:
        score += 0.1
    if has_enzyme:
        score += 0.15
    return round(min(score, 1.0), 2)


class ClinicalTrialsExtractor(BaseExtractor):
    """Extract DDI evidence from interventional trial records."""

    source_type = SourceType.CLINICAL_TRIAL
    name = "clinical_trials"
    extraction_method = "regex_trial_criteria"
    gate = TRIAL_DDI_KEYWORDS
    default_max_results = 50
    request_delay_default = 0.2

    base_url = CLINICALTRIALS_URL

    async def _extract(self, drug_name: str, options: ExtractionOptions) -> list[DrugInteractionEvidence]:
        studies = await self.search_studies(drug_name, options)
        if not studies:
            return []
        primary_rxcui = await self._resolve(drug_name)
        resolved: dict[str, str | None] = {}

        records = []
        for index, nct_id in enumerate(studies):
            if index:
                await self._pause()
            study = await self._get_json(f"{self.base_url}/{nct_id}", cache_key=f"study|{nct_id}")
            if not study:
                continue
            try:
                candidates = self.extract_from_study(drug_name, study)
            except PARSE_ERRORS as e:
                warn(f"{self.name}: skipping study {nct_id}: {e}")
                continue
            for record in candidates:
                other = record.drug2.name
                if other not in resolved:
                    resolved[other] = await self._resolve(other)
                record.drug1.rxcui = primary_rxcui
                record.drug2.rxcui = resolved[other]
                records.append(record)
        return records

    async def search_studies(self, drug_name: str, options: ExtractionOptions) -> list[str]:
        """NCT ids of interventional studies testing `drug_name`."""
        statuses = list(ACTIVE_STATUSES)
        if options.flag("include_completed", False):
            statuses.append("COMPLETED")
        page_size = max(1, min(options.max_results, 100))
        params = {
            "query.intr": drug_name,
            "filter.overallStatus": ",".join(statuses),
            "filter.advanced": "AREA[StudyType]INTERVENTIONAL",
            "pageSize": page_size,
            "fields": SEARCH_FIELDS,
            "format": "json",
        }
        data = await self._get_json(
            self.base_url,
            params,
            cache_key=f"trials|{drug_name.lower()}|{page_size}|{','.join(statuses)}",
        )
        ids = []
        for study in (data or {}).get("studies") or []:
            try:
                nct_id = ((study.get("protocolSection") or {}).get("identificationModule") or {}).get("nctId")
            except PARSE_ERRORS:
                continue
            if nct_id and nct_id not in ids:
                ids.append(nct_id)
        return ids[: options.max_results]

    def extract_from_study(self, drug_name: str, study: dict) -> list[DrugInteractionEvidence]:
        """Candidate records for one study; identifiers are filled in by the caller."""
        protocol = study["protocolSection"]
        nct_id = protocol["identificationModule"]["nctId"]

        records = []
        for context, entry in study_passages(protocol):
            for other in extract_drug_mentions(entry, exclude=drug_name):
                try:
                    record = self._build_record(drug_name, other, protocol, context, entry)
                except PARSE_ERRORS as e:
                    warn(f"{self.name}: skipping {context} entry in {nct_id}: {e}")
                    continue
                records.append(record)
        return records

    def _build_record(
        self,
        drug_name: str,
        other: str,
        protocol: dict,
        context: str,
        entry: str,
    ) -> DrugInteractionEvidence:
        identification = protocol.get("identificationModule") or {}
        nct_id = identification["nctId"]
        status = (protocol.get("statusModule") or {}).get("overallStatus")
        design = protocol.get("designModule") or {}
        conditions = (protocol.get("conditionsModule") or {}).get("conditions") or []
        title = identification.get("briefTitle") or identification.get("officialTitle") or nct_id

        enzymes = extract_enzymes(entry)
        default = Severity.MAJOR if context == "exclusion_criteria" else Severity.MODERATE
        severity = classify_severity(entry, TRIAL_SEVERITY_RULES, default=default)
        interaction = Interaction(
            mechanism=describe_mechanism(entry, enzymes),
            enzyme_pathway=enzymes,
            severity=severity,
            effect=describe_effect(entry),
            management=describe_management(entry),
            interaction_type=classify_interaction_type(entry),
        )
        confidence = trial_confidence(entry, interaction.mechanism_known, severity, bool(enzymes))
        return DrugInteractionEvidence(
            source_type=self.source_type,
            source_id=nct_id,
            drug1=DrugRef(drug_name),
            drug2=DrugRef(other),
            interaction=interaction,
            evidence=EvidenceDetails(
                level=trial_evidence_level(context, severity),
                confidence=confidence,
                confidence_scale=1.0,
                evidence_context=context,
                study_type="clinical_trial",
            ),
            source=SourceInfo(
                title=title,
                url=f"{STUDY_URL}{nct_id}",
                section=context,
                raw_text=entry,
            ),
            extraction_metadata=ExtractionMetadata(
                extraction_method=self.extraction_method,
                text_extraction_confidence=confidence,
            ),
            clinical_trial=ClinicalTrialInfo(
                nct_id=nct_id,
                phase=", ".join(design.get("phases") or []) or None,
                status=status,
                study_type=design.get("studyType"),
                conditions=list(conditions),
                exclusion_mention=context == "exclusion_criteria",
                concomitant_use_allowed=(
                    context != "exclusion_criteria" and severity is not Severity.CONTRAINDICATED
                ),
            ),
        )
