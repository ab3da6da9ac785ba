"""
Regulatory label DDI extractor.

Sources:
- openFDA drug label API (JSON, sections keyed by field name)
- DailyMed SPL documents (HL7 v3 XML, sections keyed by LOINC code)

Optionally searches openFDA again for the drug's RxNorm brand names.
"""

import re
from dataclasses import dataclass, field
from xml.etree import ElementTree

from ddi_miner.config import settings
from ddi_miner.console import debug, warn
from ddi_miner.evidence.model import (
    DrugInteractionEvidence,
    DrugRef,
    EvidenceDetails,
    EvidenceLevel,
    ExtractionMetadata,
    Interaction,
    RegulatoryLabelInfo,
    Severity,
    SourceInfo,
    SourceType,
)
from ddi_miner.extractors.base import PARSE_ERRORS, BaseExtractor, ExtractionOptions
from ddi_miner.extractors.rules import (
    LABEL_DDI_KEYWORDS,
    LABEL_SECTION_SEVERITY,
    LABEL_SEVERITY_RULES,
    classify_interaction_type,
    classify_severity,
    describe_effect,
    describe_management,
    describe_mechanism,
    extract_drug_mentions,
    extract_enzymes,
    extract_pk_changes,
    split_entries,
)

OPENFDA_LABEL_URL = "https://api.fda.gov/drug/label.json"
DAILYMED_BASE_URL = "https://dailymed.nlm.nih.gov/dailymed/services/v2"
DAILYMED_SETID_URL = "https://dailymed.nlm.nih.gov/dailymed/drugInfo.cfm?setid="

LABEL_SECTIONS = (
    "drug_interactions",
    "contraindications",
    "warnings_and_cautions",
    "clinical_pharmacology",
    "pharmacokinetics",
    "warnings",
    "precautions",
    "boxed_warning",
)

# LOINC section codes used in SPL documents
SPL_SECTION_CODES = {
    "34073-7": "drug_interactions",
    "34070-3": "contraindications",
    "43685-7": "warnings_and_cautions",
    "34090-1": "clinical_pharmacology",
    "43682-4": "pharmacokinetics",
    "34071-1": "warnings",
    "42232-9": "precautions",
    "34066-1": "boxed_warning",
}

# Title substrings checked in order when a section code is unknown
SPL_TITLE_FALLBACK = (
    ("boxed warning", "boxed_warning"),
    ("warnings and precautions", "warnings_and_cautions"),
    ("interaction", "drug_interactions"),
    ("contraindication", "contraindications"),
    ("pharmacokinetic", "pharmacokinetics"),
    ("pharmacology", "clinical_pharmacology"),
    ("precaution", "precautions"),
    ("warning", "warnings"),
)

WARNING_TYPES = {
    "boxed_warning": "boxed_warning",
    "warnings": "warning",
    "warnings_and_cautions": "warning",
    "precautions": "precaution",
}

HL7 = "{urn:hl7-org:v3}"
DOSING_ADJUSTMENT = re.compile(r"\bdos(?:e|age|ing)\b[^.]*\b(?:adjust|reduc|decreas|modif)", re.IGNORECASE)
MAX_BRAND_SEARCHES = 3
BRAND_SEARCH_LIMIT = 10
MAX_SPL_DOCUMENTS = 10


@dataclass
class LabelDocument:
    """One drug label with its DDI-relevant sections."""

    label_id: str
    product_name: str | None
    manufacturer: str | None
    url: str
    origin: str  # openfda or dailymed
    sections: dict[str, str] = field(default_factory=dict)
    rxcui: str | None = None


def _clean_section(parts: list[str] | str | None) -> str:
    """Join section paragraphs, collapsing whitespace within each one."""
    if not parts:
        return ""
    if isinstance(parts, str):
        parts = [parts]
    cleaned = (re.sub(r"\s+", " ", part).strip() for part in parts)
    return "\n\n".join(part for part in cleaned if part)


def parse_openfda_label(result: dict) -> LabelDocument:
    """openFDA label result -> LabelDocument."""
    openfda = result.get("openfda") or {}
    label_id = result.get("set_id") or result["id"]
    names = openfda.get("brand_name") or openfda.get("generic_name") or []
    manufacturers = openfda.get("manufacturer_name") or []
    rxcuis = openfda.get("rxcui") or []
    sections = {}
    for name in LABEL_SECTIONS:
        text = _clean_section(result.get(name))
        if text:
            sections[name] = text
    return LabelDocument(
        label_id=label_id,
        product_name=names[0] if names else None,
        manufacturer=manufacturers[0] if manufacturers else None,
        url=f"{DAILYMED_SETID_URL}{label_id}",
        origin="openfda",
        sections=sections,
        rxcui=rxcuis[0] if rxcuis else None,
    )


def map_spl_section(code: str | None, title: str | None) -> str | None:
    """Section name for an SPL section code, falling back to its title."""
    if code and code in SPL_SECTION_CODES:
        return SPL_SECTION_CODES[code]
    lowered = (title or "").lower()
    for needle, section in SPL_TITLE_FALLBACK:
        if needle in lowered:
            return section
    return None


def _section_text(section: ElementTree.Element) -> str:
    """Paragraph text of a section and its nested subsections."""
    paragraphs = []
    text = section.find(f"{HL7}text")
    if text is not None:
        blocks = list(text.iter(f"{HL7}paragraph")) or [text]
        for block in blocks:
            paragraph = " ".join("".join(block.itertext()).split())
            if paragraph:
                paragraphs.append(paragraph)
    for child in section.findall(f"{HL7}component/{HL7}section"):
        nested = _section_text(child)
        if nested:
            paragraphs.append(nested)
    return "\n\n".join(paragraphs)


def parse_spl_document(xml_text: str, set_id: str) -> LabelDocument:
    """SPL XML -> LabelDocument (top-level body sections only are mapped)."""
    root = ElementTree.fromstring(xml_text)
    title = root.find(f"{HL7}title")
    product = root.find(f".//{HL7}manufacturedProduct/{HL7}manufacturedProduct/{HL7}name")
    manufacturer = root.find(f"{HL7}author//{HL7}representedOrganization/{HL7}name")

    sections: dict[str, str] = {}
    body = root.find(f"{HL7}component/{HL7}structuredBody")
    if body is not None:
        for section in body.findall(f"{HL7}component/{HL7}section"):
            code = section.find(f"{HL7}code")
            section_title = section.find(f"{HL7}title")
            name = map_spl_section(
                code.get("code") if code is not None else None,
                "".join(section_title.itertext()) if section_title is not None else None,
            )
            if not name:
                continue
            text = _section_text(section)
            if text:
                sections[name] = f"{sections[name]}\n\n{text}" if name in sections else text

    product_name = product.text.strip() if product is not None and product.text else None
    if not product_name and title is not None:
        product_name = " ".join("".join(title.itertext()).split()) or None
    return LabelDocument(
        label_id=set_id,
        product_name=product_name,
        manufacturer=manufacturer.text.strip() if manufacturer is not None and manufacturer.text else None,
        url=f"{DAILYMED_SETID_URL}{set_id}",
        origin="dailymed",
        sections=sections,
    )


def label_evidence_level(section: str, severity: Severity) -> EvidenceLevel:
    if section in ("contraindications", "boxed_warning"):
        return EvidenceLevel.HIGH
    if section == "drug_interactions":
        return EvidenceLevel.HIGH if severity is Severity.MAJOR else EvidenceLevel.MEDIUM
    return EvidenceLevel.LOW


def label_confidence(text: str, mechanism_known: bool, severity: Severity, has_enzyme: bool) -> float:
    score = 70.0
    if mechanism_known:
        score += 15
    if severity is not Severity.MODERATE:
        score += 10
    if len(text) > 100:
        score += 5
    if has_enzyme:
        score += 10
    return min(score, 100.0)


class RegulatoryLabelExtractor(BaseExtractor):
    """Extract DDI evidence from FDA label sections (openFDA and DailyMed)."""

    source_type = SourceType.REGULATORY_LABEL
    name = "regulatory_label"
    extraction_method = "regex_label_sections"
    gate = LABEL_DDI_KEYWORDS
    default_max_results = 20
    request_delay_default = 0.5

    openfda_url = OPENFDA_LABEL_URL
    dailymed_url = DAILYMED_BASE_URL

    async def _extract(self, drug_name: str, options: ExtractionOptions) -> list[DrugInteractionEvidence]:
        documents = await self.fetch_labels(drug_name, options)
        # ingredient-level RXCUI; openFDA's product RXCUI stays on the label info
        primary_rxcui = await self._resolve(drug_name)

        records = []
        for document in documents:
            try:
                records.extend(await self.extract_from_label(drug_name, document, primary_rxcui))
            except PARSE_ERRORS as e:
                warn(f"{self.name}: skipping label {document.label_id}: {e}")
        return records

    async def fetch_labels(self, drug_name: str, options: ExtractionOptions) -> list[LabelDocument]:
        """openFDA labels (plus brand-name searches), then DailyMed SPLs, unique by label id."""
        documents = await self.search_openfda(drug_name, options.max_results)

        if options.flag("include_brand_names", False):
            brands = await self.resolver.brand_names(drug_name)
            for brand in brands[:MAX_BRAND_SEARCHES]:
                if brand.lower() != drug_name.lower():
                    documents.extend(await self.search_openfda(brand, BRAND_SEARCH_LIMIT))

        if options.flag("include_dailymed", True):
            documents.extend(await self.fetch_dailymed(drug_name, options.max_results))

        unique: dict[str, LabelDocument] = {}
        for document in documents:
            unique.setdefault(document.label_id, document)
        return list(unique.values())

    async def search_openfda(self, name: str, limit: int) -> list[LabelDocument]:
        params = {
            "search": f'openfda.generic_name:"{name}" OR openfda.brand_name:"{name}"',
            "limit": max(1, min(limit, 100)),
        }
        if settings.openfda_api_key:
            params["api_key"] = settings.openfda_api_key
        data = await self._get_json(
            self.openfda_url,
            params,
            cache_key=f"openfda|{name.lower()}|{params['limit']}",
        )
        documents = []
        for result in (data or {}).get("results") or []:
            if not isinstance(result, dict):
                continue
            try:
                documents.append(parse_openfda_label(result))
            except PARSE_ERRORS as e:
                warn(f"{self.name}: malformed openFDA label for {name}: {e}")
        return documents

    async def fetch_dailymed(self, name: str, limit: int) -> list[LabelDocument]:
        """Search DailyMed SPLs and fetch each document, pausing between fetches."""
        data = await self._get_json(
            f"{self.dailymed_url}/spls.json",
            {"drug_name": name, "page_size": max(1, min(limit, 100))},
            cache_key=f"dailymed|{name.lower()}|{limit}",
        )
        entries = [entry for entry in (data or {}).get("data") or [] if isinstance(entry, dict)]
        documents = []
        for index, entry in enumerate(entries[:MAX_SPL_DOCUMENTS]):
            set_id = entry.get("setid")
            if not set_id or not isinstance(set_id, str):
                continue
            if index:
                await self._pause()
            xml_text = await self._get_text(
                f"{self.dailymed_url}/spls/{set_id}.xml",
                cache_key=f"spl|{set_id}",
            )
            if not xml_text:
                continue
            try:
                documents.append(parse_spl_document(xml_text, set_id))
            except PARSE_ERRORS as e:
                warn(f"{self.name}: unparseable SPL {set_id}: {e}")
        debug(f"{self.name}: {len(documents)} DailyMed documents for {name}")
        return documents

    async def extract_from_label(
        self,
        drug_name: str,
        document: LabelDocument,
        primary_rxcui: str | None = None,
    ) -> list[DrugInteractionEvidence]:
        """Evidence records for every (entry x interacting drug) in a label."""
        records = []
        resolved: dict[str, str | None] = {}
        for section, text in document.sections.items():
            for entry in split_entries(text, self.gate):
                for other in extract_drug_mentions(entry, exclude=drug_name):
                    if other not in resolved:
                        resolved[other] = await self._resolve(other)
                    try:
                        record = self._build_record(
                            drug_name, primary_rxcui, other, resolved[other], document, section, entry
                        )
                    except PARSE_ERRORS as e:
                        warn(f"{self.name}: skipping entry in {document.label_id} ({section}): {e}")
                        continue
                    records.append(record)
        return records

    def _build_record(
        self,
        drug_name: str,
        primary_rxcui: str | None,
        other: str,
        other_rxcui: str | None,
        document: LabelDocument,
        section: str,
        entry: str,
    ) -> DrugInteractionEvidence:
        enzymes = extract_enzymes(entry)
        mechanism = describe_mechanism(entry, enzymes)
        severity = LABEL_SECTION_SEVERITY.get(section) or classify_severity(entry, LABEL_SEVERITY_RULES)
        interaction = Interaction(
            mechanism=mechanism,
            enzyme_pathway=enzymes,
            severity=severity,
            effect=describe_effect(entry),
            management=describe_management(entry),
            interaction_type=classify_interaction_type(entry),
        )
        confidence = label_confidence(entry, interaction.mechanism_known, severity, bool(enzymes))
        return DrugInteractionEvidence(
            source_type=self.source_type,
            source_id=document.label_id,
            drug1=DrugRef(drug_name, primary_rxcui),
            drug2=DrugRef(other, other_rxcui),
            interaction=interaction,
            evidence=EvidenceDetails(
                level=label_evidence_level(section, severity),
                confidence=confidence,
                evidence_context=section,
                study_type="regulatory_label",
            ),
            source=SourceInfo(
                title=f"{document.product_name or drug_name} prescribing information",
                url=document.url,
                section=section,
                raw_text=entry,
            ),
            extraction_metadata=ExtractionMetadata(
                extraction_method=f"{self.extraction_method}:{document.origin}",
                text_extraction_confidence=confidence,
            ),
            regulatory_label=RegulatoryLabelInfo(
                label_id=document.label_id,
                product_name=document.product_name,
                manufacturer=document.manufacturer,
                label_section=section,
                contraindication=section == "contraindications",
                warning_type=WARNING_TYPES.get(section),
                dosing_adjustment=bool(DOSING_ADJUSTMENT.search(entry)),
                product_rxcui=document.rxcui,
            ),
            pharmacokinetics=extract_pk_changes(entry),
        )
