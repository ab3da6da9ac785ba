"""
PubMed publication DDI extractor.

Searches PubMed (NCBI E-utilities) for interaction studies of a drug, fetches
each article's metadata and abstract, and optionally the PMC full text.

API: https://www.ncbi.nlm.nih.gov/books/NBK25500/
"""

import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from xml.etree import ElementTree

from ddi_miner.config import settings
from ddi_miner.console import warn
from ddi_miner.evidence.model import (
    DrugInteractionEvidence,
    DrugRef,
    EvidenceDetails,
    EvidenceLevel,
    ExtractionMetadata,
    Interaction,
    PublicationInfo,
    Severity,
    SourceInfo,
    SourceType,
)
from ddi_miner.extractors.base import PARSE_ERRORS, BaseExtractor, ExtractionOptions
from ddi_miner.extractors.rules import (
    PUBLICATION_DDI_KEYWORDS,
    PUBLICATION_SEVERITY_RULES,
    change_as_percent,
    classify_interaction_type,
    describe_effect,
    describe_management,
    describe_mechanism,
    extract_drug_mentions,
    extract_enzymes,
    extract_pk_changes,
    split_entries,
)

EUTILS_URL = "https://eutils.ncbi.nlm.nih.gov/entrez/eutils"
PUBMED_URL = "https://pubmed.ncbi.nlm.nih.gov/"
MIN_ABSTRACT_LENGTH = 50
FULL_TEXT_LIMIT = 20000

SEARCH_TERMS = (
    '"drug interaction"', '"drug-drug interaction"', '"cytochrome P450"',
    '"pharmacokinetic interaction"', '"co-administration"', '"concomitant"',
    '"enzyme inhibition"', '"enzyme induction"', '"P-glycoprotein"',
)

HIGH_IMPACT_JOURNALS = ("nature", "science", "cell", "n engl j med", "new england journal",
                        "lancet", "jama", "bmj")

# Checked in order; the first matching study type wins.
STUDY_TYPE_INDICATORS = (
    ("RCT", re.compile(r"randomi[sz]ed|controlled trial|\bRCT\b|clinical trial", re.IGNORECASE)),
    ("observational", re.compile(r"observational|cohort|case-control|retrospective", re.IGNORECASE)),
    ("case_report", re.compile(r"case report|case series|case study", re.IGNORECASE)),
    ("in_vitro", re.compile(r"in vitro|cell culture|microsom", re.IGNORECASE)),
    ("pharmacokinetic", re.compile(r"pharmacokinetic|PK study|bioequivalence", re.IGNORECASE)),
)

STUDY_TYPE_BONUS = {"RCT": 25, "pharmacokinetic": 20, "observational": 15}

POPULATION_SIZE = re.compile(r"\b(\d+)\s*(?:patients?|subjects?|participants?|volunteers?)\b", re.IGNORECASE)
P_VALUE = re.compile(r"\bp\s*([<>=≤])\s*(0?\.\d+)", re.IGNORECASE)


@dataclass
class Article:
    """PubMed article metadata and text."""

    pmid: str
    title: str = ""
    abstract: str = ""
    journal: str = ""
    publication_date: str = ""
    authors: list[str] = field(default_factory=list)
    publication_types: list[str] = field(default_factory=list)
    doi: str | None = None
    pmcid: str | None = None
    full_text: str = ""

    @property
    def text(self) -> str:
        return f"{self.abstract}\n\n{self.full_text}" if self.full_text else self.abstract


def _text(element: ElementTree.Element | None) -> str:
    if element is None:
        return ""
    return " ".join("".join(element.itertext()).split())


def parse_pubmed_article(xml_text: str) -> Article | None:
    """First PubmedArticle of an efetch response, or None."""
    root = ElementTree.fromstring(xml_text)
    node = root.find(".//PubmedArticle")
    if node is None:
        return None
    citation = node.find("MedlineCitation")
    article = citation.find("Article")

    abstract_parts = []
    for part in article.findall("Abstract/AbstractText"):
        label = part.get("Label")
        body = _text(part)
        if body:
            abstract_parts.append(f"{label}: {body}" if label else body)

    pub_date = article.find("Journal/JournalIssue/PubDate")
    if pub_date is not None and pub_date.find("Year") is not None:
        date = " ".join(_text(pub_date.find(tag)) for tag in ("Year", "Month", "Day") if pub_date.find(tag) is not None)
    else:
        date = _text(pub_date.find("MedlineDate")) if pub_date is not None else ""

    authors = []
    for author in article.findall("AuthorList/Author"):
        last = _text(author.find("LastName"))
        if last:
            initials = _text(author.find("Initials"))
            authors.append(f"{last} {initials}".strip())

    ids = {item.get("IdType"): _text(item) for item in node.findall("PubmedData/ArticleIdList/ArticleId")}
    return Article(
        pmid=_text(citation.find("PMID")),
        title=_text(article.find("ArticleTitle")),
        abstract="\n\n".join(abstract_parts),
        journal=_text(article.find("Journal/Title")),
        publication_date=date,
        authors=authors,
        publication_types=[_text(t) for t in article.findall("PublicationTypeList/PublicationType")],
        doi=ids.get("doi"),
        pmcid=ids.get("pmc"),
    )


def parse_pmc_body(xml_text: str) -> str:
    """Paragraph text of a PMC JATS article body."""
    root = ElementTree.fromstring(xml_text)
    body = root.find(".//body")
    if body is None:
        return ""
    paragraphs = [_text(p) for p in body.iter("p")]
    return "\n\n".join(p for p in paragraphs if p)[:FULL_TEXT_LIMIT]


def determine_study_type(text: str, publication_types: list[str]) -> str:
    for pub_type in publication_types:
        lowered = pub_type.lower()
        if "randomized controlled trial" in lowered:
            return "RCT"
        if "case report" in lowered:
            return "case_report"
    for study_type, pattern in STUDY_TYPE_INDICATORS:
        if pattern.search(text):
            return study_type
    return "unknown"


def is_high_impact(journal: str) -> bool:
    lowered = journal.lower()
    return any(name in lowered for name in HIGH_IMPACT_JOURNALS)


def publication_severity(text: str, auc_change: str | None) -> Severity:
    """Keyword table first, then the size of the AUC increase."""
    for rule in PUBLICATION_SEVERITY_RULES:
        if rule.matches(text):
            return rule.severity
    auc_increase = change_as_percent(auc_change)
    if auc_increase is not None and re.search(r"AUC\w*\b[^.]*increas", text, re.IGNORECASE):
        if auc_increase > 200:
            return Severity.MAJOR
        if auc_increase > 100:
            return Severity.MODERATE
    return Severity.MODERATE


def publication_evidence_level(study_type: str, journal: str) -> EvidenceLevel:
    if study_type in ("RCT", "pharmacokinetic"):
        return EvidenceLevel.HIGH
    if study_type == "observational":
        return EvidenceLevel.HIGH if is_high_impact(journal) else EvidenceLevel.MEDIUM
    if study_type in ("case_report", "in_vitro"):
        return EvidenceLevel.LOW
    return EvidenceLevel.MEDIUM


def publication_confidence(text: str, study_type: str, mechanism_known: bool, journal: str, has_pk: bool) -> float:
    score = 50.0 + STUDY_TYPE_BONUS.get(study_type, 0)
    if mechanism_known:
        score += 15
    if is_high_impact(journal):
        score += 10
    if len(text) > 200:
        score += 5
    if has_pk:
        score += 10
    return min(score, 100.0)


class PublicationExtractor(BaseExtractor):
    """Extract DDI evidence from PubMed abstracts (and PMC full text when asked)."""

    source_type = SourceType.PUBLICATION
    name = "publications"
    extraction_method = "regex_pubmed_abstract"
    gate = PUBLICATION_DDI_KEYWORDS
    default_max_results = 100
    request_delay_default = 0.35

    base_url = EUTILS_URL

    def _params(self, **params) -> dict:
        if settings.ncbi_api_key:
            params["api_key"] = settings.ncbi_api_key
        return params

    async def _extract(self, drug_name: str, options: ExtractionOptions) -> list[DrugInteractionEvidence]:
        pmids = await self.search_pubmed(drug_name, options.max_results, options.flag("year_range", 10))
        if not pmids:
            return []
        primary_rxcui = await self._resolve(drug_name)
        resolved: dict[str, str | None] = {}

        records = []
        for index, pmid in enumerate(pmids):
            if index:
                await self._pause()
            article = await self.fetch_article(pmid, options.flag("include_full_text", False))
            if article is None or len(article.abstract) < MIN_ABSTRACT_LENGTH:
                continue
            for record in self.extract_from_article(drug_name, article):
                other = record.drug2.name
                if other not in resolved:
                    resolved[other] = await self._resolve(other)
                record.drug1.rxcui = primary_rxcui
                record.drug2.rxcui = resolved[other]
                records.append(record)
        return records

    async def search_pubmed(self, drug_name: str, max_results: int, year_range: int = 10) -> list[str]:
        current_year = datetime.now(UTC).year
        term = (
            f'("{drug_name}"[tiab] OR "{drug_name}"[mesh]) AND ({" OR ".join(SEARCH_TERMS)}) '
            f"AND {current_year - year_range}:{current_year}[pdat]"
        )
        retmax = max(1, min(max_results, 500))
        data = await self._get_json(
            f"{self.base_url}/esearch.fcgi",
            self._params(db="pubmed", term=term, retmax=retmax, retmode="json", sort="relevance"),
            cache_key=f"pubmed|{drug_name.lower()}|{retmax}|{year_range}",
        )
        result = (data or {}).get("esearchresult")
        if not isinstance(result, dict):
            return []
        return [str(pmid) for pmid in result.get("idlist") or [] if isinstance(pmid, str | int)]

    async def fetch_article(self, pmid: str, include_full_text: bool = False) -> Article | None:
        xml_text = await self._get_text(
            f"{self.base_url}/efetch.fcgi",
            self._params(db="pubmed", id=pmid, retmode="xml"),
            cache_key=f"efetch|{pmid}",
        )
        if not xml_text:
            return None
        try:
            article = parse_pubmed_article(xml_text)
        except PARSE_ERRORS as e:
            warn(f"{self.name}: unparseable PubMed record {pmid}: {e}")
            return None
        if article is not None and include_full_text and article.pmcid:
            await self._pause()
            body = await self._get_text(
                f"{self.base_url}/efetch.fcgi",
                self._params(db="pmc", id=article.pmcid, retmode="xml"),
                cache_key=f"pmc|{article.pmcid}",
            )
            if body:
                try:
                    article.full_text = parse_pmc_body(body)
                except PARSE_ERRORS as e:
                    warn(f"{self.name}: unparseable PMC article {article.pmcid}: {e}")
        return article

    def extract_from_article(self, drug_name: str, article: Article) -> list[DrugInteractionEvidence]:
        """Candidate records for one article; identifiers are filled in by the caller."""
        text = article.text
        study_type = determine_study_type(f"{article.title} {text}", article.publication_types)

        flat_abstract = " ".join(article.abstract.split())
        records = []
        for entry in split_entries(text, self.gate):
            context = "full_text" if article.full_text and entry not in flat_abstract else "abstract"
            for other in extract_drug_mentions(entry, exclude=drug_name):
                try:
                    record = self._build_record(drug_name, other, article, entry, context, study_type)
                except PARSE_ERRORS as e:
                    warn(f"{self.name}: skipping entry in PMID {article.pmid}: {e}")
                    continue
                records.append(record)
        return records

    def _build_record(
        self,
        drug_name: str,
        other: str,
        article: Article,
        entry: str,
        context: str,
        study_type: str,
    ) -> DrugInteractionEvidence:
        enzymes = extract_enzymes(entry)
        pk = extract_pk_changes(entry)
        severity = publication_severity(entry, pk.auc_change if pk else None)
        interaction = Interaction(
            mechanism=describe_mechanism(entry, enzymes),
            enzyme_pathway=enzymes,
            severity=severity,
            effect=describe_effect(entry),
            management=describe_management(entry),
            interaction_type=classify_interaction_type(entry),
        )
        confidence = publication_confidence(
            entry, study_type, interaction.mechanism_known, article.journal, pk is not None
        )
        population = POPULATION_SIZE.search(article.text)
        p_value = P_VALUE.search(article.text)
        return DrugInteractionEvidence(
            source_type=self.source_type,
            source_id=article.pmid,
            drug1=DrugRef(drug_name),
            drug2=DrugRef(other),
            interaction=interaction,
            evidence=EvidenceDetails(
                level=publication_evidence_level(study_type, article.journal),
                confidence=confidence,
                evidence_context=context,
                study_type=study_type,
            ),
            source=SourceInfo(
                title=article.title,
                url=f"{PUBMED_URL}{article.pmid}/",
                section=context,
                raw_text=entry,
            ),
            extraction_metadata=ExtractionMetadata(
                extraction_method=self.extraction_method,
                text_extraction_confidence=confidence,
            ),
            pharmacokinetics=pk,
            publication=PublicationInfo(
                pmid=article.pmid,
                journal=article.journal or None,
                publication_date=article.publication_date or None,
                authors=list(article.authors),
                doi=article.doi,
                pmcid=article.pmcid,
                population_size=int(population.group(1)) if population else None,
                p_value=f"p {p_value.group(1)} {p_value.group(2)}" if p_value else None,
            ),
        )
