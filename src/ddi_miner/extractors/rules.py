"""
Ordered rule tables for heuristic DDI attribute extraction.

Every attribute (interacting drugs, enzymes, mechanism, severity, effect,
management, PK deltas, interaction type) is described by an explicit list of
(pattern, classifier) rules evaluated in order. Extractors compose these
tables; each table can be exercised on its own in tests.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass

from ddi_miner.evidence.model import (
    DEFAULT_MANAGEMENT,
    EFFECT_NOT_SPECIFIED,
    MECHANISM_NOT_SPECIFIED,
    PharmacokineticChanges,
    Severity,
)


def _rx(pattern: str, flags: int = re.IGNORECASE) -> re.Pattern[str]:
    return re.compile(pattern, flags)


@dataclass(frozen=True)
class PhraseRule:
    """Emit `phrase` when `pattern` matches and, if given, `also` matches too."""

    pattern: re.Pattern[str]
    phrase: str
    also: re.Pattern[str] | None = None

    def matches(self, text: str) -> bool:
        if not self.pattern.search(text):
            return False
        return self.also is None or bool(self.also.search(text))


@dataclass(frozen=True)
class SeverityRule:
    pattern: re.Pattern[str]
    severity: Severity

    def matches(self, text: str) -> bool:
        return bool(self.pattern.search(text))


@dataclass(frozen=True)
class EnzymeRule:
    """Enzyme/transporter pattern with a function producing its canonical name."""

    pattern: re.Pattern[str]
    canonical: Callable[[re.Match[str]], str]


@dataclass(frozen=True)
class PkRule:
    """Quantitative change of one PK parameter; groups are (value, unit)."""

    field: str
    pattern: re.Pattern[str]


# ---------------------------------------------------------------------------
# DDI gating keywords
# ---------------------------------------------------------------------------


def keyword_pattern(keywords: Iterable[str]) -> re.Pattern[str]:
    """Alternation of literal keywords; short all-caps tokens get word boundaries."""
    parts = []
    for keyword in keywords:
        escaped = re.escape(keyword)
        if keyword.isupper() and len(keyword) <= 4:
            escaped = rf"\b{escaped}"
        parts.append(escaped)
    return _rx("|".join(parts))


LABEL_DDI_KEYWORDS = keyword_pattern([
    "co-administration", "coadministration", "concomitant", "concurrent use",
    "drug interaction", "drug-drug interaction", "DDI", "cytochrome", "CYP",
    "P-glycoprotein", "P-gp", "inhibitor", "inducer", "substrate",
    "contraindicated", "avoid", "caution", "monitor", "adjust dose",
    "reduce dose", "increase exposure", "decrease exposure", "clearance",
    "metabolism", "elimination",
])

TRIAL_DDI_KEYWORDS = keyword_pattern([
    "concomitant", "concurrent", "co-administration", "coadministration",
    "drug interaction", "prohibited medication", "excluded medication",
    "CYP", "strong inhibitor", "moderate inhibitor", "enzyme inhibitor",
    "inducer", "inhibitor", "contraindicated", "avoid combination",
    "use with caution", "P-glycoprotein", "P-gp", "transporter", "metabolic",
    "clearance",
])

PUBLICATION_DDI_KEYWORDS = keyword_pattern([
    "drug interaction", "drug-drug interaction", "DDI", "co-administration",
    "coadministration", "concomitant", "combination", "cytochrome", "CYP",
    "P-glycoprotein", "P-gp", "pharmacokinetic", "AUC", "Cmax", "clearance",
    "inhibitor", "inducer", "contraindicated",
])


# ---------------------------------------------------------------------------
# Entry segmentation
# ---------------------------------------------------------------------------

ENTRY_SPLIT = re.compile(r"\n\s*\n|\.\s+(?=[A-Z])|;\s+(?=[A-Z])")
MIN_ENTRY_LENGTH = 20


def split_entries(text: str, gate: re.Pattern[str]) -> list[str]:
    """
    Split gated text into candidate interaction entries.

    Entries of MIN_ENTRY_LENGTH characters or fewer, and entries without a
    gating keyword, are dropped. When the text passes the gate but no single
    entry does, the whole text is returned as one entry.
    """
    text = text.strip()
    if not text or not gate.search(text):
        return []
    entries = [
        " ".join(entry.split())
        for entry in ENTRY_SPLIT.split(text)
        if entry and len(entry.strip()) > MIN_ENTRY_LENGTH
    ]
    entries = [entry for entry in entries if gate.search(entry)]
    return entries or [" ".join(text.split())]


# ---------------------------------------------------------------------------
# Interacting drug names
# ---------------------------------------------------------------------------

COMMON_WORDS = frozenset("""
about above administration adults after agents also although among and another any
approved avoid baseline based because been before between both cancer capsule cardiac
caution children chloride clinical coadministration co-administration combination
combine concentration concentrations concomitant consider contraindicated could criteria
cytochrome daily days decline decrease define determine disease doses dose dosage drug
drugs during each eleven enzyme enzymes even examine exclusion exposure female following
from genuine given glycoprotein guide have hepatic history hours however include
includes including inclusion increase inducer inducers infusion inhibitor inhibitors
injection inside interaction interactions investigator known label labeling liver male
medication medications medicine might moderate monitor months must online oral other
outside override patient patients plasma please potent precautions pregnancy prior
protocol provide receiving refer renal routine saline section seven should side sponsor
strong studies study subjects substrate substrates such table tablet taking than that
their therapy there therefore these those treatment trial trials tumor urine were
warnings weak weeks where which while wide with within women would years
""".split())

# Distinctive endings used to scan free text for generic names.
SCAN_SUFFIXES = (
    "mycin", "micin", "cillin", "navir", "previr", "tinib", "mab", "zole", "pril",
    "sartan", "statin", "afenib", "xaban", "gatran", "farin", "floxacin", "cycline",
    "dipine", "oxetine", "triptan", "platin", "taxel", "rubicin", "olimus", "parib",
    "ciclib", "coxib", "azepam", "lukast", "gliptin", "glitazone",
)

# Broader endings accepted for candidates already isolated by a pattern.
LIKELY_SUFFIXES = SCAN_SUFFIXES + ("sone", "olol", "ide", "ine", "arin", "vir", "pam", "done")

SUFFIX_SCAN = _rx(r"\b([a-z]{2,}(?:" + "|".join(SCAN_SUFFIXES) + r"))\b")
BRAND_PATTERN = re.compile(r"\b([A-Z][a-z]+(?:tra|cel|nex|sor|bev|rit|ima|das|ofa|sun|ven))\b")
PARENTHETICAL = _rx(r"\(([a-z][a-z\s-]+[a-z])\)")
LIST_PATTERN = _rx(r"\b(?:such as|including|includes?|namely|e\.g\.,?)\s+([^.;:()]+)")
LIST_SPLIT = _rx(r",|/|\bor\b|\band\b")
PROPER_NOUN = re.compile(r"[A-Z][a-z]+")
DRUG_CLASS_PATTERN = _rx(
    r"\b(NSAIDs?|anticoagulants|antiplatelet (?:agents|drugs)|antacids|"
    r"proton pump inhibitors|PPIs|SSRIs|SNRIs|MAOIs|MAO inhibitors|opioids|"
    r"benzodiazepines|antiarrhythmics|diuretics|corticosteroids|"
    r"(?:St\.? )?John'?s wort|grapefruit juice|(?:oral|hormonal) contraceptives|"
    r"live vaccines|H2[- ]receptor antagonists|QT[- ]prolonging (?:drugs|agents))\b"
)


def is_drug_class(name: str) -> bool:
    return bool(DRUG_CLASS_PATTERN.fullmatch(name.strip()))


def is_likely_drug_name(name: str) -> bool:
    """Cheap drug-likeness check for an isolated candidate token."""
    name = name.strip()
    if is_drug_class(name):
        return True
    if not 4 <= len(name) <= 25 or " " in name:
        return False
    lowered = name.lower()
    if lowered in COMMON_WORDS or lowered.isdigit():
        return False
    if lowered.endswith(LIKELY_SUFFIXES):
        return True
    return bool(PROPER_NOUN.fullmatch(name))


def _list_candidates(match: re.Match[str]) -> list[str]:
    candidates = []
    for item in LIST_SPLIT.split(match.group(1)):
        item = item.strip()
        if not item:
            continue
        if is_drug_class(item):
            candidates.append(item)
            continue
        candidates.extend(word for word in item.split() if is_likely_drug_name(word))
    return candidates


DRUG_NAME_RULES: Sequence[tuple[re.Pattern[str], Callable[[re.Match[str]], list[str]]]] = (
    (DRUG_CLASS_PATTERN, lambda m: [m.group(1)]),
    (PARENTHETICAL, lambda m: [m.group(1)] if is_likely_drug_name(m.group(1)) else []),
    (SUFFIX_SCAN, lambda m: [m.group(1)]),
    (BRAND_PATTERN, lambda m: [m.group(1)]),
    (LIST_PATTERN, _list_candidates),
)


def extract_drug_mentions(text: str, exclude: str | None = None) -> list[str]:
    """Interacting drug names in `text`, first-seen order, case-insensitively unique."""
    seen = {exclude.strip().lower()} if exclude else set()
    found = []
    for pattern, take in DRUG_NAME_RULES:
        for match in pattern.finditer(text):
            for candidate in take(match):
                candidate = " ".join(candidate.split())
                key = candidate.lower()
                if key in seen or key in COMMON_WORDS or len(candidate) < 4:
                    continue
                seen.add(key)
                found.append(candidate)
    return found


# ---------------------------------------------------------------------------
# Enzymes and transporters
# ---------------------------------------------------------------------------


def _upper_compact(match: re.Match[str]) -> str:
    return re.sub(r"\s+", "", match.group(0)).upper()


ENZYME_RULES: Sequence[EnzymeRule] = (
    EnzymeRule(_rx(r"\bCYP\s?\d[A-Z](?:\d{1,2})?\b"), _upper_compact),
    EnzymeRule(
        _rx(r"\bcytochrome\s+P450\s+(\d[A-Z]\d{0,2})\b"),
        lambda m: f"CYP{m.group(1).upper()}",
    ),
    EnzymeRule(_rx(r"\bP-?glycoprotein\b|\bP-?gp\b"), lambda m: "P-gp"),
    EnzymeRule(_rx(r"\bOATP\s?\d[A-Z]\d\b"), _upper_compact),
    EnzymeRule(_rx(r"\bUGT\s?\d[A-Z]\d{1,2}\b"), _upper_compact),
    EnzymeRule(_rx(r"\bBCRP\b"), lambda m: "BCRP"),
    EnzymeRule(_rx(r"\bMDR1\b"), lambda m: "MDR1"),
    EnzymeRule(_rx(r"\bMATE\s?\d(?:-?K)?\b"), _upper_compact),
    EnzymeRule(_rx(r"\bOCT\s?\d\b"), _upper_compact),
)


def extract_enzymes(text: str) -> list[str]:
    found: list[str] = []
    for rule in ENZYME_RULES:
        for match in rule.pattern.finditer(text):
            name = rule.canonical(match)
            if name not in found:
                found.append(name)
    return found


# ---------------------------------------------------------------------------
# Mechanism
# ---------------------------------------------------------------------------

ENZYME_VERB_RULES: Sequence[PhraseRule] = (
    PhraseRule(_rx(r"inhibit"), "inhibition"),
    PhraseRule(_rx(r"induc"), "induction"),
    PhraseRule(_rx(r"substrate"), "substrate competition"),
)

MECHANISM_RULES: Sequence[PhraseRule] = (
    PhraseRule(_rx(r"protein[- ]binding"), "Protein binding displacement"),
    PhraseRule(_rx(r"renal (?:clearance|excretion|elimination)"), "Altered renal clearance"),
    PhraseRule(_rx(r"absorption"), "Altered absorption"),
    PhraseRule(_rx(r"additive|synergistic"), "Additive pharmacodynamic effects"),
    PhraseRule(_rx(r"\bQTc?\b", 0), "Additive QT prolongation", also=_rx(r"prolong")),
)


def collect_phrases(text: str, rules: Iterable[PhraseRule]) -> list[str]:
    """Phrases of all matching rules, in rule order."""
    return [rule.phrase for rule in rules if rule.matches(text)]


def describe_mechanism(text: str, enzymes: Sequence[str]) -> str:
    """Enzyme + verb phrases first, else keyword phrases, else 'not specified'."""
    phrases = []
    if enzymes:
        joined = ", ".join(enzymes)
        phrases = [f"{joined} {verb}" for verb in collect_phrases(text, ENZYME_VERB_RULES)]
    if not phrases:
        phrases = collect_phrases(text, MECHANISM_RULES)
    return "; ".join(phrases) or MECHANISM_NOT_SPECIFIED


# ---------------------------------------------------------------------------
# Severity
# ---------------------------------------------------------------------------

LABEL_SECTION_SEVERITY: dict[str, Severity] = {
    "contraindications": Severity.MAJOR,
    "boxed_warning": Severity.MAJOR,
}

LABEL_SEVERITY_RULES: Sequence[SeverityRule] = (
    SeverityRule(_rx(r"contraindicated"), Severity.MAJOR),
    SeverityRule(_rx(r"\bavoid"), Severity.MAJOR),
    SeverityRule(_rx(r"not recommended"), Severity.MAJOR),
    SeverityRule(_rx(r"boxed warning"), Severity.MAJOR),
    SeverityRule(_rx(r"\bwarning"), Severity.MODERATE),
    SeverityRule(_rx(r"\bcaution"), Severity.MODERATE),
    SeverityRule(_rx(r"\bmonitor"), Severity.MODERATE),
    SeverityRule(_rx(r"\bconsider"), Severity.MINOR),
    SeverityRule(_rx(r"\bmay\b"), Severity.MINOR),
)

TRIAL_SEVERITY_RULES: Sequence[SeverityRule] = (
    SeverityRule(_rx(r"contraindicated|prohibited|forbidden|not permitted"), Severity.CONTRAINDICATED),
    SeverityRule(
        _rx(r"\b(?:strong|potent)\s+(?:[\w-]+\s+)?(?:inhibitor|inducer)s?\b|\bavoid|\bsignificant|\bmajor\b"),
        Severity.MAJOR,
    ),
    SeverityRule(
        _rx(r"\bmoderate\s+(?:[\w-]+\s+)?(?:inhibitor|inducer)s?\b|\bcaution|\bmonitor|\bconsider"),
        Severity.MODERATE,
    ),
    SeverityRule(_rx(r"\bweak\s+(?:[\w-]+\s+)?(?:inhibitor|inducer)s?\b|\bminor\b|\bminimal"), Severity.MINOR),
)

PUBLICATION_SEVERITY_RULES: Sequence[SeverityRule] = (
    SeverityRule(_rx(r"contraindicated|\bavoid"), Severity.MAJOR),
    SeverityRule(_rx(r"\bsignificant|\bmarked"), Severity.MODERATE),
    SeverityRule(_rx(r"\bminor\b|\bslight"), Severity.MINOR),
)


def classify_severity(
    text: str,
    rules: Iterable[SeverityRule],
    default: Severity = Severity.MODERATE,
) -> Severity:
    """Severity of the first matching rule, else `default`."""
    for rule in rules:
        if rule.matches(text):
            return rule.severity
    return default


# ---------------------------------------------------------------------------
# Effect and management
# ---------------------------------------------------------------------------

_EXPOSURE = _rx(r"exposure|concentration|plasma level|\bAUC\b")

EFFECT_RULES: Sequence[PhraseRule] = (
    PhraseRule(_rx(r"increas"), "Increased drug exposure", also=_EXPOSURE),
    PhraseRule(_rx(r"decreas|reduc"), "Decreased drug exposure", also=_EXPOSURE),
    PhraseRule(_rx(r"decreas|reduc"), "Decreased efficacy", also=_rx(r"efficacy|effectiveness")),
    PhraseRule(_rx(r"toxicit|adverse"), "Increased toxicity risk"),
    PhraseRule(_rx(r"\bQTc?\b", 0), "QT prolongation", also=_rx(r"prolong")),
    PhraseRule(_rx(r"bleeding|hemorrhag|haemorrhag"), "Increased bleeding risk"),
    PhraseRule(_rx(r"serotonin syndrome"), "Serotonin syndrome risk"),
)

MANAGEMENT_RULES: Sequence[PhraseRule] = (
    PhraseRule(_rx(r"\bavoid|contraindicated|do not (?:co-?administer|use)"), "Avoid combination"),
    PhraseRule(_rx(r"\bdos(?:e|age|ing)\b"), "Consider dose reduction", also=_rx(r"reduc|decreas|lower")),
    PhraseRule(_rx(r"\bdos(?:e|age|ing)\b"), "Consider dose adjustment", also=_rx(r"adjust|modif")),
    PhraseRule(_rx(r"\bmonitor|\bcaution"), "Monitor closely"),
    PhraseRule(_rx(r"\balternative"), "Consider alternative therapy"),
)


def describe_effect(text: str) -> str:
    return "; ".join(collect_phrases(text, EFFECT_RULES)) or EFFECT_NOT_SPECIFIED


def describe_management(text: str) -> str:
    return "; ".join(collect_phrases(text, MANAGEMENT_RULES)) or DEFAULT_MANAGEMENT


# ---------------------------------------------------------------------------
# Pharmacokinetic deltas
# ---------------------------------------------------------------------------

_CHANGE = r"\b.*?(?:increase|decrease|reduc|elevat|rais)\w*[^.]*?(\d+(?:\.\d+)?)\s*(%|-?fold|times)"

PK_RULES: Sequence[PkRule] = (
    PkRule("auc_change", _rx(r"\bAUC\w*" + _CHANGE)),
    PkRule("cmax_change", _rx(r"\bC\s?max" + _CHANGE)),
    PkRule("clearance_change", _rx(r"\bclearance" + _CHANGE)),
    PkRule("half_life_change", _rx(r"\bhalf-?life" + _CHANGE)),
)


def _format_change(value: str, unit: str) -> str:
    return f"{value}%" if unit == "%" else f"{value}-fold"


def extract_pk_changes(text: str) -> PharmacokineticChanges | None:
    """PK parameter changes mentioned in `text`, or None when there are none."""
    changes = PharmacokineticChanges()
    for rule in PK_RULES:
        match = rule.pattern.search(text)
        if match:
            setattr(changes, rule.field, _format_change(match.group(1), match.group(2).lower()))
    return None if changes.is_empty() else changes


def change_as_percent(change: str | None) -> float | None:
    """'80%' -> 80.0, '3-fold' -> 200.0."""
    if not change:
        return None
    if change.endswith("%"):
        return float(change[:-1])
    return (float(change.removesuffix("-fold")) - 1) * 100


# ---------------------------------------------------------------------------
# Interaction type
# ---------------------------------------------------------------------------

PK_INDICATORS = _rx(
    r"\bCYP|cytochrome|P-?gp|P-?glycoprotein|transporter|absorption|clearance|"
    r"metabolism|\bAUC\b|\bC\s?max\b|exposure|half-?life"
)
PD_INDICATORS = _rx(
    r"additive|synergistic|\bQTc?\b|bleeding|serotonin|sedation|hypotension|"
    r"pharmacodynamic|respiratory depression"
)


def classify_interaction_type(text: str) -> str:
    pk = bool(PK_INDICATORS.search(text))
    pd = bool(PD_INDICATORS.search(text))
    if pk and pd:
        return "mixed"
    if pk:
        return "pharmacokinetic"
    if pd:
        return "pharmacodynamic"
    return "unknown"
