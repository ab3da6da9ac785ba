"""Tests for the regulatory label extractor (openFDA and DailyMed)."""

import asyncio

import httpx

from ddi_miner.evidence.model import EvidenceLevel, Severity, SourceType
from ddi_miner.extractors import ExtractionOptions, RegulatoryLabelExtractor
from ddi_miner.extractors import labels
from ddi_miner.extractors.labels import map_spl_section, parse_openfda_label, parse_spl_document

OPENFDA_ONLY = ExtractionOptions(max_results=5, flags={"include_dailymed": False})


def openfda_handler(label, searches=None):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "api.fda.gov":
            if searches is not None:
                searches.append(request.url.params["search"])
            return httpx.Response(200, json={"results": [label]})
        return httpx.Response(404)

    return handler


def test_warfarin_nsaids_scenario(mock_client, resolver, openfda_warfarin, sleeps):
    extractor = RegulatoryLabelExtractor(
        client=mock_client(openfda_handler(openfda_warfarin)), resolver=resolver, sleep=sleeps
    )
    records = asyncio.run(extractor.extract_ddi_for_drug("warfarin", OPENFDA_ONLY))

    assert len(records) == 1
    record = records[0]
    assert record.source_type is SourceType.REGULATORY_LABEL
    assert record.drug1.name == "warfarin"
    assert record.drug1.rxcui == "11289"
    assert record.regulatory_label.product_rxcui == "855332"
    assert record.drug2.name == "NSAIDs"
    assert record.interaction.severity is Severity.MAJOR
    assert record.interaction.enzyme_pathway == ["CYP2C9"]
    assert record.interaction.mechanism == "CYP2C9 inhibition"
    assert record.interaction.effect == "Increased bleeding risk"
    assert record.interaction.management == "Avoid combination"
    assert record.evidence.level is EvidenceLevel.HIGH
    assert 0 <= record.evidence.confidence <= 100
    assert record.source.section == "drug_interactions"
    assert record.source.url.endswith("d3f0e1a2-warfarin")
    assert record.regulatory_label.product_name == "Coumadin"
    assert record.regulatory_label.contraindication is False


def test_not_found_returns_empty(mock_client, resolver, sleeps):
    extractor = RegulatoryLabelExtractor(
        client=mock_client(lambda request: httpx.Response(404)), resolver=resolver, sleep=sleeps
    )
    assert asyncio.run(extractor.extract_ddi_for_drug("nonexistumab")) == []


def test_server_error_returns_empty(mock_client, resolver, sleeps):
    extractor = RegulatoryLabelExtractor(
        client=mock_client(lambda request: httpx.Response(500)), resolver=resolver, sleep=sleeps
    )
    assert asyncio.run(extractor.extract_ddi_for_drug("warfarin", OPENFDA_ONLY)) == []


def test_blank_drug_name(mock_client, resolver):
    extractor = RegulatoryLabelExtractor(client=mock_client(lambda request: httpx.Response(500)), resolver=resolver)
    assert asyncio.run(extractor.extract_ddi_for_drug("   ")) == []


def test_results_are_cached(mock_client, resolver, openfda_warfarin, sleeps):
    searches = []
    extractor = RegulatoryLabelExtractor(
        client=mock_client(openfda_handler(openfda_warfarin, searches)), resolver=resolver, sleep=sleeps
    )
    asyncio.run(extractor.extract_ddi_for_drug("warfarin", OPENFDA_ONLY))
    asyncio.run(extractor.extract_ddi_for_drug("warfarin", OPENFDA_ONLY))
    assert len(searches) == 1
    assert extractor.cache_stats().hits == 1
    extractor.clear_cache()
    assert extractor.cache_stats().size == 0


def test_brand_name_search(mock_client, resolver, openfda_warfarin, sleeps):
    searches = []
    extractor = RegulatoryLabelExtractor(
        client=mock_client(openfda_handler(openfda_warfarin, searches)), resolver=resolver, sleep=sleeps
    )
    options = ExtractionOptions(max_results=5, flags={"include_dailymed": False, "include_brand_names": True})
    records = asyncio.run(extractor.extract_ddi_for_drug("warfarin", options))

    assert len(searches) == 3
    assert any('"Coumadin"' in s for s in searches)
    assert any('"Jantoven"' in s for s in searches)
    # Every search returned the same label; it is mined once
    assert len(records) == 1


def test_parse_openfda_label(openfda_warfarin):
    document = parse_openfda_label(openfda_warfarin)
    assert document.label_id == "d3f0e1a2-warfarin"
    assert document.manufacturer == "Bristol-Myers Squibb"
    assert set(document.sections) == {"drug_interactions", "contraindications"}


def test_map_spl_section():
    assert map_spl_section("34073-7", None) == "drug_interactions"
    assert map_spl_section("00000-0", "5 WARNINGS AND PRECAUTIONS") == "warnings_and_cautions"
    assert map_spl_section(None, "BOXED WARNING: bleeding") == "boxed_warning"
    assert map_spl_section(None, "Indications and Usage") is None


def test_parse_spl_document(spl_xml):
    document = parse_spl_document(spl_xml, "spl-1")
    assert document.origin == "dailymed"
    assert document.product_name == "IMATINIB MESYLATE tablets"
    assert document.manufacturer == "Novartis"
    assert set(document.sections) == {"drug_interactions", "warnings_and_cautions"}
    assert "ketoconazole" in document.sections["drug_interactions"]


def test_dailymed_extraction(mock_client, resolver, spl_xml, sleeps):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host != "dailymed.nlm.nih.gov":
            return httpx.Response(404)
        if request.url.path.endswith("/spls.json"):
            return httpx.Response(200, json={"data": [{"setid": "spl-1"}]})
        if request.url.path.endswith("/spls/spl-1.xml"):
            return httpx.Response(200, text=spl_xml)
        return httpx.Response(404)

    extractor = RegulatoryLabelExtractor(client=mock_client(handler), resolver=resolver, sleep=sleeps)
    records = asyncio.run(extractor.extract_ddi_for_drug("imatinib"))

    assert len(records) == 2
    by_section = {r.source.section: r for r in records}
    interactions = by_section["drug_interactions"]
    assert interactions.drug1.rxcui == "282388"
    assert interactions.drug2.name == "ketoconazole"
    assert interactions.drug2.rxcui == "6135"
    assert interactions.interaction.enzyme_pathway == ["CYP3A4"]
    assert interactions.interaction.mechanism == "CYP3A4 inhibition"
    assert interactions.interaction.severity is Severity.MAJOR
    assert "Increased drug exposure" in interactions.interaction.effect
    assert interactions.extraction_metadata.extraction_method == "regex_label_sections:dailymed"

    warning = by_section["warnings_and_cautions"]
    assert warning.interaction.severity is Severity.MODERATE
    assert warning.evidence.level is EvidenceLevel.LOW
    assert warning.regulatory_label.warning_type == "warning"


def dailymed_handler(listing, spl_xml):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host != "dailymed.nlm.nih.gov":
            return httpx.Response(404)
        if request.url.path.endswith("/spls.json"):
            return httpx.Response(200, json=listing)
        if request.url.path.endswith("/spls/spl-1.xml"):
            return httpx.Response(200, text=spl_xml)
        return httpx.Response(404)

    return handler


def test_dailymed_listing_with_non_object_entries(mock_client, resolver, spl_xml, sleeps):
    extractor = RegulatoryLabelExtractor(
        client=mock_client(dailymed_handler({"data": ["not-an-object"]}, spl_xml)), resolver=resolver, sleep=sleeps
    )
    assert asyncio.run(extractor.extract_ddi_for_drug("imatinib")) == []

    extractor = RegulatoryLabelExtractor(
        client=mock_client(dailymed_handler({"data": [None, 42, {"setid": "spl-1"}]}, spl_xml)),
        resolver=resolver,
        sleep=sleeps,
    )
    assert len(asyncio.run(extractor.extract_ddi_for_drug("imatinib"))) == 2


def test_openfda_non_object_payload(mock_client, resolver, sleeps):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "api.fda.gov":
            return httpx.Response(200, json=[{"results": []}])
        return httpx.Response(404)

    extractor = RegulatoryLabelExtractor(client=mock_client(handler), resolver=resolver, sleep=sleeps)
    assert asyncio.run(extractor.extract_ddi_for_drug("warfarin", OPENFDA_ONLY)) == []


def test_malformed_entry_is_skipped(mock_client, resolver, spl_xml, sleeps, monkeypatch):
    real = labels.describe_effect

    def describe_effect(entry):
        if "Monitor patients" in entry:
            raise ValueError("unreadable entry")
        return real(entry)

    monkeypatch.setattr(labels, "describe_effect", describe_effect)
    extractor = RegulatoryLabelExtractor(
        client=mock_client(dailymed_handler({"data": [{"setid": "spl-1"}]}, spl_xml)), resolver=resolver, sleep=sleeps
    )
    records = asyncio.run(extractor.extract_ddi_for_drug("imatinib"))
    assert [r.source.section for r in records] == ["drug_interactions"]
