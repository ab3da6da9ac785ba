"""Pytest configuration and fixtures."""

import httpx
import pytest


def pytest_addoption(parser):
    """Add custom command line options."""
    parser.addoption(
        "--run-db",
        action="store_true",
        default=False,
        help="Run tests that require database connection",
    )


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "db: mark test as requiring database connection")


def pytest_collection_modifyitems(config, items):
    """Skip db tests unless --run-db is provided."""
    if config.getoption("--run-db"):
        # --run-db given: do not skip db tests
        return

    skip_db = pytest.mark.skip(reason="Need --run-db option to run database tests")
    for item in items:
        if "db" in item.keywords:
            item.add_marker(skip_db)


class FakeResolver:
    """Resolver answering from fixed tables; records every lookup."""

    def __init__(self, rxcuis=None, brands=None):
        self.rxcuis = {k.lower(): v for k, v in (rxcuis or {}).items()}
        self.brands = {k.lower(): v for k, v in (brands or {}).items()}
        self.calls = []

    async def resolve(self, name):
        self.calls.append(name)
        return self.rxcuis.get(name.strip().lower())

    async def brand_names(self, name):
        return list(self.brands.get(name.strip().lower(), []))


@pytest.fixture
def resolver():
    return FakeResolver(
        rxcuis={
            "warfarin": "11289",
            "imatinib": "282388",
            "ketoconazole": "6135",
            "ibrutinib": "1442981",
            "itraconazole": "28031",
        },
        brands={"warfarin": ["Coumadin", "Jantoven", "warfarin"]},
    )


@pytest.fixture
def mock_client():
    """Build an AsyncClient whose requests are answered by `handler`."""

    def build(handler):
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return build


@pytest.fixture
def openfda_warfarin():
    return {
        "id": "0a1b2c",
        "set_id": "d3f0e1a2-warfarin",
        "openfda": {
            "brand_name": ["Coumadin"],
            "generic_name": ["WARFARIN SODIUM"],
            "manufacturer_name": ["Bristol-Myers Squibb"],
            "rxcui": ["855332"],
        },
        "drug_interactions": [
            "Avoid concomitant use with NSAIDs because CYP2C9 inhibition increases the risk of bleeding."
        ],
        "contraindications": [
            "Pregnancy. Warfarin is contraindicated in women who are pregnant."
        ],
    }


@pytest.fixture
def spl_xml():
    return """<?xml version="1.0" encoding="UTF-8"?>
<document xmlns="urn:hl7-org:v3">
  <title>IMATINIB MESYLATE tablets</title>
  <author>
    <assignedEntity>
      <representedOrganization><name>Novartis</name></representedOrganization>
    </assignedEntity>
  </author>
  <component>
    <structuredBody>
      <component>
        <section>
          <code code="34073-7" codeSystem="2.16.840.1.113883.6.1"/>
          <title>7 DRUG INTERACTIONS</title>
          <text>
            <paragraph>Strong CYP3A4 inhibitors (ketoconazole) increase imatinib plasma concentrations and should be avoided.</paragraph>
          </text>
        </section>
      </component>
      <component>
        <section>
          <code code="99999-9"/>
          <title>5 WARNINGS AND PRECAUTIONS</title>
          <text>
            <paragraph>Monitor patients receiving ketoconazole for increased imatinib exposure.</paragraph>
          </text>
        </section>
      </component>
      <component>
        <section>
          <code code="34067-9"/>
          <title>1 INDICATIONS AND USAGE</title>
          <text><paragraph>Imatinib is indicated for chronic myeloid leukemia.</paragraph></text>
        </section>
      </component>
    </structuredBody>
  </component>
</document>
"""


@pytest.fixture
def trial_study():
    return {
        "protocolSection": {
            "identificationModule": {"nctId": "NCT01234567", "briefTitle": "Imatinib in Chronic Myeloid Leukemia"},
            "statusModule": {"overallStatus": "RECRUITING"},
            "designModule": {"studyType": "INTERVENTIONAL", "phases": ["PHASE2"]},
            "conditionsModule": {"conditions": ["Chronic Myeloid Leukemia"]},
            "eligibilityModule": {
                "eligibilityCriteria": (
                    "Inclusion Criteria:\n\n"
                    "* Age 18 years or older.\n\n"
                    "Exclusion Criteria:\n\n"
                    "* Concomitant use of strong CYP3A4 inhibitors such as ketoconazole or "
                    "clarithromycin is prohibited.\n"
                    "* Pregnant or breastfeeding women."
                )
            },
        }
    }


@pytest.fixture
def pubmed_xml():
    return """<?xml version="1.0" ?>
<PubmedArticleSet>
  <PubmedArticle>
    <MedlineCitation>
      <PMID>31234567</PMID>
      <Article>
        <Journal>
          <JournalIssue><PubDate><Year>2021</Year><Month>Mar</Month></PubDate></JournalIssue>
          <Title>Clinical Pharmacology and Therapeutics</Title>
        </Journal>
        <ArticleTitle>Effect of itraconazole on the pharmacokinetics of ibrutinib</ArticleTitle>
        <Abstract>
          <AbstractText Label="METHODS">We conducted a pharmacokinetic study in 24 volunteers.</AbstractText>
          <AbstractText Label="RESULTS">With itraconazole, a strong CYP3A4 inhibitor, the ibrutinib AUC increased 10-fold and Cmax increased 8-fold (p &lt; 0.001).</AbstractText>
        </Abstract>
        <AuthorList>
          <Author><LastName>Smith</LastName><Initials>J</Initials></Author>
          <Author><LastName>Chen</LastName><Initials>L</Initials></Author>
        </AuthorList>
        <PublicationTypeList><PublicationType>Journal Article</PublicationType></PublicationTypeList>
      </Article>
    </MedlineCitation>
    <PubmedData>
      <ArticleIdList>
        <ArticleId IdType="pubmed">31234567</ArticleId>
        <ArticleId IdType="doi">10.1002/cpt.1234</ArticleId>
      </ArticleIdList>
    </PubmedData>
  </PubmedArticle>
</PubmedArticleSet>
"""


@pytest.fixture
def sleeps():
    """Async sleep stand-in that records requested delays."""
    calls = []

    async def sleep(seconds):
        calls.append(seconds)

    sleep.calls = calls
    return sleep
