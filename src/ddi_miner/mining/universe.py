"""
Built-in drug universe used when the store has no drug table.
"""

ONCOLOGY_DRUGS = (
    # Cytotoxics
    "doxorubicin", "cyclophosphamide", "methotrexate", "cisplatin", "carboplatin",
    "oxaliplatin", "paclitaxel", "docetaxel", "cabazitaxel", "gemcitabine",
    "irinotecan", "topotecan", "etoposide", "fluorouracil", "capecitabine",
    "cytarabine", "azacitidine", "decitabine", "fludarabine", "cladribine",
    "bendamustine", "melphalan", "chlorambucil", "ifosfamide", "temozolomide",
    "dacarbazine", "daunorubicin", "epirubicin", "idarubicin", "mitoxantrone",
    "bleomycin", "mitomycin", "vincristine", "vinblastine", "vinorelbine",
    "eribulin", "ixabepilone", "hydroxyurea", "mercaptopurine", "thioguanine",
    # Kinase inhibitors
    "imatinib", "dasatinib", "nilotinib", "erlotinib", "gefitinib",
    "sorafenib", "sunitinib", "pazopanib", "regorafenib", "cabozantinib",
    "lenvatinib", "ibrutinib", "acalabrutinib", "zanubrutinib", "idelalisib",
    "ruxolitinib", "fedratinib",
    # PARP and BCL-2 inhibitors
    "olaparib", "rucaparib", "niraparib", "talazoparib", "venetoclax",
    # Antibodies and conjugates
    "bevacizumab", "trastuzumab", "pertuzumab", "rituximab", "cetuximab",
    "pembrolizumab", "nivolumab", "atezolizumab", "durvalumab", "ipilimumab",
    "brentuximab vedotin", "polatuzumab vedotin", "enfortumab vedotin",
    "inotuzumab ozogamicin", "gemtuzumab ozogamicin",
)

INDICATION_DRUGS: dict[str, tuple[str, ...]] = {
    "breast cancer": ("doxorubicin", "cyclophosphamide", "paclitaxel", "trastuzumab", "pertuzumab"),
    "lung cancer": ("cisplatin", "carboplatin", "paclitaxel", "gemcitabine", "erlotinib"),
    "colorectal cancer": ("fluorouracil", "oxaliplatin", "irinotecan", "bevacizumab", "cetuximab"),
    "leukemia": ("methotrexate", "cytarabine", "daunorubicin", "imatinib", "dasatinib"),
    "lymphoma": ("rituximab", "cyclophosphamide", "doxorubicin", "vincristine", "prednisone"),
}


def drugs_for_indications(indications: list[str]) -> list[str]:
    """Fallback drug list: every mapped indication contained in a requested one."""
    drugs: dict[str, None] = {}
    for indication in indications:
        lowered = indication.lower()
        for key, names in INDICATION_DRUGS.items():
            if key in lowered:
                drugs.update(dict.fromkeys(names))
    return list(drugs)
