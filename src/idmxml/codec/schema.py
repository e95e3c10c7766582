"""
idmXML Schema Generations
==========================
Namespace URIs and the element names that differ between the two idmXSD
generations, plus the vocabularies shared by reader and writer:
project stages, region codes and schema-generation detection.

    v1 (idmXML/0.2)   standardProjectPhase / localProjectPhase
    v2 (idmXML/2.0)   standardProjectStage / localProjectStage
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from lxml import etree as ET

from .. import config
from ..models.document import SchemaVersion
from ..models.header import ISO_PROJECT_STAGES


def standard_stage_element(version: SchemaVersion) -> str:
    return "standardProjectPhase" if version is SchemaVersion.V1 else "standardProjectStage"


def local_stage_element(version: SchemaVersion) -> str:
    return "localProjectPhase" if version is SchemaVersion.V1 else "localProjectStage"


# ---------------------------------------------------------------------------
# Project stages
# ---------------------------------------------------------------------------

_LEGACY_STAGE_MAP = {
    "design": "design",
    "production": "production",
    "construction": "production",
    "handover": "handover",
    "operation": "operation",
    "inception": "inception",
    "brief": "brief",
    "end-of-life": "end-of-life",
}

_WHITESPACE = re.compile(r"\s+")


def normalize_stage(name: str) -> str:
    """
    Map a stage name from either generation onto the ISO stage vocabulary.

    Case and whitespace are ignored and ``construction`` becomes
    ``production``. Unknown names are returned lower-cased.
    """
    key = _WHITESPACE.sub("", name.strip().lower())
    return _LEGACY_STAGE_MAP.get(key, name.strip().lower())


def is_iso_stage(name: str) -> bool:
    return name in ISO_PROJECT_STAGES


# ---------------------------------------------------------------------------
# Regions (ISO 3166-1)
# ---------------------------------------------------------------------------

ALPHA3_TO_ALPHA2 = {
    "AFG": "AF", "ALB": "AL", "DZA": "DZ", "ARG": "AR", "AUS": "AU", "AUT": "AT",
    "BEL": "BE", "BRA": "BR", "BGR": "BG", "CAN": "CA", "CHL": "CL", "CHN": "CN",
    "COL": "CO", "HRV": "HR", "CZE": "CZ", "DNK": "DK", "EGY": "EG", "EST": "EE",
    "FIN": "FI", "FRA": "FR", "DEU": "DE", "GRC": "GR", "HKG": "HK", "HUN": "HU",
    "ISL": "IS", "IND": "IN", "IDN": "ID", "IRL": "IE", "ISR": "IL", "ITA": "IT",
    "JPN": "JP", "KAZ": "KZ", "KOR": "KR", "KWT": "KW", "LVA": "LV", "LTU": "LT",
    "LUX": "LU", "MYS": "MY", "MEX": "MX", "NLD": "NL", "NZL": "NZ", "NOR": "NO",
    "PAK": "PK", "PER": "PE", "PHL": "PH", "POL": "PL", "PRT": "PT", "QAT": "QA",
    "ROU": "RO", "RUS": "RU", "SAU": "SA", "SRB": "RS", "SGP": "SG", "SVK": "SK",
    "SVN": "SI", "ZAF": "ZA", "ESP": "ES", "SWE": "SE", "CHE": "CH", "TWN": "TW",
    "THA": "TH", "TUR": "TR", "UKR": "UA", "ARE": "AE", "GBR": "GB", "USA": "US",
    "VNM": "VN",
}

ALPHA2_TO_NAME = {
    "AF": "Afghanistan", "AL": "Albania", "DZ": "Algeria", "AR": "Argentina",
    "AU": "Australia", "AT": "Austria", "BE": "Belgium", "BR": "Brazil",
    "BG": "Bulgaria", "CA": "Canada", "CL": "Chile", "CN": "China",
    "CO": "Colombia", "HR": "Croatia", "CZ": "Czech Republic", "DK": "Denmark",
    "EG": "Egypt", "EE": "Estonia", "FI": "Finland", "FR": "France",
    "DE": "Germany", "GR": "Greece", "HK": "Hong Kong", "HU": "Hungary",
    "IS": "Iceland", "IN": "India", "ID": "Indonesia", "IE": "Ireland",
    "IL": "Israel", "IT": "Italy", "JP": "Japan", "KZ": "Kazakhstan",
    "KR": "Korea, Republic of", "KW": "Kuwait", "LV": "Latvia", "LT": "Lithuania",
    "LU": "Luxembourg", "MY": "Malaysia", "MX": "Mexico", "NL": "Netherlands",
    "NZ": "New Zealand", "NO": "Norway", "PK": "Pakistan", "PE": "Peru",
    "PH": "Philippines", "PL": "Poland", "PT": "Portugal", "QA": "Qatar",
    "RO": "Romania", "RU": "Russian Federation", "SA": "Saudi Arabia", "RS": "Serbia",
    "SG": "Singapore", "SK": "Slovakia", "SI": "Slovenia", "ZA": "South Africa",
    "ES": "Spain", "SE": "Sweden", "CH": "Switzerland", "TW": "Taiwan",
    "TH": "Thailand", "TR": "Turkey", "UA": "Ukraine", "AE": "United Arab Emirates",
    "GB": "United Kingdom", "US": "United States", "VN": "Vietnam",
}

_REGION_GROUPS = {
    "international": "International (All regions)",
    "EU": "European Union",
    "NA": "North America",
    "APAC": "Asia-Pacific",
}


def normalize_region_code(code: str) -> str:
    """Convert an ISO 3166-1 alpha-3 code to alpha-2; anything else is returned unchanged."""
    if not code:
        return code
    return ALPHA3_TO_ALPHA2.get(code.upper(), code)


def region_name(code: str) -> str:
    if not code:
        return code
    if code in _REGION_GROUPS:
        return _REGION_GROUPS[code]
    return ALPHA2_TO_NAME.get(normalize_region_code(code).upper(), code)


# ---------------------------------------------------------------------------
# Generation detection
# ---------------------------------------------------------------------------


@dataclass
class VersionDetection:
    version: SchemaVersion
    confidence: str
    details: str = ""
    indicators: list[str] = field(default_factory=list)


def local_name(element) -> str:
    """Tag without namespace; empty for comments and processing instructions."""
    if not isinstance(element.tag, str):
        return ""
    return ET.QName(element).localname


def detect_schema_version(root) -> VersionDetection:
    """
    Score generation indicators on a parsed root element.

    The namespace counts 3, a root ``version`` attribute 2 and each
    phase/stage element name 1. Ties and documents without any indicator
    resolve to 2.0 with low confidence.
    """
    indicators: list[str] = []
    namespace = ET.QName(root).namespace or ""
    v1_ns = namespace == config.NAMESPACE_V1 or namespace.endswith("idmXML/1.0")
    v2_ns = namespace == config.NAMESPACE_V2
    version_attr = (root.get("version") or "").strip()

    names = {local_name(el) for el in root.iter()}
    has_phase = "standardProjectPhase" in names
    has_stage = "standardProjectStage" in names
    has_local_phase = "localProjectPhase" in names
    has_local_stage = "localProjectStage" in names

    if v1_ns:
        indicators.append("v1.0 namespace (idmXML/0.2)")
    if v2_ns:
        indicators.append("v2.0 namespace (idmXML/2.0)")
    if version_attr in ("1.0", "2.0"):
        indicators.append(f'version="{version_attr}" attribute')
    if has_phase:
        indicators.append("standardProjectPhase element (v1.0)")
    if has_stage:
        indicators.append("standardProjectStage element (v2.0)")
    if has_local_phase:
        indicators.append("localProjectPhase element (v1.0)")
    if has_local_stage:
        indicators.append("localProjectStage element (v2.0)")

    v1_score = 3 * v1_ns + 2 * (version_attr == "1.0") + has_phase + has_local_phase
    v2_score = 3 * v2_ns + 2 * (version_attr == "2.0") + has_stage + has_local_stage

    if v1_score > v2_score:
        return VersionDetection(
            SchemaVersion.V1, "high" if v1_score >= 3 else "medium",
            f"Detected idmXSD v1.0 (score: {v1_score})", indicators,
        )
    if v2_score > v1_score:
        return VersionDetection(
            SchemaVersion.V2, "high" if v2_score >= 3 else "medium",
            f"Detected idmXSD v2.0 (score: {v2_score})", indicators,
        )
    if v1_score:
        return VersionDetection(SchemaVersion.V2, "low", "Mixed indicators - defaulting to v2.0", indicators)
    return VersionDetection(SchemaVersion.V2, "low", "No version indicators found - assuming v2.0", indicators)


def is_idmxml(content: str | bytes) -> bool:
    """Cheap textual sniff, no parsing."""
    if not content:
        return False
    text = content.decode("utf-8", errors="ignore") if isinstance(content, bytes) else content
    has_namespace = "idmXML" in text or "standards.buildingsmart.org/IDM" in text
    has_root = "<idm" in text or "<IDM" in text
    has_uc = "<uc>" in text or "<uc " in text
    has_er = "<er>" in text or "<er " in text
    return has_namespace or has_root or (has_uc and has_er)
