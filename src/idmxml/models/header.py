"""
IDM Header Metadata
====================
Document-level metadata carried alongside the ER forest: the specId
block, authoring (authors, change logs), the use-case block and the
persistent document identifiers the encoder must reuse between saves.
"""

from __future__ import annotations

from datetime import date
from enum import Enum
from typing import Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from .exchange import Figure, generate_id


class DocumentStatus(str, Enum):
    """ISO document status vocabulary."""
    NP = "NP"      # New Proposal
    WD = "WD"      # Working Draft
    CD = "CD"      # Committee Draft
    DIS = "DIS"    # Draft International Standard
    FDIS = "FDIS"  # Final Draft International Standard
    PUB = "PUB"    # Published
    WDRL = "WDRL"  # Withdrawn


ISO_PROJECT_STAGES = (
    "inception",
    "brief",
    "design",
    "production",
    "handover",
    "operation",
    "end-of-life",
)


# ---------------------------------------------------------------------------
# Authors
# ---------------------------------------------------------------------------

class PersonAuthor(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["person"] = "person"
    id: str = Field(default_factory=lambda: generate_id("author", 8))
    given_name: str = Field("", alias="givenName")
    family_name: str = Field("", alias="familyName")
    middle_initial: str = Field("", alias="middleInitial")
    prefix: str = ""
    suffix: str = ""
    postnominal_designation: str = Field("", alias="postnominalDesignation")
    affiliation: str = ""
    uri: str = ""

    @property
    def display_name(self) -> str:
        return format_person_name(self)


class OrganizationAuthor(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["organization"] = "organization"
    id: str = Field(default_factory=lambda: generate_id("author", 8))
    name: str = ""
    uri: str = ""

    @property
    def display_name(self) -> str:
        return self.name


Author = Union[PersonAuthor, OrganizationAuthor, str]


def format_person_name(person: PersonAuthor) -> str:
    """
    Render a person as ``prefix given middle family suffix, postnominal``.

    Empty parts are skipped; the postnominal designation is appended after
    a comma only when present.
    """
    parts = [
        person.prefix,
        person.given_name,
        person.middle_initial,
        person.family_name,
        person.suffix,
    ]
    name = " ".join(p.strip() for p in parts if p and p.strip())
    postnominal = person.postnominal_designation.strip()
    if postnominal:
        return f"{name}, {postnominal}" if name else postnominal
    return name


def author_display_name(author: Author) -> str:
    if isinstance(author, str):
        return author
    return author.display_name


# ---------------------------------------------------------------------------
# Change history
# ---------------------------------------------------------------------------

class ChangeEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    changed_element: str = Field("", alias="changedElement")
    changed_from: str = Field("", alias="changedFrom")


class ChangeLog(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=lambda: generate_id("changelog", 8))
    change_date_time: str = Field("", alias="changeDateTime", description="ISO 8601 date or date-time")
    change_summary: str = Field("", alias="changeSummary")
    changed_by: str = Field("", alias="changedBy")
    changes: list[ChangeEntry] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Use-case block
# ---------------------------------------------------------------------------

class Actor(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=lambda: generate_id("actor", 8))
    name: str = ""
    actor_type: str = Field("", alias="actorType")
    bpmn_shape_name: str = Field("", alias="bpmnShapeName")
    classification: str = ""
    sub_actors: list[Actor] = Field(default_factory=list, alias="subActors")


class LocalProjectStage(BaseModel):
    name: str = ""
    classification: str = ""


class DocumentGuids(BaseModel):
    """
    Persistent document identifiers.

    Generated by the encoder the first time a document is written and echoed
    back to the caller, who re-supplies them on the next encode pass.
    """
    model_config = ConfigDict(populate_by_name=True)

    idm_guid: str = Field("", alias="idmGuid")
    uc_guid: str = Field("", alias="ucGuid")
    bcm_guid: str = Field("", alias="bcmGuid")
    pm_id: str = Field("", alias="pmId")
    idm_code: str = Field("", alias="idmCode")
    root_er_guid: str = Field("", alias="rootErGuid")


class HeaderData(BaseModel):
    """Everything in an idmXML document except the ER tree and the diagram."""
    model_config = ConfigDict(populate_by_name=True)

    title: str = ""
    short_title: str = Field("", alias="shortTitle")
    sub_title: str = Field("", alias="subTitle")
    idm_code: str = Field("", alias="idmCode")
    local_code: str = Field("", alias="localCode")
    version: str = "1.0"
    status: str = "WD"
    local_document_status: str = Field("", alias="localDocumentStatus")
    creation_date: str = Field(default_factory=lambda: date.today().isoformat(), alias="creationDate")
    copyright: str = ""
    authors: list[Union[PersonAuthor, OrganizationAuthor, str]] = Field(default_factory=list)
    change_logs: list[ChangeLog] = Field(default_factory=list, alias="changeLogs")
    language: str = "EN"

    summary: str = ""
    summary_figures: list[Figure] = Field(default_factory=list, alias="summaryFigures")
    aim_and_scope: str = Field("", alias="aimAndScope")
    aim_and_scope_figures: list[Figure] = Field(default_factory=list, alias="aimAndScopeFigures")
    benefits: str = ""
    benefits_figures: list[Figure] = Field(default_factory=list, alias="benefitsFigures")
    limitations: str = ""
    limitations_figures: list[Figure] = Field(default_factory=list, alias="limitationsFigures")

    actors: str = ""
    actors_list: list[Actor] = Field(default_factory=list, alias="actorsList")
    preconditions: str = ""
    postconditions: str = ""
    triggering_events: str = Field("", alias="triggeringEvents")
    required_capabilities: str = Field("", alias="requiredCapabilities")
    compliance_criteria: str = Field("", alias="complianceCriteria")

    regions: list[str] = Field(default_factory=list)
    use_categories: list[str] = Field(default_factory=list, alias="useCategories")
    project_stages: list[str] = Field(default_factory=list, alias="projectStages")
    local_project_stages: list[LocalProjectStage] = Field(default_factory=list, alias="localProjectStages")

    guids: DocumentGuids = Field(default_factory=DocumentGuids)
    root_er_name: str = Field("", alias="rootErName")
    root_er_id: str = Field("", alias="rootErId")

    def is_known_status(self) -> bool:
        return self.status in {s.value for s in DocumentStatus}

    def iter_figure_lists(self) -> list[list[Figure]]:
        return [
            self.summary_figures,
            self.aim_and_scope_figures,
            self.benefits_figures,
            self.limitations_figures,
        ]


Actor.model_rebuild()
