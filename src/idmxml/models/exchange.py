"""
Exchange Requirement – Core Model
==================================
Python representation of Exchange Requirements (ER) and Information Units
(IU) as defined by ISO 29481-3 (idmXSD).

An ER bundles IUs and nested sub-ERs; an IU may own nested sub-units.
Ownership is strict: every node lives in exactly one list of exactly one
parent. Figures and external-element mappings hang off IUs and ERs.
"""

from __future__ import annotations

import re
import uuid
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .. import config


# ---------------------------------------------------------------------------
# Identifiers
# ---------------------------------------------------------------------------

def generate_guid() -> str:
    """Persistent identifier for specIds and ERs."""
    return str(uuid.uuid4())


def generate_id(prefix: str | None = None, length: int = 12) -> str:
    """Local key. Without a prefix a full uuid4 string is returned."""
    if prefix is None:
        return str(uuid.uuid4())
    return f"{prefix}-{uuid.uuid4().hex[:length]}"


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class DataType(str, Enum):
    """Standard Information Unit data types (ISO 29481-3)."""
    TEXT = "String / Text"
    NUMERIC = "Numeric"
    BOOLEAN = "Boolean"
    DATE_TIME = "Date / Time"
    IMAGE = "Image"
    AUDIO = "Audio"
    VIDEO = "Video"
    DRAWING_2D = "2D Vector Drawing"
    MODEL_3D = "3D Model"
    DOCUMENT = "Document (PDF, DOCX, etc.)"
    STRUCTURED = "Structured (list, graph, table, JSON)"


_MIME_EXTENSIONS = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/gif": "gif",
    "image/webp": "webp",
    "image/svg+xml": "svg",
    "image/bmp": "bmp",
}

_UNSAFE_PATH_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


# ---------------------------------------------------------------------------
# Leaf records
# ---------------------------------------------------------------------------

class Figure(BaseModel):
    """
    An image attached to a description, definition or examples text.

    Exactly one of ``data`` (inline bytes) or ``file_path`` (reference into
    a bundle) is populated.
    """
    model_config = ConfigDict(populate_by_name=True, ser_json_bytes="base64")

    id: str = Field(default_factory=lambda: generate_id("fig", 8))
    caption: str = ""
    mime_type: str = Field("image/png", alias="mimeType")
    data: bytes | None = Field(None, description="Inline binary payload")
    file_path: str | None = Field(None, alias="filePath", description="Path inside the bundle")

    @model_validator(mode="after")
    def validate_single_source(self) -> "Figure":
        if bool(self.data) == bool(self.file_path):
            raise ValueError("a figure needs exactly one of inline data or file_path")
        return self

    @property
    def is_inline(self) -> bool:
        return self.data is not None

    def extension(self) -> str:
        return _MIME_EXTENSIONS.get(self.mime_type.lower(), "png")

    def reference_path(self) -> str:
        """The path written to idmXML for this figure."""
        if self.file_path:
            return self.file_path
        safe_id = _UNSAFE_PATH_CHARS.sub("_", self.id)
        return f"{config.FIGURE_DIR}/{safe_id}.{self.extension()}"


class ExternalElementMapping(BaseModel):
    """Correspondence between an IU and an entry of an external schema (IFC, bSDD, ...)."""
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=lambda: generate_id("CEE", 8))
    basis: str = Field("IFC", description="Schema or classification system")
    custom_basis: str = Field("", alias="customBasis", description="Used when basis is 'Other'")
    name: str = ""
    description: str = ""
    uri: str = ""
    category: str = ""

    def effective_basis(self) -> str:
        if self.basis == "Other" and self.custom_basis:
            return self.custom_basis
        return self.basis


class MvdReference(BaseModel):
    """Link from an ER to a Model View Definition."""
    basis: str = ""
    name: str = ""


# ---------------------------------------------------------------------------
# Tree nodes
# ---------------------------------------------------------------------------

class InformationUnit(BaseModel):
    """One atomic piece of exchanged information; may own sub-units."""
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=generate_id)
    name: str = ""
    data_type: str = Field(DataType.TEXT.value, alias="dataType")
    is_mandatory: bool | None = Field(False, alias="isMandatory")
    definition: str = ""
    definition_figures: list[Figure] = Field(default_factory=list, alias="definitionFigures")
    examples: str = ""
    example_images: list[Figure] = Field(default_factory=list, alias="exampleImages")
    corresponding_external_elements: list[ExternalElementMapping] = Field(
        default_factory=list, alias="correspondingExternalElements"
    )
    sub_information_units: list[InformationUnit] = Field(
        default_factory=list, alias="subInformationUnits"
    )

    def is_standard_data_type(self) -> bool:
        return self.data_type in {dt.value for dt in DataType}

    def __repr__(self) -> str:
        return (
            f"InformationUnit(id={self.id!r}, name={self.name!r}, "
            f"subunits={len(self.sub_information_units)})"
        )


class ExchangeRequirement(BaseModel):
    """
    A named contract bundling Information Units and nested sub-ERs.

    ``id`` is a local key; ``guid`` is the persistent identifier that must
    survive every save/load cycle once assigned.
    """
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=lambda: generate_id("er"))
    guid: str = ""
    name: str = ""
    description: str = ""
    description_figures: list[Figure] = Field(default_factory=list, alias="descriptionFigures")
    information_units: list[InformationUnit] = Field(default_factory=list, alias="informationUnits")
    sub_ers: list[ExchangeRequirement] = Field(default_factory=list, alias="subERs")
    constraints: list[str] = Field(default_factory=list)
    corresponding_mvds: list[MvdReference] = Field(default_factory=list, alias="correspondingMvd")

    @property
    def is_leaf(self) -> bool:
        return not self.sub_ers

    def matches(self, key: str) -> bool:
        """ERs are addressed by id or guid."""
        return self.id == key or (bool(self.guid) and self.guid == key)

    def __repr__(self) -> str:
        return (
            f"ExchangeRequirement(id={self.id!r}, name={self.name!r}, "
            f"units={len(self.information_units)}, sub_ers={len(self.sub_ers)})"
        )


def placeholder_unit(er: ExchangeRequirement) -> InformationUnit:
    """Filler IU that keeps an otherwise empty leaf ER schema-valid."""
    return InformationUnit(
        id=f"{er.id}-placeholder",
        name=config.PLACEHOLDER_IU_NAME,
        data_type=config.PLACEHOLDER_IU_DATA_TYPE,
        is_mandatory=False,
        definition=config.PLACEHOLDER_IU_DEFINITION,
    )


InformationUnit.model_rebuild()
ExchangeRequirement.model_rebuild()
