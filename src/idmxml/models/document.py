"""
IDM Document
=============
The unit handled by the codec: header metadata, the ER forest and an
opaque reference to the process map.
"""

from __future__ import annotations

from enum import Enum
from typing import Iterator

from pydantic import BaseModel, ConfigDict, Field

from .. import config
from .exchange import Figure
from .forest import ERForest
from .header import HeaderData


class SchemaVersion(str, Enum):
    V1 = "1.0"
    V2 = "2.0"

    @property
    def namespace(self) -> str:
        return config.NAMESPACE_V1 if self is SchemaVersion.V1 else config.NAMESPACE_V2

    @classmethod
    def parse(cls, value: "str | SchemaVersion") -> "SchemaVersion":
        if isinstance(value, SchemaVersion):
            return value
        text = str(value).strip().lower().lstrip("v")
        if text in ("1", "1.0", "0.2"):
            return cls.V1
        if text in ("2", "2.0"):
            return cls.V2
        raise ValueError(f"Unknown idmXML schema version: {value!r}")


class DiagramElement(BaseModel):
    """A diagram element that may own an ER, as reported by the diagram engine."""
    model_config = ConfigDict(populate_by_name=True)

    element_id: str = Field(..., alias="elementId")
    name: str = ""
    type: str = ""

    @property
    def is_data_object(self) -> bool:
        return self.type.lower().endswith("dataobjectreference")


class DiagramReference(BaseModel):
    """
    Process-map reference. ``content`` is the diagram source text, kept
    opaque: the codec never parses or emits diagram geometry.
    """
    model_config = ConfigDict(populate_by_name=True)

    id: str = ""
    file_path: str = Field(config.DIAGRAM_FILE_PATH, alias="filePath")
    content: str = ""

    @property
    def is_empty(self) -> bool:
        return not self.content.strip()


class IdmDocument(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    header: HeaderData = Field(default_factory=HeaderData)
    forest: ERForest = Field(default_factory=ERForest)
    diagram: DiagramReference | None = None
    schema_version: SchemaVersion = Field(SchemaVersion.V2, alias="schemaVersion")

    def iter_figures(self) -> Iterator[tuple[list[Figure], int, Figure]]:
        """Yield ``(owning list, index, figure)`` for every figure in the document."""
        lists: list[list[Figure]] = list(self.header.iter_figure_lists())
        for er in self.forest.iter_ers():
            lists.append(er.description_figures)
        for unit in self.forest.iter_units():
            lists.append(unit.definition_figures)
            lists.append(unit.example_images)
        for figures in lists:
            for index, figure in enumerate(figures):
                yield figures, index, figure
