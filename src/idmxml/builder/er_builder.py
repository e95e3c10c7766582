"""
Exchange Requirement Builder
=============================
Fluent builder API for assembling ER / IU skeletons.

Example::

    from idmxml.builder.er_builder import ExchangeRequirementBuilder, InformationUnitBuilder

    wall = (
        InformationUnitBuilder("Wall")
        .data_type("String / Text")
        .mandatory()
        .definition("Load-bearing and partition walls")
        .maps_to("IfcWall", basis="IFC4", uri="https://identifier.buildingsmart.org/uri/buildingsmart/ifc/4.3/class/IfcWall")
        .sub_unit(InformationUnitBuilder("Fire rating").data_type("String / Text"))
        .build()
    )

    er = (
        ExchangeRequirementBuilder("Architectural model handover")
        .description("Model delivered at design stage end")
        .unit(wall)
        .constraint("Model shall be georeferenced")
        .mvd("IFC4", "Reference View")
        .build()
    )
"""

from __future__ import annotations

from ..models.exchange import (
    DataType,
    ExchangeRequirement,
    ExternalElementMapping,
    Figure,
    InformationUnit,
    MvdReference,
    generate_id,
)


class InformationUnitBuilder:
    """Builds an :class:`InformationUnit`. A bare ``build()`` yields an optional text unit."""

    def __init__(self, name: str = "", unit_id: str | None = None) -> None:
        self._id = unit_id or generate_id()
        self._name = name
        self._data_type: str = DataType.TEXT.value
        self._mandatory: bool | None = False
        self._definition = ""
        self._definition_figures: list[Figure] = []
        self._examples = ""
        self._example_images: list[Figure] = []
        self._mappings: list[ExternalElementMapping] = []
        self._subunits: list[InformationUnit] = []

    def data_type(self, value: DataType | str) -> "InformationUnitBuilder":
        self._data_type = value.value if isinstance(value, DataType) else value
        return self

    def mandatory(self, flag: bool | None = True) -> "InformationUnitBuilder":
        self._mandatory = flag
        return self

    def optional(self) -> "InformationUnitBuilder":
        self._mandatory = False
        return self

    def definition(self, text: str, *figures: Figure) -> "InformationUnitBuilder":
        self._definition = text
        self._definition_figures.extend(figures)
        return self

    def examples(self, text: str, *images: Figure) -> "InformationUnitBuilder":
        self._examples = text
        self._example_images.extend(images)
        return self

    def maps_to(
        self,
        name: str,
        basis: str = "IFC",
        uri: str = "",
        description: str = "",
        category: str = "",
    ) -> "InformationUnitBuilder":
        """Add a correspondence to an external schema entry (IFC class, bSDD property, ...)."""
        self._mappings.append(
            ExternalElementMapping(
                basis=basis, name=name, uri=uri, description=description, category=category
            )
        )
        return self

    def sub_unit(self, unit: "InformationUnit | InformationUnitBuilder") -> "InformationUnitBuilder":
        self._subunits.append(unit.build() if isinstance(unit, InformationUnitBuilder) else unit)
        return self

    def build(self) -> InformationUnit:
        return InformationUnit(
            id=self._id,
            name=self._name,
            data_type=self._data_type,
            is_mandatory=self._mandatory,
            definition=self._definition,
            definition_figures=list(self._definition_figures),
            examples=self._examples,
            example_images=list(self._example_images),
            corresponding_external_elements=list(self._mappings),
            sub_information_units=list(self._subunits),
        )


class ExchangeRequirementBuilder:
    """Builds an :class:`ExchangeRequirement` with generated id and empty guid."""

    def __init__(self, name: str = "", er_id: str | None = None, guid: str = "") -> None:
        self._id = er_id or generate_id("er")
        self._guid = guid
        self._name = name
        self._description = ""
        self._description_figures: list[Figure] = []
        self._units: list[InformationUnit] = []
        self._sub_ers: list[ExchangeRequirement] = []
        self._constraints: list[str] = []
        self._mvds: list[MvdReference] = []

    def description(self, text: str, *figures: Figure) -> "ExchangeRequirementBuilder":
        self._description = text
        self._description_figures.extend(figures)
        return self

    def unit(self, unit: InformationUnit | InformationUnitBuilder) -> "ExchangeRequirementBuilder":
        self._units.append(unit.build() if isinstance(unit, InformationUnitBuilder) else unit)
        return self

    def sub_er(
        self, er: "ExchangeRequirement | ExchangeRequirementBuilder"
    ) -> "ExchangeRequirementBuilder":
        self._sub_ers.append(er.build() if isinstance(er, ExchangeRequirementBuilder) else er)
        return self

    def constraint(self, text: str) -> "ExchangeRequirementBuilder":
        self._constraints.append(text)
        return self

    def mvd(self, basis: str, name: str) -> "ExchangeRequirementBuilder":
        self._mvds.append(MvdReference(basis=basis, name=name))
        return self

    def build(self) -> ExchangeRequirement:
        return ExchangeRequirement(
            id=self._id,
            guid=self._guid,
            name=self._name,
            description=self._description,
            description_figures=list(self._description_figures),
            information_units=list(self._units),
            sub_ers=list(self._sub_ers),
            constraints=list(self._constraints),
            corresponding_mvds=list(self._mvds),
        )
