"""
Examples for idmxml
====================
Three complete examples authoring and exchanging Information Delivery
Manuals with idmXML.

Run:
    python examples/examples.py
"""

from __future__ import annotations

import sys
import tempfile
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from idmxml import (
    DataType,
    DiagramElement,
    DiagramReference,
    ERForest,
    ExchangeRequirementBuilder,
    Figure,
    HeaderBuilder,
    IdmDocument,
    IdmXmlReader,
    IdmXmlWriter,
    InformationUnitBuilder,
    ProjectValidator,
    collect_figure_payloads,
    convert_to_sub_er,
    indent,
    outdent,
    restore_figure_data,
)

BPMN = (
    '<bpmn:definitions xmlns:bpmn="http://www.omg.org/spec/BPMN/20100524/MODEL">'
    '<bpmn:process id="Process_1">'
    '<bpmn:task id="Task_1" name="Deliver design model"/>'
    '<bpmn:dataObjectReference id="DataObjectReference_1" name="Design model"/>'
    "</bpmn:process></bpmn:definitions>"
)


# ---------------------------------------------------------------------------
# Example 1: Authoring and saving an IDM
# ---------------------------------------------------------------------------


def example_author_and_save() -> Path:
    """
    Example 1: Design-stage model handover.

    An architect's model is handed to the structural engineer at the end of
    the design stage. The ER lists which walls and spaces must be present
    and how they map onto IFC.
    """
    print("\n" + "="*60)
    print("EXAMPLE 1: Authoring an Exchange Requirement")
    print("="*60)

    header = (
        HeaderBuilder("Design Model Handover")
        .short_title("DMH")
        .status("WD")
        .person("Grace", "Hopper", affiliation="Example Architects")
        .use_case(
            summary="Hand over the architectural model to structural design",
            aim_and_scope="Design stage, building elements only",
        )
        .regions("DE", "AT", "CH")
        .stages("design")
        .uses("coordination")
        .build()
    )

    walls = (
        InformationUnitBuilder("Walls")
        .mandatory()
        .definition("All walls with their load-bearing flag")
        .maps_to("IfcWall", basis="IFC4")
        .sub_unit(
            InformationUnitBuilder("Load bearing")
            .data_type(DataType.BOOLEAN)
            .mandatory()
            .definition("Pset_WallCommon.LoadBearing")
        )
    )
    spaces = (
        InformationUnitBuilder("Spaces")
        .optional()
        .definition("Rooms with net floor area")
        .maps_to("IfcSpace", basis="IFC4")
    )
    er = (
        ExchangeRequirementBuilder("Architectural design model")
        .description("Model content delivered at the end of the design stage")
        .unit(walls)
        .unit(spaces)
        .mvd("IFC4", "Reference View")
        .build()
    )

    forest = ERForest.from_root(er)
    forest.data_object_links["DataObjectReference_1"] = er.id
    document = IdmDocument(header=header, forest=forest, diagram=DiagramReference(content=BPMN))

    result = ProjectValidator().validate(document)
    print(f"  Validation: {result.status_label()}")
    for issue in result.issues:
        print(f"    [{issue.severity.value}] {issue.rule_id} {issue.path}: {issue.message}")

    path = Path(tempfile.mkdtemp()) / "design-model-handover.idmxml"
    encoded = IdmXmlWriter(schema="2.0").save(document, path)
    encoded.apply(document)
    print(f"  Written to: {path}")
    print(f"  IDM guid:   {document.header.guids.idm_guid}")
    print(f"  ER guid:    {er.guid}")

    again = IdmXmlWriter(schema="2.0").write(document)
    print(f"  Second save identical: {again.xml == encoded.xml}")
    print("  ✓ Example 1 complete")
    return path


# ---------------------------------------------------------------------------
# Example 2: Restructuring the tree
# ---------------------------------------------------------------------------


def example_restructure(path: Path) -> None:
    """
    Example 2: Reading a document back and reorganising its ER tree.

    Spaces turn out to deserve their own exchange requirement, and the
    load-bearing flag is promoted back to a top-level unit.
    """
    print("\n" + "="*60)
    print("EXAMPLE 2: Restructuring Exchange Requirements")
    print("="*60)

    elements = [
        DiagramElement(element_id="Task_1", name="Deliver design model", type="bpmn:Task"),
        DiagramElement(element_id="DataObjectReference_1", name="Design model", type="bpmn:DataObjectReference"),
    ]
    document = IdmXmlReader().parse_file(path, diagram_elements=elements)
    forest = document.forest
    root = forest.root
    print(f"  Read back: {root.name} ({document.schema_version.value})")
    print(f"  Linked ER for DataObjectReference_1: {forest.linked_er('DataObjectReference_1').name}")

    spaces = next(u for u in root.information_units if u.name == "Spaces")
    spaces_er = convert_to_sub_er(forest, spaces.id)
    spaces_er.description = "Room programme"
    print(f"  Converted 'Spaces' into sub-ER {spaces_er.id}")

    walls = root.information_units[0]
    load_bearing = walls.sub_information_units[0]
    outdent(forest, load_bearing.id)
    print(f"  Units after outdent: {[u.name for u in root.information_units]}")
    indent(forest, load_bearing.id)
    print(f"  Units after indent:  {[u.name for u in root.information_units]}")

    result = ProjectValidator().validate(document)
    print(f"  Validation: {result.status_label()}")
    print("  ✓ Example 2 complete")


# ---------------------------------------------------------------------------
# Example 3: Figures and legacy output
# ---------------------------------------------------------------------------


def example_figures_and_v1() -> None:
    """
    Example 3: Figures travel as file references.

    The writer emits ``filePath`` references only; the bundler writes the
    bytes next to the document and hands them back after reading.
    """
    print("\n" + "="*60)
    print("EXAMPLE 3: Figures and idmXSD v1 output")
    print("="*60)

    plan = Figure(caption="Ground floor plan", data=b"\x89PNG\r\n\x1a\n...", mime_type="image/png")
    er = (
        ExchangeRequirementBuilder("Floor plans")
        .description("2D plans per storey", plan)
        .unit(InformationUnitBuilder("Plan").data_type(DataType.DRAWING_2D).mandatory().definition("Storey plan"))
        .build()
    )
    document = IdmDocument(
        header=HeaderBuilder("Plan Exchange").person("Grace", "Hopper").build(),
        forest=ERForest.from_root(er),
    )

    payloads = collect_figure_payloads(document)
    print(f"  Figure files for the bundle: {sorted(payloads)}")

    xml = IdmXmlWriter(schema="1.0").write(document).xml
    decoded = IdmXmlReader().parse(xml)
    print(f"  Decoded schema: idmXSD {decoded.schema_version.value}")
    print(f"  Figure after decode: {decoded.forest.root.description_figures[0].file_path}")

    restored = restore_figure_data(decoded, payloads)
    print(f"  Restored {restored} inline figure(s)")
    print("  ✓ Example 3 complete")


# ---------------------------------------------------------------------------
# Run all examples
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    saved = example_author_and_save()
    example_restructure(saved)
    example_figures_and_v1()

    print("\n" + "="*60)
    print("All examples completed successfully.")
    print("="*60 + "\n")
