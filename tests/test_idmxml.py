"""
Test Suite for idmxml
======================
Tests for the ER/IU model, structural editing, validation, the idmXML
writer and reader, figure bundling and the CLI.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest
from click.testing import CliRunner
from lxml import etree
from pydantic import ValidationError

import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from idmxml import (
    DataType,
    DiagramElement,
    DiagramReference,
    DiagramValidator,
    ERForest,
    ExchangeRequirement,
    ExchangeRequirementBuilder,
    ExchangeRequirementValidator,
    Figure,
    HeaderBuilder,
    HeaderData,
    HeaderValidator,
    IdmDocument,
    IdmXmlParseError,
    IdmXmlReader,
    IdmXmlWriter,
    InformationUnit,
    InformationUnitBuilder,
    PersonAuthor,
    ProjectValidator,
    SchemaVersion,
    Severity,
    ValidationIssue,
    ValidationResult,
    attach_as_sub_er,
    collect_figure_payloads,
    convert_to_sub_er,
    delete,
    detect_schema_version,
    format_person_name,
    indent,
    is_idmxml,
    move_down,
    move_up,
    normalize_region_code,
    normalize_stage,
    outdent,
    refresh_data_object_links,
    region_name,
    restore_figure_data,
    switch_root,
)
from idmxml import config
from idmxml.cli.main import cli
from idmxml.validator.conformance import Category

NS1 = {"i": config.NAMESPACE_V1}
NS2 = {"i": config.NAMESPACE_V2}

BPMN = (
    '<bpmn:definitions xmlns:bpmn="http://www.omg.org/spec/BPMN/20100524/MODEL">'
    '<bpmn:process id="Process_1">'
    '<bpmn:dataObjectReference id="DataObjectReference_1" name="Structural model"/>'
    "</bpmn:process></bpmn:definitions>"
)


def _tree(xml: str):
    return etree.fromstring(xml.encode("utf-8"))


# ===========================================================================
# Fixtures
# ===========================================================================


@pytest.fixture
def header() -> HeaderData:
    """Header that passes every header rule without warnings."""
    return (
        HeaderBuilder("Structural Design Coordination")
        .short_title("SDC")
        .status("CD")
        .person("Ada", "Lovelace", affiliation="Analytical Engines Ltd")
        .change("First committee draft", changed_by="Ada Lovelace", when="2024-05-01T10:00:00")
        .use_case(summary="Coordination of structural models", aim_and_scope="Design stage exchanges")
        .regions("DE")
        .stages("Design")
        .uses("coordination")
        .build()
    )


@pytest.fixture
def project_forest() -> ERForest:
    """Three ER levels with nested, mixed mandatory/optional units."""
    doors = (
        ExchangeRequirementBuilder("Doors", er_id="er-doors")
        .description("Door schedule")
        .unit(InformationUnitBuilder("Door type", unit_id="iu-doors").optional().definition("Door family"))
        .build()
    )
    architecture = (
        ExchangeRequirementBuilder("Architecture", er_id="er-arch")
        .description("Architectural model content")
        .unit(
            InformationUnitBuilder("Walls", unit_id="iu-walls")
            .mandatory()
            .definition("Load-bearing and partition walls")
            .maps_to("IfcWall", basis="IFC4")
        )
        .sub_er(doors)
        .constraint("Walls shall be modelled per storey")
        .mvd("IFC4", "Reference View")
        .build()
    )
    root = (
        ExchangeRequirementBuilder("Building model", er_id="er-root")
        .description("Complete design-stage model")
        .unit(
            InformationUnitBuilder("Site", unit_id="iu-site")
            .mandatory()
            .definition("Site boundary")
            .sub_unit(
                InformationUnitBuilder("Georeference", unit_id="iu-geo")
                .data_type(DataType.NUMERIC)
                .optional()
                .definition("Map conversion parameters")
            )
        )
        .sub_er(architecture)
        .build()
    )
    return ERForest.from_root(root)


@pytest.fixture
def document(header: HeaderData, project_forest: ERForest) -> IdmDocument:
    project_forest.data_object_links["DataObjectReference_1"] = "er-arch"
    return IdmDocument(
        header=header,
        forest=project_forest,
        diagram=DiagramReference(content=BPMN),
    )


@pytest.fixture
def edit_forest() -> ERForest:
    """
    R  units [iu-a, iu-b]
    ├── E1
    │   └── E11  units [iu-c]
    └── E2
    """
    e11 = ExchangeRequirement(id="E11", guid="guid-e11", name="E11",
                              information_units=[InformationUnit(id="iu-c", name="C")])
    e1 = ExchangeRequirement(id="E1", name="E1", sub_ers=[e11])
    e2 = ExchangeRequirement(id="E2", name="E2")
    root = ExchangeRequirement(
        id="R",
        name="R",
        information_units=[InformationUnit(id="iu-a", name="A"), InformationUnit(id="iu-b", name="B")],
        sub_ers=[e1, e2],
    )
    return ERForest(roots=[root])


V1_DOCUMENT = """<?xml version="1.0" encoding="UTF-8"?>
<idm xmlns="https://standards.buildingsmart.org/IDM/idmXML/0.2">
  <specId guid="guid-idm" shortTitle="Legacy" fullTitle="Legacy IDM" idmCode="IDM-7" documentStatus="DIS" version="0.9"/>
  <authoring copyright="(c) Example" creationDate="2019-03-01">
    <author id="a1" firstName="Jane" lastName="Roe"/>
  </authoring>
  <revisionHistory>
    <revision date="2019-04-01" description="Second draft"/>
  </revisionHistory>
  <uc>
    <specId guid="guid-uc"/>
    <summary><description title="Legacy summary"/></summary>
    <language>DE</language>
    <use name="coordination"/>
    <region value="DEU"/>
    <region value="FR"/>
    <standardProjectPhase><name>Construction</name></standardProjectPhase>
    <standardProjectPhase><name> Design </name></standardProjectPhase>
    <localProjectPhase><name>LPH 5</name><classification name="HOAI"/></localProjectPhase>
  </uc>
  <businessContextMap>
    <specId guid="guid-bcm"/>
    <pm>
      <diagram id="PM-1" diagramFilePath="legacy.bpmn"/>
      <dataObjectAndEr id="DOER-1">
        <associatedDataObject>DataObjectReference_9</associatedDataObject>
        <associatedEr>guid-child</associatedEr>
      </dataObjectAndEr>
    </pm>
  </businessContextMap>
  <er>
    <specId guid="guid-root" shortTitle="Root" idmCode="ER-root"/>
    <subEr>
      <er>
        <specId guid="guid-child" shortTitle="Child" idmCode="ER-child"/>
        <description title="Child ER"/>
        <informationUnit id="iu-photo" name="Photo" dataType="Image" isMandatory="true" definition="Site photo">
          <examples>
            <description title="Aerial view"/>
            <image caption="Aerial" encoding="base64" mimeType="image/jpeg">aGVsbG8=</image>
            <image caption="Broken" encoding="base64">!!!</image>
            <image caption="Corrupt" encoding="base64">aGVs#bG8=</image>
          </examples>
          <subInformationUnit>
            <informationUnit id="iu-date" name="Taken on" dataType="Date / Time" isMandatory="false"/>
          </subInformationUnit>
        </informationUnit>
      </er>
    </subEr>
  </er>
</idm>
"""

V2_STAGE_DOCUMENT = """<idm xmlns="https://standards.buildingsmart.org/IDM/idmXML/2.0">
  <uc>
    <standardProjectStage><name>production</name></standardProjectStage>
    <standardProjectStage><name>design</name></standardProjectStage>
  </uc>
</idm>
"""


# ===========================================================================
# Models
# ===========================================================================


class TestModels:

    def test_figure_requires_exactly_one_source(self) -> None:
        with pytest.raises(ValidationError):
            Figure(caption="nothing")
        with pytest.raises(ValidationError):
            Figure(caption="both", data=b"\x89PNG", file_path="images/a.png")

    def test_inline_figure_reference_path(self) -> None:
        fig = Figure(id="fig-1", data=b"...", mime_type="image/jpeg")
        assert fig.is_inline
        assert fig.reference_path() == "images/fig-1.jpg"
        assert Figure(file_path="drawings/plan.svg").reference_path() == "drawings/plan.svg"

    def test_generated_ids(self) -> None:
        er = ExchangeRequirement()
        assert er.id.startswith("er-") and len(er.id) == 15
        assert er.guid == ""
        assert len(InformationUnit().id) == 36

    def test_camel_case_project_json(self) -> None:
        er = ExchangeRequirement.model_validate({
            "id": "er-1",
            "name": "Handover",
            "informationUnits": [{"id": "u1", "name": "Space", "isMandatory": True, "dataType": "Numeric"}],
            "subERs": [{"id": "er-2", "name": "Nested"}],
            "correspondingMvd": [{"basis": "IFC4", "name": "Design Transfer View"}],
        })
        assert er.information_units[0].is_mandatory is True
        assert er.information_units[0].is_standard_data_type()
        assert er.sub_ers[0].name == "Nested"
        assert not er.is_leaf

    def test_person_name_ordering(self) -> None:
        person = PersonAuthor(
            prefix="Dr.", given_name="Ada", middle_initial="B.",
            family_name="Lovelace", suffix="Jr.", postnominal_designation="PhD",
        )
        assert format_person_name(person) == "Dr. Ada B. Lovelace Jr., PhD"
        assert PersonAuthor(given_name="Ada").display_name == "Ada"

    def test_schema_version_parse(self) -> None:
        assert SchemaVersion.parse("1") is SchemaVersion.V1
        assert SchemaVersion.parse("v2.0") is SchemaVersion.V2
        assert SchemaVersion.parse("0.2") is SchemaVersion.V1
        with pytest.raises(ValueError):
            SchemaVersion.parse("3.0")

    def test_header_builder_defaults(self) -> None:
        header = HeaderBuilder().stages("Design", " HANDOVER").build()
        assert header.version == "1.0"
        assert header.status == "WD"
        assert header.language == "EN"
        assert header.project_stages == ["design", "handover"]

    def test_mapping_effective_basis(self) -> None:
        unit = InformationUnitBuilder("Room").maps_to("Raum", basis="Other").build()
        mapping = unit.corresponding_external_elements[0]
        assert mapping.effective_basis() == "Other"
        mapping.custom_basis = "CCI"
        assert mapping.effective_basis() == "CCI"


# ===========================================================================
# Forest lookup
# ===========================================================================


class TestForestLookup:

    def test_preorder_visits_units_before_sub_ers(self, edit_forest: ERForest) -> None:
        order = [loc.node.id for loc in edit_forest.iter_locations()]
        assert order == ["R", "iu-a", "iu-b", "E1", "E11", "iu-c", "E2"]

    def test_locate_reports_owner_and_ancestry(self, edit_forest: ERForest) -> None:
        loc = edit_forest.locate("iu-c")
        root = edit_forest.root
        assert loc.index == 0
        assert loc.siblings is edit_forest.find_er("E11").information_units
        assert [a.id for a in loc.ancestors] == ["R", "E1", "E11"]
        assert loc.owner_er.id == "E11"
        assert loc.depth == 3
        assert edit_forest.ancestors("E11")[0] is root

    def test_er_lookup_by_guid(self, edit_forest: ERForest) -> None:
        assert edit_forest.find_er("guid-e11").id == "E11"
        assert edit_forest.find_unit("E11") is None
        assert edit_forest.find("missing") is None

    def test_duplicate_ids_first_match_wins(self, edit_forest: ERForest) -> None:
        first = InformationUnit(id="dup", name="first")
        second = InformationUnit(id="dup", name="second")
        edit_forest.find_er("E11").information_units.append(second)
        edit_forest.root.information_units.append(first)
        assert edit_forest.find("dup") is first

    def test_linked_er(self, edit_forest: ERForest) -> None:
        edit_forest.data_object_links["do-1"] = "guid-e11"
        assert edit_forest.linked_er("do-1").id == "E11"
        assert edit_forest.linked_er("do-2") is None


# ===========================================================================
# Structural editing
# ===========================================================================


def _ids(nodes) -> list[str]:
    return [n.id for n in nodes]


class TestStructuralEditing:

    def test_move_up_then_down_restores_order(self, edit_forest: ERForest) -> None:
        root = edit_forest.root
        assert move_up(edit_forest, "iu-b")
        assert _ids(root.information_units) == ["iu-b", "iu-a"]
        assert move_down(edit_forest, "iu-b")
        assert _ids(root.information_units) == ["iu-a", "iu-b"]

    def test_move_at_list_edges_is_noop(self, edit_forest: ERForest) -> None:
        assert move_up(edit_forest, "iu-a") is False
        assert move_down(edit_forest, "E2") is False
        assert move_up(edit_forest, "nope") is False
        assert _ids(edit_forest.root.information_units) == ["iu-a", "iu-b"]

    def test_indent_then_outdent_unit(self, edit_forest: ERForest) -> None:
        root = edit_forest.root
        assert indent(edit_forest, "iu-b")
        assert _ids(root.information_units) == ["iu-a"]
        assert _ids(root.information_units[0].sub_information_units) == ["iu-b"]

        assert outdent(edit_forest, "iu-b")
        assert _ids(root.information_units) == ["iu-a", "iu-b"]
        assert root.information_units[0].sub_information_units == []

    def test_indent_first_sibling_is_noop(self, edit_forest: ERForest) -> None:
        assert indent(edit_forest, "iu-a") is False
        assert indent(edit_forest, "E1") is False

    def test_outdent_unit_owned_by_er_is_noop(self, edit_forest: ERForest) -> None:
        assert outdent(edit_forest, "iu-a") is False
        assert outdent(edit_forest, "R") is False

    def test_indent_then_outdent_er(self, edit_forest: ERForest) -> None:
        e1 = edit_forest.find_er("E1")
        assert indent(edit_forest, "E2")
        assert _ids(e1.sub_ers) == ["E11", "E2"]
        assert outdent(edit_forest, "E2")
        assert _ids(edit_forest.root.sub_ers) == ["E1", "E2"]

    def test_outdent_second_level_er_becomes_root(self, edit_forest: ERForest) -> None:
        assert outdent(edit_forest, "E1")
        assert _ids(edit_forest.roots) == ["R", "E1"]
        assert _ids(edit_forest.root.sub_ers) == ["E2"]

    def test_convert_unit_to_sub_er(self, edit_forest: ERForest) -> None:
        root = edit_forest.root
        new_er = convert_to_sub_er(edit_forest, "iu-b")
        assert new_er is not None
        assert new_er.name == "B"
        assert _ids(new_er.information_units) == ["iu-b"]
        assert root.sub_ers[-1] is new_er
        assert _ids(root.information_units) == ["iu-a"]

    def test_convert_nested_unit_goes_to_enclosing_er(self, edit_forest: ERForest) -> None:
        indent(edit_forest, "iu-b")
        new_er = convert_to_sub_er(edit_forest, "iu-b", name="Promoted")
        root = edit_forest.root
        assert root.sub_ers[-1] is new_er
        assert new_er.name == "Promoted"
        assert root.information_units[0].sub_information_units == []

    def test_convert_rejects_er_ids(self, edit_forest: ERForest) -> None:
        assert convert_to_sub_er(edit_forest, "E1") is None

    def test_attach_rejects_cycles(self, edit_forest: ERForest) -> None:
        before = edit_forest.model_dump()
        assert attach_as_sub_er(edit_forest, "E1", "E11") is False
        assert attach_as_sub_er(edit_forest, "E1", "E1") is False
        assert attach_as_sub_er(edit_forest, "R", "guid-e11") is False
        assert edit_forest.model_dump() == before

    def test_attach_moves_er_across_tree(self, edit_forest: ERForest) -> None:
        assert attach_as_sub_er(edit_forest, "E2", "guid-e11")
        assert _ids(edit_forest.find_er("E11").sub_ers) == ["E2"]
        assert _ids(edit_forest.root.sub_ers) == ["E1"]

    def test_delete_cascades_to_links(self, edit_forest: ERForest) -> None:
        edit_forest.data_object_links.update({"do-1": "guid-e11", "do-2": "E2", "do-3": "E1"})
        assert delete(edit_forest, "E1")
        assert edit_forest.find("iu-c") is None
        assert edit_forest.find("E11") is None
        assert edit_forest.data_object_links == {"do-2": "E2"}
        assert delete(edit_forest, "E1") is False

    def test_delete_unit_subtree(self, edit_forest: ERForest) -> None:
        indent(edit_forest, "iu-b")
        assert delete(edit_forest, "iu-a")
        assert edit_forest.find("iu-b") is None

    def test_switch_root_dissolves_old_root(self, edit_forest: ERForest) -> None:
        assert switch_root(edit_forest, "E2")
        assert edit_forest.root.id == "E2"
        assert _ids(edit_forest.root.sub_ers) == ["E1"]
        assert edit_forest.find("R") is None

    def test_switch_root_keeps_old_root(self, edit_forest: ERForest) -> None:
        assert switch_root(edit_forest, "E2", keep_old_root=True)
        new_root = edit_forest.root
        assert new_root.id == "E2"
        old_root = new_root.sub_ers[-1]
        assert old_root.id == "R"
        assert _ids(old_root.sub_ers) == ["E1"]
        assert _ids(old_root.information_units) == ["iu-a", "iu-b"]

    def test_switch_root_requires_direct_child(self, edit_forest: ERForest) -> None:
        assert switch_root(edit_forest, "E11") is False
        assert switch_root(edit_forest, "R") is False
        assert edit_forest.root.id == "R"

    def test_refresh_data_object_links(self, edit_forest: ERForest) -> None:
        edit_forest.data_object_links.update({"do-1": "E1", "do-2": "gone", "do-3": "E2"})
        live = [
            DiagramElement(element_id="do-1", type="bpmn:DataObjectReference"),
            DiagramElement(element_id="do-2", type="bpmn:DataObjectReference"),
        ]
        assert refresh_data_object_links(edit_forest, live) == 2
        assert edit_forest.data_object_links == {"do-1": "E1"}


# ===========================================================================
# Validation
# ===========================================================================


class TestValidation:

    def test_complete_document_is_valid(self, document: IdmDocument) -> None:
        result = ProjectValidator().validate(document)
        assert result.passed
        assert result.issues == []
        assert result.status_label() == "Valid"
        assert result.rule_count > 0

    def test_empty_leaf_er_is_error(self) -> None:
        result = ExchangeRequirementValidator().validate(ExchangeRequirement(id="R", name="R"))
        rule = [i for i in result.issues if i.rule_id == "ER-003"]
        assert len(rule) == 1
        assert rule[0].severity == Severity.ERROR
        assert rule[0].path == "er.R.informationUnits"

    def test_parent_er_without_units_is_fine(self, edit_forest: ERForest) -> None:
        result = ExchangeRequirementValidator().validate(edit_forest.find_er("E1"))
        assert not [i for i in result.issues if i.rule_id == "ER-003" and i.path == "er.E1.informationUnits"]

    def test_nested_unit_rules(self) -> None:
        unit = InformationUnit(
            id="a", name="A", definition="ok",
            sub_information_units=[InformationUnit(id="b", name="", is_mandatory=None, data_type="")],
        )
        er = ExchangeRequirement(id="R", name="R", description="d", information_units=[unit])
        result = ExchangeRequirementValidator().validate(er)
        by_rule = {i.rule_id: i for i in result.issues}
        assert set(by_rule) == {"IU-001", "IU-002", "IU-003", "IU-004"}
        assert by_rule["IU-003"].path == "er.R.informationUnit.a.informationUnit.b.isMandatory"
        assert by_rule["IU-004"].severity == Severity.WARNING

    def test_header_rules(self) -> None:
        header = HeaderData(title="", status="XX", authors=["  "])
        result = HeaderValidator().validate(header)
        rules = {i.rule_id for i in result.errors}
        assert rules == {"HD-001", "HD-005", "HD-006"}
        assert {i.rule_id for i in result.warnings} == {"SC-001", "SC-002", "SC-003"}

    def test_legacy_string_author_counts(self) -> None:
        result = HeaderValidator().validate(HeaderData(title="T", authors=["Jane Roe"]))
        assert "HD-006" not in {i.rule_id for i in result.issues}

    def test_diagram_rules(self) -> None:
        empty = DiagramValidator().validate(None)
        assert [i.rule_id for i in empty.issues] == ["DG-001"]
        no_data_object = DiagramValidator().validate("<bpmn:definitions/>")
        assert [(i.rule_id, i.severity) for i in no_data_object.issues] == [("DG-002", Severity.WARNING)]
        assert DiagramValidator().validate(BPMN).issues == []

    def test_project_without_ers_warns(self, header: HeaderData) -> None:
        result = ProjectValidator().validate(IdmDocument(header=header, diagram=DiagramReference(content=BPMN)))
        assert [i.rule_id for i in result.issues] == ["PR-001"]
        assert result.passed

    def test_validation_never_mutates(self, document: IdmDocument) -> None:
        document.forest.root.sub_ers.append(ExchangeRequirement(id="empty"))
        before = document.model_dump()
        result = ProjectValidator().validate(document)
        assert not result.passed
        assert document.model_dump() == before

    def test_status_label_and_summary(self) -> None:
        warning = ValidationIssue("ER-002", Severity.WARNING, "w", Category.ER)
        error = ValidationIssue("IU-001", Severity.ERROR, "e", Category.INFORMATION_UNIT)
        assert ValidationResult([warning]).status_label() == "Valid (1 warning)"
        assert ValidationResult([warning, warning]).status_label() == "Valid (2 warnings)"
        result = ValidationResult([error, error, warning])
        assert result.status_label() == "2 errors, 1 warning"
        summary = result.summary()
        assert summary["total"] == 3
        assert summary["byCategory"]["informationUnit"] == 2
        assert summary["byCategory"]["header"] == 0
        assert str(result).startswith("[FAIL]")


# ===========================================================================
# Writer
# ===========================================================================


class TestWriter:

    def test_placeholder_for_empty_root(self) -> None:
        root = ExchangeRequirement(id="R")
        document = IdmDocument(forest=ERForest.from_root(root))
        result = IdmXmlWriter().write(document)

        units = _tree(result.xml).xpath("i:er/i:informationUnit", namespaces=NS2)
        assert len(units) == 1
        assert units[0].get("name") == "Placeholder"
        assert units[0].get("isMandatory") == "false"
        assert root.information_units == []

        decoded = IdmXmlReader().parse(result.xml)
        assert [u.name for u in decoded.forest.root.information_units] == ["Placeholder"]

    def test_placeholder_only_for_empty_leaves(self, edit_forest: ERForest) -> None:
        xml = _tree(IdmXmlWriter().write(IdmDocument(forest=edit_forest)).xml)
        names = [u.get("name") for u in xml.iter(f"{{{config.NAMESPACE_V2}}}informationUnit")]
        assert names == ["A", "B", "C", "Placeholder"]

    def test_document_skeleton(self, document: IdmDocument) -> None:
        root = _tree(IdmXmlWriter().write(document).xml)
        assert etree.QName(root).namespace == config.NAMESPACE_V2
        assert root.get("version") == "2.0"
        assert [etree.QName(c).localname for c in root] == [
            "specId", "authoring", "uc", "businessContextMap", "er",
        ]
        spec = root.find("i:specId", namespaces=NS2)
        assert spec.get("fullTitle") == "Structural Design Coordination"
        assert spec.get("documentStatus") == "CD"
        assert root.xpath("i:uc/i:standardProjectStage/i:name/text()", namespaces=NS2) == ["design"]

    def test_writer_does_not_mutate_but_reports_guids(self, document: IdmDocument) -> None:
        result = IdmXmlWriter().write(document)
        assert document.forest.root.guid == ""
        assert document.header.guids.idm_guid == ""
        assert set(result.er_guids) == {"er-root", "er-arch", "er-doors"}
        assert result.guids.idm_guid and result.guids.root_er_guid == result.er_guids["er-root"]

    def test_guid_stability(self, document: IdmDocument) -> None:
        writer = IdmXmlWriter()
        first = writer.write(document)
        first.apply(document)
        second = writer.write(document)

        assert second.guids == first.guids
        assert second.er_guids == first.er_guids
        assert second.xml == first.xml
        assert document.forest.find_er("er-arch").guid == first.er_guids["er-arch"]

    def test_existing_guids_are_reused(self, document: IdmDocument) -> None:
        document.forest.root.guid = "11111111-2222-3333-4444-555555555555"
        document.header.guids.idm_guid = "idm-guid"
        document.header.idm_code = "IDM-42"
        root = _tree(IdmXmlWriter().write(document).xml)
        assert root.find("i:specId", namespaces=NS2).get("guid") == "idm-guid"
        er_spec = root.find("i:er/i:specId", namespaces=NS2)
        assert er_spec.get("guid") == "11111111-2222-3333-4444-555555555555"
        assert er_spec.get("idmCode") == "ER-er-root"
        assert root.find("i:uc/i:specId", namespaces=NS2).get("idmCode") == "UC-IDM-42"

    def test_multiple_roots_are_wrapped(self, header: HeaderData) -> None:
        forest = ERForest(roots=[
            ExchangeRequirement(id="a", name="A"),
            ExchangeRequirement(id="b", name="B"),
        ])
        root = _tree(IdmXmlWriter().write(IdmDocument(header=header, forest=forest)).xml)
        assert len(root.xpath("i:er", namespaces=NS2)) == 1
        assert root.find("i:er/i:specId", namespaces=NS2).get("shortTitle") == header.title
        assert len(root.xpath("i:er/i:subEr/i:er", namespaces=NS2)) == 2
        assert root.xpath("i:er/i:informationUnit", namespaces=NS2) == []

    @staticmethod
    def _er_identities(xml: str) -> list[tuple[str, str]]:
        return [
            (spec.get("idmCode"), spec.get("guid"))
            for spec in _tree(xml).xpath("//i:er/i:specId", namespaces=NS2)
        ]

    @staticmethod
    def _two_level_forest() -> ERForest:
        child = ExchangeRequirement(id="C", name="Child", information_units=[InformationUnit(name="c")])
        root = ExchangeRequirement(id="R", name="Root", information_units=[InformationUnit(name="r")],
                                   sub_ers=[child])
        return ERForest.from_root(root)

    def test_wrapper_gets_own_guid_after_saved_root_splits(self, header: HeaderData) -> None:
        document = IdmDocument(header=header, forest=self._two_level_forest())
        writer = IdmXmlWriter()
        writer.write(document).apply(document)
        real_root_guid = document.forest.root.guid

        outdent(document.forest, "C")
        result = writer.write(document)
        identities = self._er_identities(result.xml)
        guids = [guid for _, guid in identities]

        assert len(identities) == 3
        assert len(set(guids)) == 3
        assert guids[0] != real_root_guid
        assert result.guids.root_er_guid == guids[0]

        result.apply(document)
        assert writer.write(document).xml == result.xml

    def test_wrapper_gets_own_identity_after_decoded_root_splits(self, header: HeaderData) -> None:
        xml = IdmXmlWriter().write(IdmDocument(header=header, forest=self._two_level_forest())).xml
        decoded = IdmXmlReader().parse(xml)
        assert decoded.header.root_er_id == "R"

        outdent(decoded.forest, "C")
        identities = self._er_identities(IdmXmlWriter().write(decoded).xml)
        codes = [code for code, _ in identities]
        guids = [guid for _, guid in identities]

        assert len(set(codes)) == len(codes) == 3
        assert len(set(guids)) == 3
        assert codes[0] == "ER-root"

        reread = IdmXmlReader().parse(IdmXmlWriter().write(decoded).xml)
        assert reread.forest.find_er("R").name == "Root"
        assert reread.forest.root.name == header.title

    def test_er_map_is_deduplicated(self, header: HeaderData) -> None:
        er_a = ExchangeRequirement(id="a", guid="g-a", name="A",
                                   information_units=[InformationUnit(name="x")])
        duplicate = ExchangeRequirement(id="a2", guid="g-a", name="A copy")
        er_b = ExchangeRequirement(id="b", name="B")
        result = IdmXmlWriter().write_er_map(header, {"do1": er_a, "do2": duplicate, "do3": er_b})

        root = _tree(result.xml)
        assert len(root.xpath("i:er/i:subEr", namespaces=NS2)) == 2
        associated = root.xpath(
            "i:businessContextMap/i:pm/i:dataObjectAndEr/i:associatedEr/text()", namespaces=NS2
        )
        assert associated == ["g-a", "g-a", result.er_guids["b"]]

        decoded = IdmXmlReader().parse(result.xml)
        assert decoded.forest.data_object_links == {"do1": "a", "do2": "a", "do3": "b"}
        assert decoded.forest.root.id == "root"

    def test_links_are_written_with_guids(self, document: IdmDocument) -> None:
        result = IdmXmlWriter().write(document)
        link = _tree(result.xml).find("i:businessContextMap/i:pm/i:dataObjectAndEr", namespaces=NS2)
        assert link.get("id") == "DOER-1"
        assert link.findtext("i:associatedDataObject", namespaces=NS2) == "DataObjectReference_1"
        assert link.findtext("i:associatedEr", namespaces=NS2) == result.er_guids["er-arch"]

    def test_unknown_link_is_skipped(self, document: IdmDocument, caplog) -> None:
        document.forest.data_object_links["DataObjectReference_2"] = "missing"
        with caplog.at_level(logging.WARNING, logger="idmxml.codec.writer"):
            result = IdmXmlWriter().write(document)
        assert len(_tree(result.xml).xpath("//i:dataObjectAndEr", namespaces=NS2)) == 1
        assert "missing" in caplog.text

    def test_figures_are_written_as_paths(self) -> None:
        figure = Figure(id="fig-1", caption="Plan", data=b"\x89PNG-bytes")
        unit = InformationUnitBuilder("Plan", unit_id="u1").definition("Floor plan", figure).build()
        er = ExchangeRequirement(id="R", name="R", information_units=[unit])
        xml = IdmXmlWriter().write(IdmDocument(forest=ERForest.from_root(er))).xml

        image = _tree(xml).find("i:er/i:informationUnit/i:description/i:image", namespaces=NS2)
        assert image.get("filePath") == "images/fig-1.png"
        assert image.get("caption") == "Plan"
        assert not (image.text or "").strip()
        assert "encoding" not in image.attrib

    def test_special_characters_are_escaped(self) -> None:
        er = ExchangeRequirement(
            id="R", name='Walls & "Slabs" <structural>', description="a\x01b",
            information_units=[InformationUnit(name="x > y", definition="it's")],
        )
        xml = IdmXmlWriter().write(IdmDocument(forest=ERForest.from_root(er))).xml
        decoded = IdmXmlReader().parse(xml).forest.root
        assert decoded.name == 'Walls & "Slabs" <structural>'
        assert decoded.description == "ab"
        assert decoded.information_units[0].name == "x > y"
        assert decoded.information_units[0].definition == "it's"

    def test_v1_element_names(self, document: IdmDocument) -> None:
        root = _tree(IdmXmlWriter(schema="1.0").write(document).xml)
        assert etree.QName(root).namespace == config.NAMESPACE_V1
        assert root.get("version") == "1.0"
        assert root.xpath("i:uc/i:standardProjectPhase/i:name/text()", namespaces=NS1) == ["design"]
        assert root.xpath("i:uc/i:standardProjectStage", namespaces=NS1) == []

    def test_schema_defaults_are_supplied(self) -> None:
        root = _tree(IdmXmlWriter().write(IdmDocument()).xml)
        assert root.find("i:uc/i:use", namespaces=NS2).get("name") == config.DEFAULT_USE
        assert root.find("i:uc/i:region", namespaces=NS2).get("value") == config.DEFAULT_REGION
        authoring = root.find("i:authoring", namespaces=NS2)
        assert len(authoring.findall("i:changeLog", namespaces=NS2)) == 1
        person = authoring.find("i:author/i:person", namespaces=NS2)
        assert person.get("givenName") == config.DEFAULT_AUTHOR_NAME
        assert root.xpath("i:er", namespaces=NS2) == []

    def test_non_iso_stage_written_as_design(self, header: HeaderData) -> None:
        header.project_stages = ["feasibility"]
        root = _tree(IdmXmlWriter().write(IdmDocument(header=header)).xml)
        assert root.xpath("i:uc/i:standardProjectStage/i:name/text()", namespaces=NS2) == ["design"]

    def test_diagram_content_embedded_unless_excluded(self, document: IdmDocument) -> None:
        writer = IdmXmlWriter()
        with_diagram = IdmXmlReader().parse(writer.write(document).xml)
        assert with_diagram.diagram.content == BPMN
        without = _tree(writer.write(document, include_diagram=False).xml)
        assert without.xpath("//i:diagramContent", namespaces=NS2) == []

    def test_standalone_er_export(self, project_forest: ERForest) -> None:
        arch = project_forest.find_er("er-arch")
        xml = IdmXmlWriter().write_er(arch)
        assert etree.QName(_tree(xml)).localname == "er"
        imported = IdmXmlReader().parse_er(xml)
        assert imported.id == "er-arch"
        assert [s.name for s in imported.sub_ers] == ["Doors"]
        assert imported.constraints == ["Walls shall be modelled per storey"]
        assert imported.corresponding_mvds[0].name == "Reference View"

    def test_save_writes_file(self, document: IdmDocument, tmp_path: Path) -> None:
        target = tmp_path / "spec.idmxml"
        result = IdmXmlWriter().save(document, target)
        assert target.read_text(encoding="utf-8") == result.xml
        assert is_idmxml(target.read_bytes())


# ===========================================================================
# Reader
# ===========================================================================


class TestReader:

    def test_round_trip_preserves_tree(self, document: IdmDocument) -> None:
        result = IdmXmlWriter().write(document)
        result.apply(document)
        decoded = IdmXmlReader().parse(result.xml)

        def shape(forest: ERForest):
            ers = [(er.id, er.name, er.guid, er.description) for er in forest.iter_ers()]
            units = [
                (u.id, u.name, u.data_type, u.is_mandatory, u.definition)
                for u in forest.iter_units()
            ]
            return ers, units

        assert shape(decoded.forest) == shape(document.forest)
        assert decoded.forest.data_object_links == {"DataObjectReference_1": "er-arch"}
        walls = decoded.forest.find_unit("iu-walls")
        assert walls.corresponding_external_elements[0].name == "IfcWall"
        assert walls.corresponding_external_elements[0].basis == "IFC4"

    def test_round_trip_header(self, document: IdmDocument) -> None:
        result = IdmXmlWriter().write(document)
        header = IdmXmlReader().parse(result.xml).header
        assert header.title == "Structural Design Coordination"
        assert header.short_title == "SDC"
        assert header.status == "CD"
        assert header.summary == "Coordination of structural models"
        assert header.regions == ["DE"]
        assert header.project_stages == ["design"]
        assert header.use_categories == ["coordination"]
        assert header.authors[0].display_name == "Ada Lovelace"
        assert header.authors[0].affiliation == "Analytical Engines Ltd"
        assert header.change_logs[0].change_summary == "First committee draft"
        assert header.guids == result.guids

    def test_decoded_document_reencodes_with_same_ids(self, document: IdmDocument) -> None:
        first = IdmXmlWriter().write(document)
        decoded = IdmXmlReader().parse(first.xml)
        second = IdmXmlWriter().write(decoded)
        assert second.guids == first.guids
        assert second.er_guids == first.er_guids

    def test_v1_document(self) -> None:
        document = IdmXmlReader().parse(V1_DOCUMENT)
        header = document.header

        assert document.schema_version is SchemaVersion.V1
        assert header.title == "Legacy IDM"
        assert header.idm_code == "IDM-7"
        assert header.version == "0.9"
        assert header.language == "DE"
        assert header.summary == "Legacy summary"
        assert header.regions == ["DE", "FR"]
        assert header.project_stages == ["production", "design"]
        assert header.local_project_stages[0].name == "LPH 5"
        assert header.local_project_stages[0].classification == "HOAI"
        assert header.guids.uc_guid == "guid-uc"
        assert header.guids.pm_id == "PM-1"
        assert document.diagram.file_path == "legacy.bpmn"

    def test_legacy_author_attributes_and_revisions(self) -> None:
        header = IdmXmlReader().parse(V1_DOCUMENT).header
        author = header.authors[0]
        assert isinstance(author, PersonAuthor)
        assert (author.id, author.given_name, author.family_name) == ("a1", "Jane", "Roe")
        assert header.creation_date == "2019-03-01"
        assert [c.change_summary for c in header.change_logs] == ["Second draft"]
        assert header.change_logs[0].id == "revision-1"

    def test_comma_separated_author_attribute(self) -> None:
        xml = '<idm><authoring author="Jane Roe, John Doe"/></idm>'
        names = [a.display_name for a in IdmXmlReader().parse(xml).header.authors]
        assert names == ["Jane Roe", "John Doe"]

    def test_er_identity_and_links(self) -> None:
        forest = IdmXmlReader().parse(V1_DOCUMENT).forest
        assert forest.root.id == "root"
        child = forest.root.sub_ers[0]
        assert (child.id, child.guid, child.name) == ("child", "guid-child", "Child")
        assert forest.data_object_links == {"DataObjectReference_9": "child"}

    def test_inline_base64_figures(self, caplog) -> None:
        with caplog.at_level(logging.WARNING, logger="idmxml.codec.reader"):
            forest = IdmXmlReader().parse(V1_DOCUMENT).forest
        photo = forest.find_unit("iu-photo")
        assert photo.examples == "Aerial view"
        assert len(photo.example_images) == 1
        assert photo.example_images[0].data == b"hello"
        assert photo.example_images[0].mime_type == "image/jpeg"
        assert "Broken" in caplog.text
        assert "Corrupt" in caplog.text
        assert [u.id for u in photo.sub_information_units] == ["iu-date"]
        assert photo.sub_information_units[0].is_mandatory is False

    def test_stage_generations_are_equivalent(self) -> None:
        v1 = IdmXmlReader().parse(V1_DOCUMENT)
        v2 = IdmXmlReader().parse(V2_STAGE_DOCUMENT)
        assert v1.header.project_stages == v2.header.project_stages == ["production", "design"]
        assert v2.schema_version is SchemaVersion.V2

    def test_namespace_less_document(self) -> None:
        xml = """<idm>
          <specId fullTitle="Plain" documentStatus="WD"/>
          <er>
            <specId guid="g1" fullTitle="Only full title"/>
            <informationUnit name="Height" isMandatory="true"/>
          </er>
        </idm>"""
        document = IdmXmlReader().parse(xml)
        assert document.header.title == "Plain"
        root = document.forest.root
        assert (root.id, root.name) == ("g1", "Only full title")
        unit = root.information_units[0]
        assert unit.data_type == "String / Text"
        assert unit.is_mandatory is True
        assert unit.id.startswith("IU-")

    def test_missing_content_gets_defaults(self) -> None:
        document = IdmXmlReader().parse("<idm/>")
        header = document.header
        assert (header.version, header.status, header.language) == ("1.0", "WD", "EN")
        assert header.authors == []
        assert document.forest.roots == []
        assert document.diagram is None

    def test_er_without_code_or_guid_gets_id(self) -> None:
        er = IdmXmlReader().parse("<idm><er><specId shortTitle='X'/></er></idm>").forest.root
        assert er.id.startswith("er-")

    def test_positional_link_fallback(self, caplog) -> None:
        root = ExchangeRequirement(
            id="R", name="R",
            sub_ers=[ExchangeRequirement(id="E1", name="E1"), ExchangeRequirement(id="E2", name="E2")],
        )
        xml = IdmXmlWriter().write(IdmDocument(forest=ERForest.from_root(root))).xml
        elements = [
            DiagramElement(element_id="do-1", type="bpmn:DataObjectReference"),
            DiagramElement(element_id="task-1", type="bpmn:Task"),
            DiagramElement(element_id="do-2", type="bpmn:DataObjectReference"),
        ]
        with caplog.at_level(logging.WARNING, logger="idmxml.codec.reader"):
            forest = IdmXmlReader().parse(xml, diagram_elements=elements).forest
        assert forest.data_object_links == {"do-1": "E1", "do-2": "E2"}
        assert "by position" in caplog.text

    def test_unresolved_link_is_dropped(self, caplog) -> None:
        xml = """<idm><businessContextMap><pm>
            <dataObjectAndEr><associatedDataObject>do</associatedDataObject>
            <associatedEr>nobody</associatedEr></dataObjectAndEr>
        </pm></businessContextMap></idm>"""
        with caplog.at_level(logging.WARNING, logger="idmxml.codec.reader"):
            forest = IdmXmlReader().parse(xml).forest
        assert forest.data_object_links == {}
        assert "nobody" in caplog.text

    def test_malformed_xml_raises(self) -> None:
        with pytest.raises(IdmXmlParseError, match="Invalid XML"):
            IdmXmlReader().parse("<idm><er></idm>")

    def test_wrong_root_raises(self) -> None:
        with pytest.raises(IdmXmlParseError, match="expected <idm>"):
            IdmXmlReader().parse("<project/>")
        with pytest.raises(IdmXmlParseError, match="expected <er>"):
            IdmXmlReader().parse_er("<idm/>")

    def test_parse_file_names_source(self, tmp_path: Path) -> None:
        broken = tmp_path / "broken.idmxml"
        broken.write_text("<idm>", encoding="utf-8")
        with pytest.raises(IdmXmlParseError) as info:
            IdmXmlReader().parse_file(broken)
        assert info.value.source == str(broken)
        assert str(broken) in str(info.value)


# ===========================================================================
# Schema helpers
# ===========================================================================


class TestSchemaHelpers:

    def test_detection(self) -> None:
        v1 = detect_schema_version(_tree(V1_DOCUMENT.split("\n", 1)[1]))
        assert v1.version is SchemaVersion.V1
        assert v1.confidence == "high"
        plain = detect_schema_version(_tree("<idm/>"))
        assert plain.version is SchemaVersion.V2
        assert plain.confidence == "low"
        phase_only = detect_schema_version(
            _tree("<idm><uc><standardProjectPhase><name>design</name></standardProjectPhase></uc></idm>")
        )
        assert phase_only.version is SchemaVersion.V1
        assert phase_only.confidence == "medium"

    def test_stage_normalization(self) -> None:
        assert normalize_stage(" Construction ") == "production"
        assert normalize_stage("End-Of-Life") == "end-of-life"
        assert normalize_stage("Feasibility") == "feasibility"

    def test_region_codes(self) -> None:
        assert normalize_region_code("DEU") == "DE"
        assert normalize_region_code("deu") == "DE"
        assert normalize_region_code("international") == "international"
        assert region_name("GBR") == "United Kingdom"
        assert region_name("EU") == "European Union"

    def test_sniffing(self) -> None:
        assert is_idmxml(V1_DOCUMENT)
        assert not is_idmxml("<html><body/></html>")
        assert not is_idmxml("")


# ===========================================================================
# Figure bundling
# ===========================================================================


class TestFigureBundle:

    def test_collect_and_restore(self, document: IdmDocument) -> None:
        document.header.summary_figures.append(Figure(id="fig-s", caption="Overview", data=b"summary"))
        walls = document.forest.find_unit("iu-walls")
        walls.example_images.append(Figure(id="fig-w", caption="Wall", data=b"wall", mime_type="image/jpeg"))

        payloads = collect_figure_payloads(document)
        assert payloads == {"images/fig-s.png": b"summary", "images/fig-w.jpg": b"wall"}

        decoded = IdmXmlReader().parse(IdmXmlWriter().write(document).xml)
        decoded_walls = decoded.forest.find_unit("iu-walls")
        assert decoded_walls.example_images[0].file_path == "images/fig-w.jpg"

        assert restore_figure_data(decoded, payloads) == 2
        restored = decoded.forest.find_unit("iu-walls").example_images[0]
        assert restored.data == b"wall"
        assert restored.caption == "Wall"
        assert decoded.header.summary_figures[0].data == b"summary"

        assert restored.id == "fig-w"
        assert collect_figure_payloads(decoded) == payloads

    def test_unknown_paths_stay_references(self, document: IdmDocument) -> None:
        document.header.benefits_figures.append(Figure(file_path="images/elsewhere.png"))
        assert restore_figure_data(document, {"images/other.png": b"x"}) == 0
        assert document.header.benefits_figures[0].file_path == "images/elsewhere.png"


# ===========================================================================
# CLI
# ===========================================================================


class TestCli:

    @pytest.fixture
    def spec_file(self, document: IdmDocument, tmp_path: Path) -> Path:
        path = tmp_path / "spec.idmxml"
        IdmXmlWriter().save(document, path)
        return path

    def test_validate_valid_file(self, spec_file: Path) -> None:
        result = CliRunner().invoke(cli, ["validate", str(spec_file)])
        assert result.exit_code == 0

    def test_validate_json_output(self, spec_file: Path) -> None:
        result = CliRunner().invoke(cli, ["validate", str(spec_file), "--json-output"])
        payload = json.loads(result.stdout)
        assert payload["passed"] is True
        assert payload["status"] == "Valid"

    def test_validate_errors_exit_1(self, tmp_path: Path) -> None:
        path = tmp_path / "empty.idmxml"
        IdmXmlWriter().save(IdmDocument(header=HeaderData(title="")), path)
        result = CliRunner().invoke(cli, ["validate", str(path)])
        assert result.exit_code == 1

    def test_strict_fails_on_warnings(self, document: IdmDocument, tmp_path: Path) -> None:
        document.forest.find_er("er-doors").description = ""
        path = tmp_path / "warn.idmxml"
        IdmXmlWriter().save(document, path)
        runner = CliRunner()
        assert runner.invoke(cli, ["validate", str(path)]).exit_code == 0
        assert runner.invoke(cli, ["validate", str(path), "--strict"]).exit_code == 1

    def test_parse_error_exit_2(self, tmp_path: Path) -> None:
        path = tmp_path / "broken.idmxml"
        path.write_text("<idm><er>", encoding="utf-8")
        result = CliRunner().invoke(cli, ["validate", str(path)])
        assert result.exit_code == 2
        assert "idmXML parse error" in result.output

    def test_convert_to_v1(self, spec_file: Path, tmp_path: Path) -> None:
        out = tmp_path / "legacy.idmxml"
        result = CliRunner().invoke(cli, ["convert", str(spec_file), "-o", str(out), "--schema", "1.0"])
        assert result.exit_code == 0
        converted = IdmXmlReader().parse_file(out)
        assert converted.schema_version is SchemaVersion.V1
        original = IdmXmlReader().parse_file(spec_file)
        assert converted.header.guids == original.header.guids

    def test_detect(self, spec_file: Path, tmp_path: Path) -> None:
        result = CliRunner().invoke(cli, ["detect", str(spec_file)])
        assert result.exit_code == 0
        assert "idmXSD 2.0" in result.output

        junk = tmp_path / "junk.xml"
        junk.write_text("not xml", encoding="utf-8")
        assert CliRunner().invoke(cli, ["detect", str(junk)]).exit_code == 2

    def test_inspect_json(self, spec_file: Path) -> None:
        result = CliRunner().invoke(cli, ["inspect", str(spec_file), "--format", "json"])
        assert result.exit_code == 0
        payload = json.loads(result.stdout)
        assert payload["header"]["title"] == "Structural Design Coordination"
        assert payload["forest"]["roots"][0]["subERs"][0]["name"] == "Architecture"

    def test_inspect_rich(self, spec_file: Path) -> None:
        result = CliRunner().invoke(cli, ["inspect", str(spec_file)])
        assert result.exit_code == 0
        assert "Architecture" in result.output

    def test_version(self) -> None:
        result = CliRunner().invoke(cli, ["version"])
        assert result.exit_code == 0
        assert "idmxml" in result.output
