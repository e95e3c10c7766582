"""
idmXML Reader
==============
Parses idmXML (either schema generation) back into an :class:`IdmDocument`.

Element lookups compare local names only, so documents with, without or
with an unexpected namespace are read alike. Missing optional content is
never an error: the header starts from its documented defaults and parsed
values are laid over them. Malformed XML, or a root element that is not
``idm`` (``er`` for standalone ER files), raises
:class:`~idmxml.exceptions.IdmXmlParseError` and no partial document is
returned.

Example::

    from idmxml.codec.reader import IdmXmlReader

    document = IdmXmlReader().parse_file("spec.idmxml")
    print(document.header.title, document.schema_version)
    for er in document.forest.iter_ers():
        print(er.name, len(er.information_units))
"""

from __future__ import annotations

import base64
import binascii
import logging
from pathlib import Path
from typing import Iterable

from lxml import etree as ET

from .. import config
from ..exceptions import IdmXmlParseError
from ..models.document import DiagramElement, DiagramReference, IdmDocument
from ..models.exchange import (
    ExchangeRequirement,
    ExternalElementMapping,
    Figure,
    InformationUnit,
    MvdReference,
    generate_id,
)
from ..models.forest import ERForest
from ..models.header import (
    Actor,
    ChangeEntry,
    ChangeLog,
    HeaderData,
    LocalProjectStage,
    OrganizationAuthor,
    PersonAuthor,
)
from .schema import detect_schema_version, local_name, normalize_region_code, normalize_stage

logger = logging.getLogger(__name__)

ER_CODE_PREFIX = "ER-"


# ---------------------------------------------------------------------------
# Namespace-agnostic element helpers
# ---------------------------------------------------------------------------


def children(parent, tag: str) -> list:
    if parent is None:
        return []
    return [child for child in parent if local_name(child) == tag]


def first_child(parent, tag: str):
    if parent is None:
        return None
    for child in parent:
        if local_name(child) == tag:
            return child
    return None


def _attr(element, *names: str, default: str = "") -> str:
    """First non-empty attribute among ``names``."""
    if element is None:
        return default
    for name in names:
        value = element.get(name)
        if value:
            return value
    return default


def _text(element) -> str:
    if element is None:
        return ""
    return "".join(element.itertext())


def _description(section) -> str | None:
    """A ``description`` child's ``title`` attribute, else its text. None if absent."""
    desc = first_child(section, "description")
    if desc is None:
        return None
    return desc.get("title") or (desc.text or "").strip()


class IdmXmlReader:
    """Decoder for idmXML v1 and v2 documents and standalone ER files."""

    def __init__(self) -> None:
        self._parser = ET.XMLParser(resolve_entities=False, no_network=True, huge_tree=True)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def parse(
        self,
        content: str | bytes,
        diagram_elements: Iterable[DiagramElement] | None = None,
        source: str | None = None,
    ) -> IdmDocument:
        root = self._load(content, source)
        if local_name(root) != "idm":
            raise IdmXmlParseError(
                f"Not a valid idmXML file: expected <idm> root element, found <{local_name(root)}>",
                source,
            )

        detection = detect_schema_version(root)
        header = HeaderData()
        self._read_spec_id(root, header)
        self._read_authoring(root, header)
        self._read_revision_history(root, header)
        self._read_use_case(first_child(root, "uc"), header)
        diagram, raw_links = self._read_business_context(root, header)

        roots = [self._read_er(el) for el in children(root, "er")]
        forest = ERForest(roots=roots)
        if roots:
            header.root_er_name = roots[0].name
            header.root_er_id = roots[0].id
            header.guids.root_er_guid = roots[0].guid

        self._link_data_objects(forest, raw_links, diagram_elements)
        logger.debug(
            "Parsed %d root ER(s), %d ER(s) in total, %d data-object link(s)",
            len(roots), sum(1 for _ in forest.iter_ers()), len(forest.data_object_links),
        )
        return IdmDocument(
            header=header,
            forest=forest,
            diagram=diagram,
            schema_version=detection.version,
        )

    def parse_file(
        self,
        path: str | Path,
        diagram_elements: Iterable[DiagramElement] | None = None,
    ) -> IdmDocument:
        path = Path(path)
        return self.parse(path.read_bytes(), diagram_elements, source=str(path))

    def parse_er(self, content: str | bytes, source: str | None = None) -> ExchangeRequirement:
        """Read a standalone ER document (root element ``er``)."""
        root = self._load(content, source)
        if local_name(root) != "er":
            raise IdmXmlParseError(
                f"Not a valid ER file: expected <er> root element, found <{local_name(root)}>",
                source,
            )
        return self._read_er(root)

    def _load(self, content: str | bytes, source: str | None):
        data = content.encode("utf-8") if isinstance(content, str) else content
        try:
            return ET.fromstring(data, self._parser)
        except ET.XMLSyntaxError as exc:
            raise IdmXmlParseError(f"Invalid XML: {exc}", source) from exc

    # ------------------------------------------------------------------
    # Header
    # ------------------------------------------------------------------

    def _read_spec_id(self, root, header: HeaderData) -> None:
        spec = first_child(root, "specId")
        if spec is None:
            return
        header.guids.idm_guid = spec.get("guid", "")
        header.short_title = spec.get("shortTitle", "")
        header.title = _attr(spec, "fullTitle", "shortTitle")
        header.sub_title = spec.get("subTitle", "")
        header.idm_code = spec.get("idmCode", "")
        header.guids.idm_code = header.idm_code
        header.local_code = spec.get("localCode", "")
        header.version = spec.get("version") or "1.0"
        header.status = spec.get("documentStatus") or "WD"
        header.local_document_status = spec.get("localDocumentStatus", "")

    def _read_authoring(self, root, header: HeaderData) -> None:
        authoring = first_child(root, "authoring")
        if authoring is None:
            return
        if authoring.get("creationDate"):
            header.creation_date = authoring.get("creationDate")
        header.copyright = authoring.get("copyright", "")

        for log in children(authoring, "changeLog"):
            header.change_logs.append(
                ChangeLog(
                    id=log.get("id") or generate_id("changelog", 8),
                    change_date_time=log.get("changeDateTime", ""),
                    change_summary=log.get("changeSummary", ""),
                    changed_by=log.get("changedBy", ""),
                    changes=[
                        ChangeEntry(
                            changed_element=ch.get("changedElement", ""),
                            changed_from=ch.get("changedFrom", ""),
                        )
                        for ch in children(log, "change")
                    ],
                )
            )

        authors: list = []
        for author in children(authoring, "author"):
            author_id = author.get("id") or generate_id("author", 8)
            person = first_child(author, "person")
            organization = first_child(author, "organization")
            if person is not None:
                authors.append(self._person(person, author_id))
            elif organization is not None:
                authors.append(self._organization(organization, author_id))
            elif _attr(author, "firstName", "givenName", "lastName", "familyName"):
                # legacy: attributes directly on <author>
                authors.append(self._person(author, author_id))

        if not authors:
            authors.extend(self._person(p) for p in children(authoring, "person"))
            authors.extend(self._organization(o) for o in children(authoring, "organization"))

        if not authors:
            legacy = authoring.get("author", "")
            authors.extend(
                PersonAuthor(given_name=name.strip())
                for name in legacy.split(",")
                if name.strip()
            )
        header.authors = authors

    @staticmethod
    def _person(element, author_id: str | None = None) -> PersonAuthor:
        return PersonAuthor(
            id=author_id or generate_id("author", 8),
            given_name=_attr(element, "givenName", "firstName"),
            family_name=_attr(element, "familyName", "lastName"),
            middle_initial=_attr(element, "middleInitial", "middleName"),
            prefix=element.get("prefix", ""),
            suffix=element.get("suffix", ""),
            postnominal_designation=element.get("postnominalDesignation", ""),
            affiliation=element.get("affiliation", ""),
            uri=_attr(element, "uri", "emailAddress", "digitalSignature"),
        )

    @staticmethod
    def _organization(element, author_id: str | None = None) -> OrganizationAuthor:
        return OrganizationAuthor(
            id=author_id or generate_id("author", 8),
            name=element.get("name", ""),
            uri=element.get("uri", ""),
        )

    def _read_revision_history(self, root, header: HeaderData) -> None:
        history = first_child(root, "revisionHistory")
        for index, revision in enumerate(children(history, "revision"), start=1):
            header.change_logs.append(
                ChangeLog(
                    id=f"revision-{index}",
                    change_date_time=revision.get("date", ""),
                    change_summary=revision.get("description", ""),
                )
            )

    def _read_use_case(self, uc, header: HeaderData) -> None:
        if uc is None:
            return
        spec = first_child(uc, "specId")
        if spec is not None:
            header.guids.uc_guid = spec.get("guid", "")

        for tag, text_field, figure_field in (
            ("summary", "summary", "summary_figures"),
            ("aimAndScope", "aim_and_scope", "aim_and_scope_figures"),
            ("benefits", "benefits", "benefits_figures"),
            ("limitations", "limitations", "limitations_figures"),
        ):
            section = first_child(uc, tag)
            if section is None:
                continue
            setattr(header, text_field, _description(section) or "")
            setattr(header, figure_field, self._read_figures(children(section, "figure"), "Figure"))

        language = first_child(uc, "language")
        if language is not None and _text(language).strip():
            header.language = _text(language).strip()

        header.actors_list = [self._read_actor(el) for el in children(uc, "actor")]
        for tag, name in (
            ("actors", "actors"),
            ("preconditions", "preconditions"),
            ("postconditions", "postconditions"),
            ("triggeringEvents", "triggering_events"),
            ("requiredCapabilities", "required_capabilities"),
            ("complianceCriteria", "compliance_criteria"),
        ):
            text = _description(first_child(uc, tag))
            if text is not None:
                setattr(header, name, text)

        header.regions = [
            normalize_region_code(el.get("value"))
            for el in children(uc, "region")
            if el.get("value")
        ]
        header.use_categories = [
            el.get("name").strip()
            for el in children(uc, "use")
            if el.get("name", "").strip()
        ]

        stages: list[str] = []
        for tag in ("standardProjectStage", "standardProjectPhase"):
            for el in children(uc, tag):
                name = _text(first_child(el, "name")).strip()
                if name and normalize_stage(name) not in stages:
                    stages.append(normalize_stage(name))
        header.project_stages = stages

        for tag in ("localProjectStage", "localProjectPhase"):
            for el in children(uc, tag):
                name = _text(first_child(el, "name")).strip()
                if name:
                    header.local_project_stages.append(
                        LocalProjectStage(
                            name=name,
                            classification=_attr(first_child(el, "classification"), "name"),
                        )
                    )

    def _read_actor(self, element) -> Actor:
        actor = Actor(
            id=element.get("id") or generate_id("actor", 8),
            name=element.get("name", ""),
            actor_type=element.get("actorType", ""),
            bpmn_shape_name=_text(first_child(element, "bpmnShapeName")).strip(),
            classification=_attr(first_child(element, "classification"), "name"),
        )
        for holder in children(element, "subActor"):
            nested = first_child(holder, "actor")
            if nested is not None:
                actor.sub_actors.append(self._read_actor(nested))
        return actor

    def _read_business_context(self, root, header: HeaderData) -> tuple[DiagramReference | None, dict[str, str]]:
        bcm = first_child(root, "businessContextMap")
        spec = first_child(bcm, "specId")
        if spec is not None:
            header.guids.bcm_guid = spec.get("guid", "")

        pm = first_child(bcm, "pm")
        diagram_el = first_child(pm, "diagram")
        diagram = None
        if diagram_el is not None:
            header.guids.pm_id = diagram_el.get("id", "")
            diagram = DiagramReference(
                id=diagram_el.get("id", ""),
                file_path=diagram_el.get("diagramFilePath") or config.DIAGRAM_FILE_PATH,
                content=_text(first_child(diagram_el, "diagramContent")).strip(),
            )

        links: dict[str, str] = {}
        for link in children(pm, "dataObjectAndEr"):
            element_id = _text(first_child(link, "associatedDataObject")).strip()
            er_key = _text(first_child(link, "associatedEr")).strip()
            if element_id and er_key:
                links[element_id] = er_key
        return diagram, links

    # ------------------------------------------------------------------
    # Data-object association
    # ------------------------------------------------------------------

    def _link_data_objects(
        self,
        forest: ERForest,
        raw_links: dict[str, str],
        diagram_elements: Iterable[DiagramElement] | None,
    ) -> None:
        if raw_links:
            for element_id, key in raw_links.items():
                er = forest.find_er(key)
                if er is None:
                    logger.warning("ER not found for link: dataObject=%s, er=%s", element_id, key)
                    continue
                forest.data_object_links[element_id] = er.id
            return

        if diagram_elements is None:
            return
        data_objects = [e for e in diagram_elements if e.is_data_object]
        candidates = list(forest.iter_ers())
        root = forest.root
        if root is not None and root.sub_ers:
            candidates = candidates[1:]
        if not data_objects or not candidates:
            return
        logger.warning(
            "No dataObjectAndEr table; associating %d data object(s) with ERs by position",
            min(len(data_objects), len(candidates)),
        )
        for element, er in zip(data_objects, candidates):
            forest.data_object_links[element.element_id] = er.id

    # ------------------------------------------------------------------
    # ER / IU trees
    # ------------------------------------------------------------------

    def _read_er(self, element) -> ExchangeRequirement:
        root_er = self._read_er_node(element)
        stack = [(element, root_er)]
        while stack:
            el, er = stack.pop()
            nested = []
            for holder in children(el, "subEr"):
                sub_el = first_child(holder, "er")
                if sub_el is not None:
                    sub = self._read_er_node(sub_el)
                    er.sub_ers.append(sub)
                    nested.append((sub_el, sub))
            stack.extend(reversed(nested))
        return root_er

    def _read_er_node(self, element) -> ExchangeRequirement:
        """One ER without its sub-ERs."""
        spec = first_child(element, "specId")
        guid = _attr(spec, "guid")
        code = _attr(spec, "idmCode")
        er_id = code[len(ER_CODE_PREFIX):] if code.startswith(ER_CODE_PREFIX) else code
        er = ExchangeRequirement(
            id=er_id or guid or generate_id("er"),
            guid=guid,
            name=_attr(spec, "shortTitle", "fullTitle"),
        )

        desc = first_child(element, "description")
        if desc is not None:
            er.description = desc.get("title") or (desc.text or "").strip()
            er.description_figures = self._read_figures(children(desc, "image"), "Figure")

        er.information_units = [self._read_unit(el) for el in children(element, "informationUnit")]
        er.constraints = [
            text for text in (_description(el) for el in children(element, "constraint")) if text
        ]
        er.corresponding_mvds = [
            MvdReference(basis=el.get("basis", ""), name=el.get("name", ""))
            for el in children(element, "correspondingMvd")
        ]
        return er

    def _read_unit(self, element) -> InformationUnit:
        root_unit = self._read_unit_node(element)
        stack = [(element, root_unit)]
        while stack:
            el, unit = stack.pop()
            nested = []
            for holder in children(el, "subInformationUnit"):
                for sub_el in children(holder, "informationUnit"):
                    sub = self._read_unit_node(sub_el)
                    unit.sub_information_units.append(sub)
                    nested.append((sub_el, sub))
            stack.extend(reversed(nested))
        return root_unit

    def _read_unit_node(self, element) -> InformationUnit:
        unit = InformationUnit(
            id=element.get("id") or generate_id("IU", 8),
            name=element.get("name", ""),
            data_type=element.get("dataType") or config.DEFAULT_DATA_TYPE,
            is_mandatory=element.get("isMandatory") == "true",
            definition=element.get("definition", ""),
        )

        desc = first_child(element, "description")
        if desc is not None:
            if desc.get("title"):
                unit.definition = desc.get("title")
            unit.definition_figures = self._read_figures(children(desc, "image"), "Figure")

        examples = first_child(element, "examples")
        if examples is not None:
            examples_desc = first_child(examples, "description")
            unit.examples = _description(examples) or ""
            images = children(examples, "image") + children(examples_desc, "image")
            unit.example_images = self._read_figures(images, "Image")

        for mapping in children(element, "correspondingExternalElement"):
            name = mapping.get("name", "")
            if not name.strip():
                continue
            unit.corresponding_external_elements.append(
                ExternalElementMapping(
                    basis=mapping.get("basis") or "IFC",
                    name=name,
                    uri=mapping.get("uri", ""),
                    description=mapping.get("description", ""),
                    category=mapping.get("category", ""),
                )
            )
        return unit

    # ------------------------------------------------------------------
    # Figures
    # ------------------------------------------------------------------

    def _read_figures(self, elements: list, label: str) -> list[Figure]:
        """
        ``encoding="base64"`` figures carry their bytes inline; others
        reference ``filePath``. Figures with neither are skipped.
        """
        figures: list[Figure] = []
        for index, el in enumerate(elements, start=1):
            caption = el.get("caption") or f"{label} {index}"
            mime_type = el.get("mimeType") or "image/png"
            if el.get("encoding") == "base64":
                payload = "".join(_text(el).split())
                if not payload:
                    continue
                try:
                    data = base64.b64decode(payload, validate=True)
                except (binascii.Error, ValueError):
                    data = b""
                if not data:
                    logger.warning("Skipping figure %r: invalid base64 payload", caption)
                    continue
                figures.append(Figure(caption=caption, mime_type=mime_type, data=data))
            elif el.get("filePath"):
                figures.append(Figure(caption=caption, mime_type=mime_type, file_path=el.get("filePath")))
        return figures
