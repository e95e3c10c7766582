"""
idmXML Writer
==============
Serializes an :class:`IdmDocument` to idmXML (either schema generation).

The writer never fails on a valid model and never mutates its input:

- Document GUIDs already present in ``header.guids`` and ER guids are
  reused verbatim; missing ones are generated and returned in the
  :class:`EncodeResult` so the caller can persist them
  (``result.apply(document)``).
- More than one root ER, or a legacy diagram-element -> ER map, is
  wrapped into one synthesized root ER (the schema allows 0..1 root ``er``).
- A leaf ER without information units gets a placeholder unit in the
  output only.
- Figures are written as ``caption`` / ``filePath`` references. Binary
  payloads are the bundler's job (see :mod:`idmxml.bundle.figures`).

Example::

    from idmxml.codec.writer import IdmXmlWriter

    result = IdmXmlWriter(schema="2.0").write(document)
    result.apply(document)          # keep GUIDs stable for the next save
    Path("spec.idmxml").write_text(result.xml, encoding="utf-8")
"""

from __future__ import annotations

import logging
import re
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Mapping

from lxml import etree as ET

from .. import config
from ..models.document import DiagramElement, DiagramReference, IdmDocument, SchemaVersion
from ..models.exchange import (
    ExchangeRequirement,
    Figure,
    InformationUnit,
    generate_guid,
    placeholder_unit,
)
from ..models.header import (
    ChangeLog,
    DocumentGuids,
    HeaderData,
    OrganizationAuthor,
    PersonAuthor,
    author_display_name,
)
from .schema import local_stage_element, normalize_stage, is_iso_stage, standard_stage_element

logger = logging.getLogger(__name__)

# Characters XML 1.0 cannot carry, even escaped
_INVALID_XML_CHARS = re.compile("[\x00-\x08\x0b\x0c\x0e-\x1f\ud800-\udfff\ufffe\uffff]")


def _clean(value) -> str:
    if value is None:
        return ""
    return _INVALID_XML_CHARS.sub("", str(value))


@dataclass
class EncodeResult:
    """Produced XML plus every identifier the caller must feed back next time."""
    xml: str
    guids: DocumentGuids
    er_guids: dict[str, str] = field(default_factory=dict)

    def assign_guids(self, ers: Iterable[ExchangeRequirement]) -> int:
        """Store generated guids on ERs that have none. Returns the number assigned."""
        assigned = 0
        for er in ers:
            if not er.guid and er.id in self.er_guids:
                er.guid = self.er_guids[er.id]
                assigned += 1
        return assigned

    def apply(self, document: IdmDocument) -> None:
        document.header.guids = self.guids.model_copy()
        self.assign_guids(document.forest.iter_ers())


class IdmXmlWriter:
    """Encoder for idmXML v1 (idmXML/0.2) and v2 (idmXML/2.0)."""

    def __init__(
        self,
        schema: SchemaVersion | str = config.DEFAULT_SCHEMA_VERSION,
        pretty_print: bool = True,
    ) -> None:
        self.schema = SchemaVersion.parse(schema)
        self.namespace = self.schema.namespace
        self.pretty_print = pretty_print

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def write(self, document: IdmDocument, include_diagram: bool = True) -> EncodeResult:
        forest = document.forest
        links: list[tuple[str, ExchangeRequirement]] = []
        for element_id, key in forest.data_object_links.items():
            er = forest.find_er(key)
            if er is None:
                logger.warning("Data object %s links to unknown ER %s; link not written", element_id, key)
                continue
            links.append((element_id, er))
        return self._encode(document.header, list(forest.roots), links, document.diagram, include_diagram)

    def write_er_map(
        self,
        header: HeaderData,
        er_map: Mapping[str, ExchangeRequirement],
        diagram: DiagramReference | None = None,
        data_objects: Iterable[DiagramElement] | None = None,
        include_diagram: bool = True,
    ) -> EncodeResult:
        """
        Encode a legacy flat map of diagram element id -> ER.

        Entries sharing a guid, id or name are written once; every map entry
        still gets its data-object link, pointing at the surviving ER.
        """
        kept: dict[str, ExchangeRequirement] = {}
        for er in er_map.values():
            key = self._dedup_key(er)
            if key in kept:
                logger.debug("Skipping duplicate ER %r in element map", key)
                continue
            kept[key] = er

        order = [e.element_id for e in data_objects] if data_objects is not None else list(er_map)
        links = [
            (element_id, kept[self._dedup_key(er_map[element_id])])
            for element_id in order
            if element_id in er_map
        ]
        return self._encode(header, list(kept.values()), links, diagram, include_diagram, wrap=True)

    def write_er(self, er: ExchangeRequirement) -> str:
        """Standalone ER document (``.erxml``) whose root element is ``er``."""
        er_guids = self._assign_er_guids([er])
        root = ET.Element(self._q("er"), nsmap={None: self.namespace})
        self._fill_er(root, er, er_guids, status="WD", version="1.0")
        return self._serialize(root)

    def save(self, document: IdmDocument, path: str | Path, include_diagram: bool = True) -> EncodeResult:
        result = self.write(document, include_diagram=include_diagram)
        Path(path).write_text(result.xml, encoding="utf-8")
        return result

    # ------------------------------------------------------------------
    # Document assembly
    # ------------------------------------------------------------------

    def _encode(
        self,
        header: HeaderData,
        roots: list[ExchangeRequirement],
        links: list[tuple[str, ExchangeRequirement]],
        diagram: DiagramReference | None,
        include_diagram: bool,
        wrap: bool = False,
    ) -> EncodeResult:
        guids = self._resolve_guids(header)
        if wrap or len(roots) > 1:
            roots = [self._synthesize_root(header, roots, guids)]

        er_guids = self._assign_er_guids(roots)
        if roots:
            guids.root_er_guid = er_guids[id(roots[0])]

        idm = ET.Element(self._q("idm"), nsmap={None: self.namespace})
        idm.set("version", self.schema.value)

        self._write_spec_id(idm, header, guids.idm_guid, guids.idm_code)
        self._write_authoring(idm, header)
        self._write_use_case(idm, header, guids)
        self._write_business_context(idm, header, guids, diagram, include_diagram, links, er_guids)
        if roots:
            er_el = self._sub(idm, "er")
            self._fill_er(er_el, roots[0], er_guids, header.status or "WD", header.version or "1.0")

        by_id: dict[str, str] = {}
        for er in self._walk_ers(roots):
            by_id.setdefault(er.id, er_guids[id(er)])
        return EncodeResult(xml=self._serialize(idm), guids=guids, er_guids=by_id)

    def _assign_er_guids(self, roots: list[ExchangeRequirement]) -> dict[int, str]:
        """Guid per ER object: the stored one, or a fresh one for this pass."""
        er_guids: dict[int, str] = {}
        for er in self._walk_ers(roots):
            if id(er) in er_guids:
                continue
            if er.guid:
                er_guids[id(er)] = er.guid
            else:
                er_guids[id(er)] = generate_guid()
                logger.debug("Generated guid %s for ER %s", er_guids[id(er)], er.id)
        return er_guids

    def _resolve_guids(self, header: HeaderData) -> DocumentGuids:
        guids = header.guids.model_copy()
        for name in ("idm_guid", "uc_guid", "bcm_guid"):
            if not getattr(guids, name):
                setattr(guids, name, generate_guid())
                logger.debug("Generated %s", name)
        if not guids.pm_id:
            guids.pm_id = f"PM-{uuid.uuid4().hex[:12]}"
        if header.idm_code:
            guids.idm_code = header.idm_code
        elif not guids.idm_code:
            guids.idm_code = f"IDM-{uuid.uuid4().hex[:8]}"
        return guids

    def _synthesize_root(
        self,
        header: HeaderData,
        children: list[ExchangeRequirement],
        guids: DocumentGuids,
    ) -> ExchangeRequirement:
        # The wrapper must not take over the identity of an ER it wraps
        wrapped = list(self._walk_ers(children))
        taken_guids = {er.guid for er in wrapped if er.guid}
        taken_ids = {er.id for er in wrapped}

        guid = guids.root_er_guid
        if not guid or guid in taken_guids:
            guid = generate_guid()
        er_id = header.root_er_id or "root"
        if er_id in taken_ids:
            er_id = "root" if "root" not in taken_ids else f"root-{uuid.uuid4().hex[:8]}"
        name = header.root_er_name
        if not name or any(er.name == name for er in children):
            name = header.title or config.ROOT_ER_NAME

        logger.debug("Wrapping %d ER(s) into a synthesized root %s", len(children), er_id)
        return ExchangeRequirement(
            id=er_id,
            guid=guid,
            name=name,
            sub_ers=list(children),
        )

    @staticmethod
    def _dedup_key(er: ExchangeRequirement) -> str:
        return er.guid or er.id or er.name

    @staticmethod
    def _walk_ers(roots: list[ExchangeRequirement]) -> Iterable[ExchangeRequirement]:
        stack = list(reversed(roots))
        while stack:
            er = stack.pop()
            yield er
            stack.extend(reversed(er.sub_ers))

    # ------------------------------------------------------------------
    # Header blocks
    # ------------------------------------------------------------------

    def _write_spec_id(self, parent, header: HeaderData, guid: str, idm_code: str) -> None:
        title = header.title
        self._sub(
            parent, "specId",
            guid=guid,
            shortTitle=header.short_title or title,
            fullTitle=title,
            subTitle=header.sub_title or None,
            idmCode=idm_code,
            localCode=header.local_code or None,
            documentStatus=header.status or "WD",
            localDocumentStatus=header.local_document_status or None,
            version=header.version or "1.0",
        )

    def _write_authoring(self, parent, header: HeaderData) -> None:
        authoring = self._sub(
            parent, "authoring",
            copyright=header.copyright or config.DEFAULT_COPYRIGHT,
            creationDate=header.creation_date or None,
        )

        authors = [a for a in header.authors if not isinstance(a, str) or a.strip()]
        if not authors:
            authors = [PersonAuthor(id="author-1", given_name=config.DEFAULT_AUTHOR_NAME)]

        change_logs = header.change_logs
        if not change_logs:
            created = header.creation_date or ""
            change_logs = [
                ChangeLog(
                    id="changelog-1",
                    change_date_time=created if "T" in created or not created else f"{created}T00:00:00",
                    change_summary=config.DEFAULT_CHANGE_SUMMARY,
                    changed_by=author_display_name(authors[0]),
                )
            ]
        for log in change_logs:
            log_el = self._sub(
                authoring, "changeLog",
                id=log.id,
                changeDateTime=log.change_date_time,
                changeSummary=log.change_summary,
                changedBy=log.changed_by,
            )
            for change in log.changes:
                self._sub(log_el, "change", changedElement=change.changed_element, changedFrom=change.changed_from)

        for index, author in enumerate(authors, start=1):
            if isinstance(author, str):
                author_el = self._sub(authoring, "author", id=f"author-{index}")
                self._sub(author_el, "person", givenName=author.strip())
            elif isinstance(author, OrganizationAuthor):
                author_el = self._sub(authoring, "author", id=author.id)
                self._sub(author_el, "organization", name=author.name, uri=author.uri or None)
            else:
                author_el = self._sub(authoring, "author", id=author.id)
                self._sub(
                    author_el, "person",
                    givenName=author.given_name,
                    familyName=author.family_name,
                    middleInitial=author.middle_initial or None,
                    prefix=author.prefix or None,
                    suffix=author.suffix or None,
                    postnominalDesignation=author.postnominal_designation or None,
                    affiliation=author.affiliation or None,
                    uri=author.uri or None,
                )

    def _write_use_case(self, parent, header: HeaderData, guids: DocumentGuids) -> None:
        uc = self._sub(parent, "uc")
        self._sub(
            uc, "specId",
            guid=guids.uc_guid,
            shortTitle=header.short_title or header.title,
            fullTitle=header.title,
            idmCode=f"UC-{guids.idm_code}",
            documentStatus=header.status or "WD",
            version=header.version or "1.0",
        )

        self._write_section(uc, "summary", header.summary, header.summary_figures, required=True)
        self._write_section(uc, "aimAndScope", header.aim_and_scope, header.aim_and_scope_figures, required=True)
        self._sub(uc, "language", text=header.language or "EN")
        self._write_section(uc, "benefits", header.benefits, header.benefits_figures)
        self._write_section(uc, "limitations", header.limitations, header.limitations_figures)

        for actor in header.actors_list:
            self._write_actor(uc, actor)
        for tag, text in (
            ("actors", header.actors),
            ("preconditions", header.preconditions),
            ("postconditions", header.postconditions),
            ("triggeringEvents", header.triggering_events),
            ("requiredCapabilities", header.required_capabilities),
            ("complianceCriteria", header.compliance_criteria),
        ):
            self._write_section(uc, tag, text, [])

        for use in header.use_categories or [config.DEFAULT_USE]:
            self._sub(uc, "use", name=use)
        for region in header.regions or [config.DEFAULT_REGION]:
            self._sub(uc, "region", value=region)

        stage_tag = standard_stage_element(self.schema)
        for stage in header.project_stages or [config.DEFAULT_PROJECT_STAGE]:
            normalized = normalize_stage(stage)
            if not is_iso_stage(normalized):
                logger.debug("Stage %r is not an ISO stage; writing %r", stage, config.DEFAULT_PROJECT_STAGE)
                normalized = config.DEFAULT_PROJECT_STAGE
            stage_el = self._sub(uc, stage_tag)
            self._sub(stage_el, "name", text=normalized)

        local_tag = local_stage_element(self.schema)
        for local in header.local_project_stages:
            local_el = self._sub(uc, local_tag)
            self._sub(local_el, "name", text=local.name)
            if local.classification:
                self._sub(local_el, "classification", name=local.classification)

    def _write_section(self, parent, tag: str, text: str, figures: list[Figure], required: bool = False) -> None:
        if not (text or figures or required):
            return
        section = self._sub(parent, tag)
        self._sub(section, "description", title=text)
        for figure in figures:
            self._sub(
                section, "figure",
                caption=figure.caption,
                filePath=figure.reference_path(),
                mimeType=figure.mime_type,
            )

    def _write_actor(self, parent, actor) -> None:
        stack = [(parent, actor)]
        while stack:
            container, current = stack.pop()
            actor_el = self._sub(
                container, "actor",
                id=current.id,
                name=current.name,
                actorType=current.actor_type or None,
            )
            if current.bpmn_shape_name:
                self._sub(actor_el, "bpmnShapeName", text=current.bpmn_shape_name)
            if current.classification:
                self._sub(actor_el, "classification", name=current.classification)
            holders = [(self._sub(actor_el, "subActor"), sub) for sub in current.sub_actors]
            stack.extend(reversed(holders))

    def _write_business_context(
        self,
        parent,
        header: HeaderData,
        guids: DocumentGuids,
        diagram: DiagramReference | None,
        include_diagram: bool,
        links: list[tuple[str, ExchangeRequirement]],
        er_guids: dict[int, str],
    ) -> None:
        bcm = self._sub(parent, "businessContextMap")
        self._sub(
            bcm, "specId",
            guid=guids.bcm_guid,
            shortTitle=config.DIAGRAM_NAME,
            fullTitle="Business Context Map",
            idmCode=f"BCM-{guids.idm_code}",
            documentStatus=header.status or "WD",
            version=header.version or "1.0",
        )
        pm = self._sub(bcm, "pm")
        diagram_el = self._sub(
            pm, "diagram",
            id=guids.pm_id,
            name=config.DIAGRAM_NAME,
            notation=config.DIAGRAM_NOTATION,
            diagramFilePath=(diagram.file_path if diagram else "") or config.DIAGRAM_FILE_PATH,
        )
        if include_diagram and diagram is not None and not diagram.is_empty:
            content = _clean(diagram.content)
            content_el = self._sub(diagram_el, "diagramContent")
            content_el.text = ET.CDATA(content) if "]]>" not in content else content

        for index, (element_id, er) in enumerate(links, start=1):
            link = self._sub(pm, "dataObjectAndEr", id=f"DOER-{index}")
            self._sub(link, "associatedDataObject", text=element_id)
            self._sub(link, "associatedEr", text=er_guids.get(id(er)) or er.guid or er.id)

    # ------------------------------------------------------------------
    # ER / IU trees
    # ------------------------------------------------------------------

    def _fill_er(
        self,
        er_el,
        root: ExchangeRequirement,
        er_guids: dict[int, str],
        status: str,
        version: str,
    ) -> None:
        stack: list[tuple[object, ExchangeRequirement]] = [(er_el, root)]
        while stack:
            element, er = stack.pop()
            self._sub(
                element, "specId",
                guid=er_guids[id(er)],
                shortTitle=er.name or "ER",
                fullTitle=er.name or "Exchange Requirement",
                idmCode=f"ER-{er.id}",
                documentStatus=status,
                version=version,
            )
            if er.description or er.description_figures:
                desc = self._sub(element, "description", title=er.description)
                for figure in er.description_figures:
                    self._write_image(desc, figure)

            units = er.information_units
            if not units and not er.sub_ers:
                logger.debug("ER %s has no content; writing placeholder information unit", er.id)
                units = [placeholder_unit(er)]
            for unit in units:
                self._write_unit_tree(element, unit)

            for constraint in er.constraints:
                constraint_el = self._sub(element, "constraint")
                self._sub(constraint_el, "description", title=constraint)
            for mvd in er.corresponding_mvds:
                self._sub(element, "correspondingMvd", basis=mvd.basis, name=mvd.name)

            children = []
            for sub in er.sub_ers:
                holder = self._sub(element, "subEr")
                children.append((self._sub(holder, "er"), sub))
            stack.extend(reversed(children))

    def _write_unit_tree(self, parent, unit: InformationUnit) -> None:
        stack: list[tuple[object, InformationUnit]] = [(parent, unit)]
        while stack:
            container, current = stack.pop()
            unit_el = self._sub(
                container, "informationUnit",
                id=current.id,
                name=current.name,
                dataType=current.data_type or config.DEFAULT_DATA_TYPE,
                isMandatory="true" if current.is_mandatory else "false",
                definition=current.definition,
            )
            if current.definition_figures:
                desc = self._sub(unit_el, "description", title=current.definition)
                for figure in current.definition_figures:
                    self._write_image(desc, figure)
            if current.examples or current.example_images:
                examples = self._sub(unit_el, "examples")
                if current.examples:
                    self._sub(examples, "description", title=current.examples)
                for figure in current.example_images:
                    self._write_image(examples, figure)
            for mapping in current.corresponding_external_elements:
                self._sub(
                    unit_el, "correspondingExternalElement",
                    basis=mapping.effective_basis(),
                    name=mapping.name,
                    uri=mapping.uri or None,
                    description=mapping.description or None,
                    category=mapping.category or None,
                )
            if current.sub_information_units:
                holder = self._sub(unit_el, "subInformationUnit")
                stack.extend((holder, sub) for sub in reversed(current.sub_information_units))

    def _write_image(self, parent, figure: Figure) -> None:
        self._sub(
            parent, "image",
            caption=figure.caption,
            filePath=figure.reference_path(),
            mimeType=figure.mime_type,
        )

    # ------------------------------------------------------------------
    # lxml helpers
    # ------------------------------------------------------------------

    def _q(self, tag: str) -> str:
        return f"{{{self.namespace}}}{tag}"

    def _sub(self, parent, tag: str, text: str | None = None, **attrs):
        element = ET.SubElement(parent, self._q(tag))
        for name, value in attrs.items():
            if value is not None:
                element.set(name, _clean(value))
        if text is not None:
            element.text = _clean(text)
        return element

    def _serialize(self, root) -> str:
        return ET.tostring(
            root,
            pretty_print=self.pretty_print,
            xml_declaration=True,
            encoding="UTF-8",
        ).decode("utf-8")
