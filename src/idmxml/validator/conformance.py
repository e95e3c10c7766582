"""
Conformance Validator
======================
Checks an IDM document against ISO 29481-1 / 29481-3 content rules.

Validation is advisory: it never mutates the model and never blocks the
encoder, so incomplete specifications can still be saved.

Example::

    from idmxml.validator.conformance import ProjectValidator

    result = ProjectValidator().validate(document)
    print(result.status_label())
    for issue in result.issues:
        print(f"[{issue.severity}] {issue.rule_id} {issue.path}: {issue.message}")
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable

from ..models.document import DiagramReference, IdmDocument
from ..models.exchange import ExchangeRequirement, InformationUnit
from ..models.header import DocumentStatus, HeaderData


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


class Category(str, Enum):
    HEADER = "header"
    ER = "er"
    INFORMATION_UNIT = "informationUnit"
    DIAGRAM = "diagram"


@dataclass
class ValidationIssue:
    rule_id: str
    severity: Severity
    message: str
    category: Category
    field: str | None = None
    path: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "ruleId": self.rule_id,
            "severity": self.severity.value,
            "category": self.category.value,
            "field": self.field,
            "path": self.path,
            "message": self.message,
        }


@dataclass
class ValidationResult:
    """Result of a validation run."""
    issues: list[ValidationIssue] = field(default_factory=list)
    rule_count: int = 0

    @property
    def errors(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity == Severity.ERROR]

    @property
    def warnings(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity == Severity.WARNING]

    @property
    def passed(self) -> bool:
        return not self.errors

    def extend(self, other: "ValidationResult") -> None:
        self.issues.extend(other.issues)
        self.rule_count += other.rule_count

    def summary(self) -> dict[str, Any]:
        return {
            "total": len(self.issues),
            "errors": len(self.errors),
            "warnings": len(self.warnings),
            "byCategory": {
                c.value: sum(1 for i in self.issues if i.category == c) for c in Category
            },
        }

    def status_label(self) -> str:
        errors, warnings = len(self.errors), len(self.warnings)
        if not errors and not warnings:
            return "Valid"
        if not errors:
            return f"Valid ({_plural(warnings, 'warning')})"
        return f"{_plural(errors, 'error')}, {_plural(warnings, 'warning')}"

    def __str__(self) -> str:
        status = "PASS" if self.passed else "FAIL"
        return f"[{status}] {len(self.errors)} error(s), {len(self.warnings)} warning(s)"


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'s' if count != 1 else ''}"


def _blank(value: str | None) -> bool:
    return value is None or not str(value).strip()


class _Collector:
    def __init__(self) -> None:
        self.result = ValidationResult()

    def rule(self) -> None:
        self.result.rule_count += 1

    def add(
        self,
        rule_id: str,
        severity: Severity,
        message: str,
        category: Category,
        fld: str | None = None,
        path: str = "",
    ) -> None:
        self.result.issues.append(ValidationIssue(rule_id, severity, message, category, fld, path))


# ---------------------------------------------------------------------------
# Header
# ---------------------------------------------------------------------------


class HeaderValidator:
    """
    Rules implemented:
    - HD-001..004  title, version, status, language are required
    - HD-005       status must be in the ISO document status vocabulary
    - HD-006       at least one author
    - SC-001..003  project stage / use / region present (warnings, the
                   encoder supplies defaults)
    """

    _REQUIRED = (
        ("HD-001", "title", "IDM Title"),
        ("HD-002", "version", "Version"),
        ("HD-003", "status", "Status"),
        ("HD-004", "language", "Language"),
    )

    def validate(self, header: HeaderData) -> ValidationResult:
        c = _Collector()

        for rule_id, name, label in self._REQUIRED:
            c.rule()
            if _blank(getattr(header, name)):
                c.add(rule_id, Severity.ERROR, f"{label} is required", Category.HEADER, name, f"header.{name}")

        c.rule()
        if not _blank(header.status) and not header.is_known_status():
            allowed = ", ".join(s.value for s in DocumentStatus)
            c.add(
                "HD-005", Severity.ERROR,
                f"Invalid status. Must be one of: {allowed}",
                Category.HEADER, "status", "header.status",
            )

        c.rule()
        named = [a for a in header.authors if not isinstance(a, str) or a.strip()]
        if not named:
            c.add(
                "HD-006", Severity.ERROR, "At least one author is required",
                Category.HEADER, "authors", "header.authors",
            )

        for rule_id, name, label in (
            ("SC-001", "project_stages", "project stage"),
            ("SC-002", "use_categories", "use"),
            ("SC-003", "regions", "region"),
        ):
            c.rule()
            if not getattr(header, name):
                c.add(
                    rule_id, Severity.WARNING,
                    f"No {label} given; a default will be written for schema compliance",
                    Category.HEADER, name, f"header.{name}",
                )

        return c.result


# ---------------------------------------------------------------------------
# Exchange requirements and information units
# ---------------------------------------------------------------------------


class ExchangeRequirementValidator:
    """
    Rules implemented:
    - ER-001  ER name is required
    - ER-002  description recommended (warning)
    - ER-003  a leaf ER must own at least one information unit (ISO 29481-3 Clause 10)
    - IU-001  IU name is required
    - IU-002  data type is required
    - IU-003  mandatory flag must be set
    - IU-004  definition recommended (warning)

    Recurses through sub-ERs and sub-units with an explicit stack.
    """

    def validate(self, er: ExchangeRequirement, path: str | None = None) -> ValidationResult:
        return self.validate_many([er], [path] if path else None)

    def validate_many(
        self,
        ers: Iterable[ExchangeRequirement],
        paths: list[str] | None = None,
    ) -> ValidationResult:
        c = _Collector()
        roots = list(ers)
        root_paths = paths or [f"er.{er.id}" for er in roots]
        stack: list[tuple[ExchangeRequirement, str]] = list(reversed(list(zip(roots, root_paths))))
        while stack:
            er, er_path = stack.pop()
            self._check_er(c, er, er_path)
            for unit in er.information_units:
                self._check_unit_tree(c, unit, er_path)
            stack.extend(reversed([(sub, f"er.{sub.id}") for sub in er.sub_ers]))
        return c.result

    def _check_er(self, c: _Collector, er: ExchangeRequirement, er_path: str) -> None:
        label = er.name or "unnamed"

        c.rule()
        if _blank(er.name):
            c.add("ER-001", Severity.ERROR, "ER name is required", Category.ER, "name", f"{er_path}.name")

        c.rule()
        if _blank(er.description):
            c.add(
                "ER-002", Severity.WARNING, f'Description is recommended for ER "{label}"',
                Category.ER, "description", f"{er_path}.description",
            )

        c.rule()
        if er.is_leaf and not er.information_units:
            c.add(
                "ER-003", Severity.ERROR, f'ER "{label}" must have at least one Information Unit',
                Category.ER, "informationUnits", f"{er_path}.informationUnits",
            )

    def _check_unit_tree(self, c: _Collector, unit: InformationUnit, parent_path: str) -> None:
        stack: list[tuple[InformationUnit, str]] = [(unit, parent_path)]
        while stack:
            current, base = stack.pop()
            unit_path = f"{base}.informationUnit.{current.id}"
            self._check_unit(c, current, unit_path)
            stack.extend(reversed([(sub, unit_path) for sub in current.sub_information_units]))

    def _check_unit(self, c: _Collector, unit: InformationUnit, unit_path: str) -> None:
        label = unit.name or "unnamed unit"

        c.rule()
        if _blank(unit.name):
            c.add(
                "IU-001", Severity.ERROR, "Information Unit name is required",
                Category.INFORMATION_UNIT, "name", f"{unit_path}.name",
            )
        c.rule()
        if _blank(unit.data_type):
            c.add(
                "IU-002", Severity.ERROR, f'Data type is required for "{label}"',
                Category.INFORMATION_UNIT, "dataType", f"{unit_path}.dataType",
            )
        c.rule()
        if unit.is_mandatory is None:
            c.add(
                "IU-003", Severity.ERROR, f'Mandatory flag is required for "{label}"',
                Category.INFORMATION_UNIT, "isMandatory", f"{unit_path}.isMandatory",
            )
        c.rule()
        if _blank(unit.definition):
            c.add(
                "IU-004", Severity.WARNING, f'Definition is required for "{label}"',
                Category.INFORMATION_UNIT, "definition", f"{unit_path}.definition",
            )


# ---------------------------------------------------------------------------
# Diagram
# ---------------------------------------------------------------------------


class DiagramValidator:
    """
    Rules implemented:
    - DG-001  diagram content must be present
    - DG-002  process map should contain a data object (warning)
    """

    def validate(self, diagram: DiagramReference | str | None) -> ValidationResult:
        c = _Collector()
        content = diagram.content if isinstance(diagram, DiagramReference) else (diagram or "")

        c.rule()
        if not content.strip():
            c.add("DG-001", Severity.ERROR, "BPMN diagram is empty", Category.DIAGRAM, "bpmnXml", "diagram")
            return c.result

        c.rule()
        if "dataobjectreference" not in content.lower():
            c.add(
                "DG-002", Severity.WARNING,
                "Process map should contain at least one Data Object for ER definition",
                Category.DIAGRAM, "dataObjects", "diagram.dataObjects",
            )
        return c.result


# ---------------------------------------------------------------------------
# Whole project
# ---------------------------------------------------------------------------


class ProjectValidator:
    """
    Runs header, diagram and ER validation over a document.

    - PR-001  at least one ER should be defined (warning)
    """

    def validate(self, document: IdmDocument) -> ValidationResult:
        result = ValidationResult()
        result.extend(HeaderValidator().validate(document.header))
        result.extend(DiagramValidator().validate(document.diagram))

        result.rule_count += 1
        if document.forest.roots:
            result.extend(ExchangeRequirementValidator().validate_many(document.forest.roots))
        else:
            result.issues.append(
                ValidationIssue(
                    "PR-001", Severity.WARNING,
                    "No Exchange Requirements defined. Add ERs by linking Data Objects.",
                    Category.ER, "roots", "er",
                )
            )
        return result
