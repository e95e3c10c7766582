"""
Header Builder
===============
Fluent builder for :class:`HeaderData`.

Example::

    from idmxml.builder.header_builder import HeaderBuilder

    header = (
        HeaderBuilder("Structural design coordination")
        .short_title("SDC")
        .status("CD")
        .person("Ada", "Lovelace", affiliation="Analytical Engines Ltd")
        .organization("buildingSMART International")
        .change("First committee draft", changed_by="Ada Lovelace")
        .regions("DE", "FR")
        .stages("design")
        .uses("coordination")
        .build()
    )
"""

from __future__ import annotations

from datetime import datetime, timezone

from ..models.header import (
    ChangeLog,
    DocumentStatus,
    HeaderData,
    OrganizationAuthor,
    PersonAuthor,
)


class HeaderBuilder:
    """Even a minimal ``build()`` returns the documented header defaults."""

    def __init__(self, title: str = "") -> None:
        self._fields: dict = {"title": title}
        self._authors: list = []
        self._change_logs: list[ChangeLog] = []
        self._regions: list[str] = []
        self._stages: list[str] = []
        self._uses: list[str] = []

    def short_title(self, value: str) -> "HeaderBuilder":
        self._fields["short_title"] = value
        return self

    def code(self, idm_code: str, local_code: str = "") -> "HeaderBuilder":
        self._fields["idm_code"] = idm_code
        if local_code:
            self._fields["local_code"] = local_code
        return self

    def version(self, value: str) -> "HeaderBuilder":
        self._fields["version"] = value
        return self

    def status(self, value: DocumentStatus | str) -> "HeaderBuilder":
        self._fields["status"] = value.value if isinstance(value, DocumentStatus) else value
        return self

    def language(self, value: str) -> "HeaderBuilder":
        self._fields["language"] = value
        return self

    def copyright(self, value: str) -> "HeaderBuilder":
        self._fields["copyright"] = value
        return self

    def use_case(
        self,
        summary: str = "",
        aim_and_scope: str = "",
        benefits: str = "",
        limitations: str = "",
    ) -> "HeaderBuilder":
        for key, value in (
            ("summary", summary),
            ("aim_and_scope", aim_and_scope),
            ("benefits", benefits),
            ("limitations", limitations),
        ):
            if value:
                self._fields[key] = value
        return self

    def person(
        self,
        given_name: str,
        family_name: str = "",
        **extra: str,
    ) -> "HeaderBuilder":
        self._authors.append(
            PersonAuthor(given_name=given_name, family_name=family_name, **extra)
        )
        return self

    def organization(self, name: str, uri: str = "") -> "HeaderBuilder":
        self._authors.append(OrganizationAuthor(name=name, uri=uri))
        return self

    def change(self, summary: str, changed_by: str = "", when: str | None = None) -> "HeaderBuilder":
        stamp = when or datetime.now(tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%S")
        self._change_logs.append(
            ChangeLog(change_date_time=stamp, change_summary=summary, changed_by=changed_by)
        )
        return self

    def regions(self, *codes: str) -> "HeaderBuilder":
        self._regions.extend(codes)
        return self

    def stages(self, *names: str) -> "HeaderBuilder":
        self._stages.extend(n.strip().lower() for n in names)
        return self

    def uses(self, *names: str) -> "HeaderBuilder":
        self._uses.extend(names)
        return self

    def build(self) -> HeaderData:
        return HeaderData(
            **self._fields,
            authors=list(self._authors),
            change_logs=list(self._change_logs),
            regions=list(self._regions),
            project_stages=list(self._stages),
            use_categories=list(self._uses),
        )
