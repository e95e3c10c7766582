"""Exceptions raised by the idmXML codec."""

from __future__ import annotations


class IdmXmlError(Exception):
    """Base class for idmxml errors."""


class IdmXmlParseError(IdmXmlError):
    """
    Raised when a document cannot be decoded.

    Covers malformed XML (the underlying parser message is kept) and
    well-formed XML whose root element is not an idmXML root.
    """

    def __init__(self, message: str, source: str | None = None) -> None:
        self.source = source
        super().__init__(f"{source}: {message}" if source else message)
