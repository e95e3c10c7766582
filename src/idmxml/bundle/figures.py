"""
Figure payloads at the bundle boundary.

The writer only emits ``filePath`` references. A bundler (ZIP packager,
server upload, ...) uses :func:`collect_figure_payloads` to learn which
bytes belong at which path, and hands bytes read back from a bundle to
:func:`restore_figure_data` after decoding.
"""

from __future__ import annotations

import logging
from pathlib import PurePosixPath
from typing import Mapping

from ..models.document import IdmDocument
from ..models.exchange import Figure

logger = logging.getLogger(__name__)


def collect_figure_payloads(document: IdmDocument) -> dict[str, bytes]:
    """``{reference_path: bytes}`` for every inline figure in the document."""
    payloads: dict[str, bytes] = {}
    for _, _, figure in document.iter_figures():
        if figure.data is None:
            continue
        path = figure.reference_path()
        if path in payloads and payloads[path] != figure.data:
            logger.warning("Two different figures share the path %s; keeping the first", path)
            continue
        payloads[path] = figure.data
    return payloads


def restore_figure_data(document: IdmDocument, payloads: Mapping[str, bytes]) -> int:
    """
    Replace path-only figures by inline ones when ``payloads`` has their
    bytes. The figure id is taken from the file name, so the next save
    writes the same path. Returns the number of figures restored; unknown
    paths stay references.
    """
    restored = 0
    for figures, index, figure in list(document.iter_figures()):
        if figure.file_path is None or figure.file_path not in payloads:
            continue
        data = payloads[figure.file_path]
        if not data:
            logger.warning("Empty payload for %s; figure left as a reference", figure.file_path)
            continue
        inline = Figure(
            id=PurePosixPath(figure.file_path).stem or figure.id,
            caption=figure.caption,
            mime_type=figure.mime_type,
            data=data,
        )
        if inline.reference_path() != figure.file_path:
            logger.debug("Figure %s will be written as %s", figure.file_path, inline.reference_path())
        figures[index] = inline
        restored += 1
    return restored
