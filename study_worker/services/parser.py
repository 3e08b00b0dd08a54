# =============================================================================
# PDF Parser — Docling Document Intelligence
# =============================================================================
#
# Turns downloaded PDF bytes into plain study text using IBM's Docling.
# Headings, paragraphs, list items and tables (as markdown) are kept in
# reading order; page headers and footers are dropped since they only add
# noise to generated cards.
#
# Conversion is CPU-bound and synchronous. Callers on the event loop run
# `parse_pdf_bytes` through `asyncio.to_thread` (see extraction.py).
#
# We return our own dataclasses (ParsedElement, ParsedDocument) instead of
# Docling types, so only this module knows about Docling.
# =============================================================================

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from io import BytesIO

from docling.datamodel.base_models import DocumentStream, InputFormat
from docling.datamodel.pipeline_options import PdfPipelineOptions
from docling.document_converter import DocumentConverter, PdfFormatOption
from docling_core.types.doc.labels import DocItemLabel

logger = logging.getLogger(__name__)

_HEADING_LABELS = (DocItemLabel.SECTION_HEADER, DocItemLabel.TITLE)
_TEXT_LABELS = (
    DocItemLabel.TEXT,
    DocItemLabel.PARAGRAPH,
    DocItemLabel.LIST_ITEM,
    DocItemLabel.CAPTION,
    DocItemLabel.FOOTNOTE,
)


@dataclass
class ParsedElement:
    """One heading, paragraph or table from the PDF, in reading order."""

    text: str
    element_type: str  # "text", "table", or "heading"
    page_number: int = 0


@dataclass
class ParsedDocument:
    elements: list[ParsedElement] = field(default_factory=list)
    page_count: int = 0
    filename: str = ""

    @property
    def text(self) -> str:
        """All element text joined with blank lines."""
        return "\n\n".join(e.text for e in self.elements if e.text)


# ---------------------------------------------------------------------------
# Docling Converter — Lazy Singleton
# ---------------------------------------------------------------------------
# Initialization loads layout models into memory (a few seconds on first
# use), so one converter is shared by every job in the process.
# ---------------------------------------------------------------------------

_converter: DocumentConverter | None = None


def _get_converter() -> DocumentConverter:
    """Lazily initialize and cache the Docling DocumentConverter."""
    global _converter
    if _converter is None:
        logger.info(
            "Initializing Docling DocumentConverter "
            "(first use, may take a few seconds)..."
        )
        pipeline_options = PdfPipelineOptions()
        pipeline_options.do_table_structure = True
        # Lecture slides and scanned handouts are common inputs
        pipeline_options.do_ocr = True

        _converter = DocumentConverter(
            format_options={
                InputFormat.PDF: PdfFormatOption(
                    pipeline_options=pipeline_options,
                ),
            }
        )
        logger.info("Docling DocumentConverter initialized")
    return _converter


def parse_pdf_bytes(data: bytes, filename: str = "document.pdf") -> ParsedDocument:
    """
    Parse an in-memory PDF.

    Args:
        data: Raw PDF bytes (already checked for the %PDF header).
        filename: Name used for logging and Docling's format detection.

    Raises:
        RuntimeError: If Docling fails to convert the document.
    """
    logger.info("Parsing PDF: %s (%d bytes)", filename, len(data))
    converter = _get_converter()

    try:
        result = converter.convert(DocumentStream(name=filename, stream=BytesIO(data)))
    except Exception as exc:
        raise RuntimeError(f"Docling failed to parse '{filename}': {exc}") from exc

    document = result.document
    elements: list[ParsedElement] = []
    pages_seen: set[int] = set()

    for item, _level in document.iterate_items():
        page_no = item.prov[0].page_no if getattr(item, "prov", None) else 0
        pages_seen.add(page_no)
        label = getattr(item, "label", None)

        if label in _HEADING_LABELS:
            element_type = "heading"
            text = getattr(item, "text", "").strip()
        elif label == DocItemLabel.TABLE:
            element_type = "table"
            text = _table_to_markdown(item, document)
        elif label in _TEXT_LABELS:
            element_type = "text"
            text = getattr(item, "text", "").strip()
        else:
            continue

        if text:
            elements.append(ParsedElement(
                text=text, element_type=element_type, page_number=page_no,
            ))

    page_count = max(pages_seen) if pages_seen - {0} else 0
    parsed = ParsedDocument(elements=elements, page_count=page_count, filename=filename)

    logger.info(
        "Parsed '%s': %d elements, %d pages, %d characters",
        filename, len(elements), page_count, len(parsed.text),
    )
    return parsed


def _table_to_markdown(table_item: object, document: object) -> str:
    """Export a Docling table as markdown, falling back to its plain text."""
    try:
        if hasattr(table_item, "export_to_markdown"):
            return table_item.export_to_markdown(doc=document).strip()
    except Exception as exc:
        logger.warning("Table export to markdown failed: %s", exc)

    text = getattr(table_item, "text", "")
    return text.strip() if text else ""
