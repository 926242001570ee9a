"""Text extraction for attached documents.

Supports PDF (pypdf), Word .docx (python-docx), Excel .xlsx (openpyxl), CSV,
plain text and Markdown. All parsers are synchronous; callers run them in a
worker thread.
"""

import base64
import binascii
import csv
import io
import logging
from dataclasses import dataclass, field
from pathlib import PurePath

import docx
import openpyxl
from pypdf import PdfReader
from pypdf.errors import PdfReadError

from agent_hums.constants import MAX_SPREADSHEET_ROWS, SUPPORTED_DOCUMENT_EXTENSIONS
from agent_hums.errors import DocumentParseError

logger = logging.getLogger(__name__)

MAX_SPREADSHEET_COLUMNS = 30


@dataclass
class ExtractedText:
    text: str
    pages: int | None = None
    sheets: list[str] = field(default_factory=list)
    headers: list[str] = field(default_factory=list)


def get_file_extension(file_name: str) -> str:
    return PurePath(file_name).suffix.lower()


def is_supported(file_name: str) -> bool:
    return get_file_extension(file_name) in SUPPORTED_DOCUMENT_EXTENSIONS


def decode_base64(content_base64: str) -> bytes:
    # Browsers send data URLs ("data:application/pdf;base64,....").
    if content_base64.startswith("data:") and "," in content_base64:
        content_base64 = content_base64.split(",", 1)[1]
    try:
        return base64.b64decode(content_base64, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DocumentParseError(f"Invalid base64 document content: {e}") from e


def extract_text(data: bytes, file_name: str) -> ExtractedText:
    """Extract plain text from a document's bytes.

    Raises:
        DocumentParseError: unsupported extension, or the file cannot be read
    """
    extension = get_file_extension(file_name)
    parser = _PARSERS.get(extension)
    if parser is None:
        raise DocumentParseError(
            f"Unsupported file format: {extension or '(none)'}; "
            f"supported: {', '.join(SUPPORTED_DOCUMENT_EXTENSIONS)}"
        )
    try:
        result = parser(data)
    except DocumentParseError:
        raise
    except Exception as e:
        raise DocumentParseError(f"Failed to extract content from {extension} file: {e}") from e
    result.text = result.text.strip()
    logger.info("Extracted %d chars from %s", len(result.text), file_name)
    return result


def _extract_pdf(data: bytes) -> ExtractedText:
    try:
        reader = PdfReader(io.BytesIO(data))
    except PdfReadError as e:
        raise DocumentParseError(f"PDF parsing error: {e}") from e

    if reader.is_encrypted:
        raise DocumentParseError("PDF is encrypted")

    text_parts = []
    for page_num, page in enumerate(reader.pages, 1):
        try:
            page_text = page.extract_text()
        except Exception as e:
            logger.warning("Failed to extract text from page %d: %s", page_num, e)
            continue
        if page_text:
            text_parts.append(page_text)

    if not text_parts:
        raise DocumentParseError("No text extracted from PDF (may be scanned image)")

    return ExtractedText(text=_clean_text("\n\n".join(text_parts)), pages=len(reader.pages))


def _clean_text(text: str) -> str:
    """Normalize whitespace and drop page numbers and stray header/footer glyphs."""
    cleaned_lines = []
    for line in text.split("\n"):
        line = line.strip()
        if not line:
            continue
        # Page numbers
        if line.isdigit() and len(line) <= 4:
            continue
        if len(line) < 5 and not line[0].isalnum():
            continue
        cleaned_lines.append(line)

    text = "\n".join(cleaned_lines)
    while "\n\n\n" in text:
        text = text.replace("\n\n\n", "\n\n")
    return text.strip()


def _extract_docx(data: bytes) -> ExtractedText:
    document = docx.Document(io.BytesIO(data))
    parts = [p.text for p in document.paragraphs if p.text.strip()]
    for table in document.tables:
        for row in table.rows:
            cells = [cell.text.strip() for cell in row.cells]
            if any(cells):
                parts.append("| " + " | ".join(cells) + " |")
    return ExtractedText(text="\n\n".join(parts))


def _decode_text(data: bytes) -> str:
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError:
        logger.warning("Document is not valid UTF-8, decoding as latin-1")
        return data.decode("latin-1")


def _extract_plain(data: bytes) -> ExtractedText:
    return ExtractedText(text=_decode_text(data))


def _extract_csv(data: bytes) -> ExtractedText:
    reader = csv.DictReader(io.StringIO(_decode_text(data)))
    headers = [h for h in (reader.fieldnames or []) if h]
    lines = ["CSV Document Content:", "", f"Headers: {', '.join(headers)}", ""]

    row_number = 0
    for row in reader:
        if not any((value or "").strip() for value in row.values() if isinstance(value, str)):
            continue
        row_number += 1
        lines.append(f"Row {row_number}:")
        for header in headers:
            value = row.get(header)
            if value:
                lines.append(f"  {header}: {value}")
        lines.append("")
    return ExtractedText(text="\n".join(lines), headers=headers)


def _format_cell(value: object) -> str:
    if value is None:
        return ""
    return str(value).replace("|", "\\|").replace("\n", " ").strip()


def _extract_xlsx(data: bytes) -> ExtractedText:
    workbook = openpyxl.load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    try:
        sections = []
        headers: list[str] = []
        for sheet in workbook.worksheets:
            rows = []
            for row in sheet.iter_rows(values_only=True):
                cells = [_format_cell(v) for v in row[:MAX_SPREADSHEET_COLUMNS]]
                if any(cells):
                    rows.append(cells)
                if len(rows) >= MAX_SPREADSHEET_ROWS:
                    logger.info("Sheet %s truncated at %d rows", sheet.title, MAX_SPREADSHEET_ROWS)
                    break
            if not rows:
                continue

            width = max(len(r) for r in rows)
            rows = [r + [""] * (width - len(r)) for r in rows]
            if not headers:
                headers = [h for h in rows[0] if h]

            table = [
                "| " + " | ".join(rows[0]) + " |",
                "| " + " | ".join("---" for _ in range(width)) + " |",
            ]
            table.extend("| " + " | ".join(r) + " |" for r in rows[1:])
            sections.append(f"## Sheet: {sheet.title}\n\n" + "\n".join(table))
        sheet_names = list(workbook.sheetnames)
    finally:
        workbook.close()

    return ExtractedText(text="\n\n".join(sections), sheets=sheet_names, headers=headers)


_PARSERS = {
    ".pdf": _extract_pdf,
    ".docx": _extract_docx,
    ".txt": _extract_plain,
    ".md": _extract_plain,
    ".csv": _extract_csv,
    ".xlsx": _extract_xlsx,
}
