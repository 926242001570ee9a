import base64
import io
from unittest.mock import MagicMock, patch

import docx
import openpyxl
import pytest

from agent_hums.errors import DocumentParseError
from agent_hums.utils.document_parser import (
    _clean_text,
    decode_base64,
    extract_text,
    get_file_extension,
    is_supported,
)


def _docx_bytes() -> bytes:
    document = docx.Document()
    document.add_paragraph("Informe trimestral")
    document.add_paragraph("")
    document.add_paragraph("Ventas en aumento.")
    table = document.add_table(rows=2, cols=2)
    table.cell(0, 0).text = "Mes"
    table.cell(0, 1).text = "Total"
    table.cell(1, 0).text = "Enero"
    table.cell(1, 1).text = "100"
    buffer = io.BytesIO()
    document.save(buffer)
    return buffer.getvalue()


def _xlsx_bytes() -> bytes:
    workbook = openpyxl.Workbook()
    sheet = workbook.active
    sheet.title = "Ventas"
    sheet.append(["Producto", "Total"])
    sheet.append(["Laptop", 1200])
    sheet.append(["Mouse | USB", 25])
    workbook.create_sheet("Vacía")
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


class TestFileHelpers:
    def test_extension_lowercased(self):
        assert get_file_extension("Reporte.PDF") == ".pdf"
        assert get_file_extension("sin_extension") == ""

    def test_supported(self):
        assert is_supported("datos.xlsx")
        assert is_supported("notas.md")
        assert not is_supported("programa.exe")


class TestDecodeBase64:
    def test_plain(self):
        assert decode_base64(base64.b64encode(b"hola").decode()) == b"hola"

    def test_data_url(self):
        encoded = "data:text/plain;base64," + base64.b64encode(b"hola").decode()
        assert decode_base64(encoded) == b"hola"

    def test_invalid(self):
        with pytest.raises(DocumentParseError, match="Invalid base64"):
            decode_base64("esto no es base64!!")


class TestExtractText:
    def test_unsupported_extension(self):
        with pytest.raises(DocumentParseError, match="Unsupported file format"):
            extract_text(b"MZ", "programa.exe")

    def test_plain_text_is_stripped(self):
        result = extract_text("  Hola mundo\n\n".encode(), "notas.txt")
        assert result.text == "Hola mundo"

    def test_utf8_bom(self):
        assert extract_text("\ufeffTítulo".encode("utf-8"), "doc.md").text == "Título"

    def test_latin1_fallback(self):
        assert extract_text("canción".encode("latin-1"), "letra.txt").text == "canción"

    def test_csv(self):
        data = b"nombre,email\nAna,ana@example.com\n,\nLuis,luis@example.com\n"
        result = extract_text(data, "contactos.csv")

        assert result.headers == ["nombre", "email"]
        assert "Headers: nombre, email" in result.text
        assert "Row 1:\n  nombre: Ana\n  email: ana@example.com" in result.text
        assert "Row 2:\n  nombre: Luis" in result.text
        assert "Row 3:" not in result.text

    def test_docx(self):
        result = extract_text(_docx_bytes(), "informe.docx")

        assert result.text.startswith("Informe trimestral\n\nVentas en aumento.")
        assert "| Mes | Total |" in result.text
        assert "| Enero | 100 |" in result.text

    def test_xlsx(self):
        result = extract_text(_xlsx_bytes(), "ventas.xlsx")

        assert result.sheets == ["Ventas", "Vacía"]
        assert result.headers == ["Producto", "Total"]
        assert "## Sheet: Ventas" in result.text
        assert "| Producto | Total |" in result.text
        assert "| --- | --- |" in result.text
        assert "| Laptop | 1200 |" in result.text
        assert "| Mouse \\| USB | 25 |" in result.text
        assert "## Sheet: Vacía" not in result.text

    def test_corrupt_docx(self):
        with pytest.raises(DocumentParseError, match="Failed to extract"):
            extract_text(b"not a zip file", "roto.docx")


class TestExtractPdf:
    def test_pdf_pages_and_cleanup(self) -> None:
        page_one = MagicMock()
        page_one.extract_text.return_value = "Contrato de servicios\n1\n"
        page_two = MagicMock()
        page_two.extract_text.return_value = "Cláusula primera del acuerdo"
        reader = MagicMock(is_encrypted=False, pages=[page_one, page_two])

        with patch("agent_hums.utils.document_parser.PdfReader", return_value=reader):
            result = extract_text(b"%PDF-1.4", "contrato.pdf")

        assert result.pages == 2
        assert result.text == "Contrato de servicios\nCláusula primera del acuerdo"

    def test_encrypted_pdf(self) -> None:
        reader = MagicMock(is_encrypted=True)
        with patch("agent_hums.utils.document_parser.PdfReader", return_value=reader):
            with pytest.raises(DocumentParseError, match="encrypted"):
                extract_text(b"%PDF-1.4", "secreto.pdf")

    def test_scanned_pdf_without_text(self) -> None:
        page = MagicMock()
        page.extract_text.return_value = ""
        reader = MagicMock(is_encrypted=False, pages=[page])
        with patch("agent_hums.utils.document_parser.PdfReader", return_value=reader):
            with pytest.raises(DocumentParseError, match="No text extracted"):
                extract_text(b"%PDF-1.4", "escaneo.pdf")

    def test_page_failure_skipped(self) -> None:
        bad = MagicMock()
        bad.extract_text.side_effect = RuntimeError("broken font")
        good = MagicMock()
        good.extract_text.return_value = "Texto legible"
        reader = MagicMock(is_encrypted=False, pages=[bad, good])
        with patch("agent_hums.utils.document_parser.PdfReader", return_value=reader):
            assert extract_text(b"%PDF-1.4", "mixto.pdf").text == "Texto legible"


def test_clean_text_drops_page_numbers() -> None:
    assert _clean_text("Título\n\n\n12\n--\nCuerpo del texto") == "Título\nCuerpo del texto"
