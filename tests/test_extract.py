import io

import pytest
from pypdf import PdfWriter

from synapse.extract import UnsupportedFileType, extract_text, is_supported


def _blank_pdf(pages=1):
    writer = PdfWriter()
    for _ in range(pages):
        writer.add_blank_page(width=200, height=200)
    buf = io.BytesIO()
    writer.write(buf)
    return buf.getvalue()


@pytest.mark.parametrize("content_type", [
    "text/plain",
    "text/markdown",
    "text/csv; charset=utf-8",
    "application/json",
    "application/pdf",
    "APPLICATION/PDF",
])
def test_supported_types(content_type):
    assert is_supported(content_type)


@pytest.mark.parametrize("content_type", [
    "image/png",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/octet-stream",
    "",
])
def test_unsupported_types(content_type):
    assert not is_supported(content_type)
    with pytest.raises(UnsupportedFileType):
        extract_text(b"anything", content_type)


def test_text_is_decoded_as_utf8():
    assert extract_text("Aluva – Pettah".encode("utf-8"), "text/plain; charset=utf-8") == "Aluva – Pettah"


def test_invalid_utf8_is_replaced():
    assert extract_text(b"ok \xff\xfe", "text/plain") == "ok \ufffd\ufffd"


def test_blank_pdf_yields_empty_text():
    assert extract_text(_blank_pdf(pages=2), "application/pdf") == ""


def test_malformed_pdf_raises():
    with pytest.raises(Exception):
        extract_text(b"this is not a pdf", "application/pdf")
