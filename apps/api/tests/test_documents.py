import pytest

from services.documents import extract_text_from_pdf, render_text_pdf


def test_rendered_pdf_text_can_be_extracted_again():
    text = "JANE DOE\nBackend Engineer\n\nEXPERIENCE\n• Cut payment latency by 40% at Acme <fast> & cheap"

    pdf_bytes = render_text_pdf(text, title="Jane Doe Resume")

    assert pdf_bytes.startswith(b"%PDF")
    extracted = extract_text_from_pdf(pdf_bytes)
    assert "JANE DOE" in extracted
    assert "Cut payment latency" in extracted


def test_empty_text_still_renders_a_document():
    assert render_text_pdf("", title="Empty").startswith(b"%PDF")


def test_unreadable_upload_raises_value_error():
    with pytest.raises(ValueError):
        extract_text_from_pdf(b"this is not a pdf at all")
