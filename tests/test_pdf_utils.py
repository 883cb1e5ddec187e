import pytest

from downtime_app.main import pdf_utils


def _fail(message):
    def render(html, base_url=None):
        raise pdf_utils.PdfGenerationError(message)

    return render


def test_weasyprint_output_is_used_first(monkeypatch):
    monkeypatch.setattr(pdf_utils, "_render_with_weasyprint", lambda html, base_url=None: b"weasy")
    monkeypatch.setattr(pdf_utils, "_render_with_wkhtmltopdf", _fail("unused"))

    assert pdf_utils.render_html_to_pdf("<p>x</p>") == b"weasy"


def test_falls_back_to_wkhtmltopdf(monkeypatch):
    monkeypatch.setattr(pdf_utils, "_render_with_weasyprint", _fail("no pango"))
    monkeypatch.setattr(pdf_utils, "_render_with_wkhtmltopdf", lambda html, base_url=None: b"wk")

    assert pdf_utils.render_html_to_pdf("<p>x</p>") == b"wk"


def test_reports_both_failures(monkeypatch):
    monkeypatch.setattr(pdf_utils, "_render_with_weasyprint", _fail("no pango."))
    monkeypatch.setattr(pdf_utils, "_render_with_wkhtmltopdf", _fail("no wkhtmltopdf."))

    with pytest.raises(pdf_utils.PdfGenerationError) as excinfo:
        pdf_utils.render_html_to_pdf("<p>x</p>")

    assert str(excinfo.value) == "no pango. no wkhtmltopdf."


def test_wkhtmltopdf_command_from_environment(monkeypatch):
    monkeypatch.setenv("WKHTMLTOPDF_CMD", "/opt/bin/wkhtmltopdf")

    assert pdf_utils._configured_wkhtmltopdf_command() == "/opt/bin/wkhtmltopdf"
