"""Render report HTML to PDF with WeasyPrint, falling back to wkhtmltopdf."""
from __future__ import annotations

import os


class PdfGenerationError(RuntimeError):
    """Raised when no PDF backend is able to render the report."""


_WEASYPRINT_MESSAGE = (
    "WeasyPrint could not render the report because its native libraries "
    "(Pango, GObject and Cairo) are missing."
)

_WKHTMLTOPDF_MESSAGE = (
    "The wkhtmltopdf fallback is unavailable. Install pdfkit and the "
    "wkhtmltopdf binary, or point WKHTMLTOPDF_CMD at it."
)


def _render_with_weasyprint(html: str, base_url: str | None = None) -> bytes:
    try:
        from weasyprint import HTML
    except (ImportError, OSError) as exc:
        raise PdfGenerationError(_WEASYPRINT_MESSAGE) from exc

    try:
        return HTML(string=html, base_url=base_url).write_pdf()
    except OSError as exc:
        raise PdfGenerationError(_WEASYPRINT_MESSAGE) from exc


def _configured_wkhtmltopdf_command() -> str | None:
    env_value = os.environ.get("WKHTMLTOPDF_CMD")
    if env_value:
        return env_value

    from flask import current_app

    try:
        return current_app.config.get("WKHTMLTOPDF_CMD")
    except RuntimeError:
        # Outside an application context.
        return None


def _render_with_wkhtmltopdf(html: str, base_url: str | None = None) -> bytes:
    try:
        import pdfkit
    except ImportError as exc:
        raise PdfGenerationError(_WKHTMLTOPDF_MESSAGE) from exc

    command = _configured_wkhtmltopdf_command()
    try:
        configuration = (
            pdfkit.configuration(wkhtmltopdf=command)
            if command
            else pdfkit.configuration()
        )
    except OSError as exc:
        raise PdfGenerationError(_WKHTMLTOPDF_MESSAGE) from exc

    options: dict[str, str | None] = {"encoding": "UTF-8", "quiet": ""}
    if base_url:
        options["--base-url"] = base_url
        options["enable-local-file-access"] = ""

    try:
        return pdfkit.from_string(html, False, options=options, configuration=configuration)
    except Exception as exc:  # pdfkit surfaces wkhtmltopdf failures as bare exceptions
        raise PdfGenerationError(_WKHTMLTOPDF_MESSAGE) from exc


def render_html_to_pdf(html: str, base_url: str | None = None) -> bytes:
    """Render HTML content to PDF bytes.

    Raises:
        PdfGenerationError: when every backend failed; the message lists the
        reason of each attempt.
    """

    try:
        return _render_with_weasyprint(html, base_url=base_url)
    except PdfGenerationError as weasyprint_error:
        try:
            return _render_with_wkhtmltopdf(html, base_url=base_url)
        except PdfGenerationError as fallback_error:
            raise PdfGenerationError(
                f"{weasyprint_error} {fallback_error}"
            ) from fallback_error
