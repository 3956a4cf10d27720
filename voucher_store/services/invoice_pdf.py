"""
Tax invoice PDF: build_invoice_context() -> Jinja2 (invoice_pdf.html) -> WeasyPrint -> PDF bytes.
"""
from collections.abc import Callable
from pathlib import Path

from jinja2 import Environment, FileSystemLoader

_TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"
_ENV = Environment(loader=FileSystemLoader(str(_TEMPLATES_DIR)), autoescape=True)

InvoiceRenderer = Callable[[dict], bytes]


def _money(value) -> str:
    return f"{float(value or 0):,.2f}"


_ENV.filters["money"] = _money


def render_invoice_html(context: dict) -> str:
    template = _ENV.get_template("invoice_pdf.html")
    return template.render(**context)


def render_pdf(context: dict) -> bytes:
    """Lazy WeasyPrint import: its system libraries are not needed at server start."""
    from weasyprint import HTML

    html_doc = HTML(string=render_invoice_html(context), base_url=str(_TEMPLATES_DIR))
    return html_doc.write_pdf()


def get_renderer() -> InvoiceRenderer:
    """FastAPI dependency; tests override it to skip WeasyPrint."""
    return render_pdf
