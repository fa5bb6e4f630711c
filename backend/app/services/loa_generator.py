"""
Porting Letter of Authorization (LOA) generation

HTML is rendered from Jinja2 templates and converted to PDF with xhtml2pdf.
"""
import base64
import io
import re
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from xhtml2pdf import pisa

from app.core.config import get_settings
from app.core.logging_config import LoggingConfig
from app.core.templates import render_template

logger = LoggingConfig.get_logger(__name__)

MIN_PHONE_ROWS = 4


class PdfGenerationError(Exception):
    """Raised when HTML cannot be rendered to PDF"""
    pass


def html_to_pdf(html: str) -> bytes:
    """Render an HTML document to PDF bytes"""
    buffer = io.BytesIO()
    try:
        status = pisa.CreatePDF(src=html, dest=buffer, encoding="utf-8")
    except Exception as e:
        raise PdfGenerationError(f"PDF rendering failed: {e}") from e

    if status.err:
        raise PdfGenerationError(f"PDF rendering failed with {status.err} error(s)")

    return buffer.getvalue()


def _entry_number(entry: Dict[str, Any]) -> str:
    return entry.get("number") or entry.get("phone_number") or ""


def _entry_provider(entry: Dict[str, Any]) -> str:
    return entry.get("provider") or entry.get("service_provider") or ""


def _loa_customer(customer: Dict[str, Any]) -> Dict[str, str]:
    """Map payment/shipping style fields onto the LOA customer fields"""
    return {
        "first_name": customer.get("first_name") or "",
        "last_name": customer.get("last_name") or "",
        "company": customer.get("company") or customer.get("business_name") or "",
        "address": customer.get("address") or customer.get("shipping_address") or "",
        "city": customer.get("city") or customer.get("shipping_city") or "",
        "state": customer.get("state") or customer.get("shipping_state") or "",
        "zip": customer.get("zip") or customer.get("shipping_zip") or "",
    }


class PortingLOAGenerator:
    """Builds a pre-filled porting LOA for a customer and the numbers to port"""

    def __init__(
        self,
        customer_data: Dict[str, Any],
        phone_numbers: Optional[List[Dict[str, Any]]] = None,
        company_name: Optional[str] = None
    ):
        self.customer_data = customer_data or {}
        self.phone_numbers = phone_numbers or []
        self.company_name = company_name or get_settings().loa_company_name

    def build_html(self) -> str:
        rows = [
            {"number": _entry_number(entry), "provider": _entry_provider(entry)}
            for entry in self.phone_numbers
        ]
        while len(rows) < MIN_PHONE_ROWS:
            rows.append({"number": "", "provider": ""})

        return render_template(
            "porting_loa.html",
            {
                "company_name": self.company_name,
                "customer": _loa_customer(self.customer_data),
                "phone_rows": rows,
                "min_rows": MIN_PHONE_ROWS,
            }
        )

    def generate_filename(self, today: Optional[date] = None) -> str:
        last_name = re.sub(r"[^a-zA-Z0-9]", "", self.customer_data.get("last_name") or "") or "Customer"
        today = today or date.today()
        return f"Porting_LOA_{last_name}_{today.strftime('%Y-%m-%d')}.pdf"

    def generate(self) -> Dict[str, Any]:
        """
        Generate the LOA PDF

        Returns:
            dict with success, pdf (bytes), filename and error
        """
        try:
            pdf = html_to_pdf(self.build_html())
        except PdfGenerationError as e:
            logger.error(f"LOA generation failed: {e}")
            return {"success": False, "pdf": None, "filename": None, "error": str(e)}

        return {"success": True, "pdf": pdf, "filename": self.generate_filename(), "error": None}

    def save_to_file(self, directory: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
        """Write the PDF to ``directory``, defaulting to the configured PDF storage directory"""
        result = self.generate()
        if not result["success"]:
            return {"success": False, "filepath": None, "filename": None, "error": result["error"]}

        if directory is None:
            settings = get_settings()
            directory = Path(settings.pdf_storage_dir)
            if not directory.is_absolute():
                directory = settings.project_root / directory

        try:
            directory = Path(directory)
            directory.mkdir(parents=True, exist_ok=True)
            filepath = directory / result["filename"]
            filepath.write_bytes(result["pdf"])
        except OSError as e:
            logger.error(f"Failed to save LOA PDF: {e}", extra={"directory": str(directory)})
            return {
                "success": False,
                "filepath": None,
                "filename": None,
                "error": f"Failed to save PDF: {e}",
            }

        return {"success": True, "filepath": str(filepath), "filename": result["filename"], "error": None}

    def get_base64(self) -> Dict[str, Any]:
        """PDF as base64 (e-mail attachments)"""
        result = self.generate()
        if not result["success"]:
            return {"success": False, "base64": None, "filename": None, "error": result["error"]}

        return {
            "success": True,
            "base64": base64.b64encode(result["pdf"]).decode("ascii"),
            "filename": result["filename"],
            "error": None,
        }


def render_porting_email(customer: Dict[str, Any], numbers: List[Dict[str, Any]]) -> str:
    """HTML body of the porting LOA notification e-mail"""
    return render_template(
        "porting_email.html",
        {"customer": customer, "numbers": numbers or []},
    )


def render_signed_loa(
    customer: Dict[str, Any],
    numbers: List[Dict[str, Any]],
    printed_name: str,
    signed_date: Optional[str] = None,
    signature: Optional[str] = None,
    business_name: str = "",
    company_name: Optional[str] = None
) -> str:
    """
    HTML of a signed LOA

    Args:
        customer: payment info (first/last name, shipping address)
        numbers: entries with phone_number and service_provider
        printed_name: signer's printed name
        signed_date: date shown next to the signature (defaults to today)
        signature: signature image as a data URI
    """
    return render_template(
        "loa_signed.html",
        {
            "company_name": company_name or get_settings().loa_company_name,
            "customer": _loa_customer(customer or {}),
            "business_name": business_name,
            "numbers": numbers or [],
            "printed_name": printed_name,
            "signed_date": signed_date or datetime.now().strftime("%Y-%m-%d"),
            "signature": signature,
        }
    )
