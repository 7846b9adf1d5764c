"""
Invoice PDF rendering with reportlab.

render() is a pure function of its input: same InvoiceData, same layout.
Only the fixed A4 single-page layout is supported.
"""

from datetime import datetime
from decimal import Decimal
from io import BytesIO
from typing import Optional

from pydantic import BaseModel, ConfigDict
from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas

from webinar_api.core.config import Settings

LEFT = 50
RIGHT = 545


class InvoiceData(BaseModel):
    model_config = ConfigDict(frozen=True)

    invoice_number: str
    invoice_date: datetime
    customer_name: str
    customer_email: str
    customer_company: Optional[str] = None
    item_description: str
    item_date: datetime
    amount: Decimal
    currency: str = "EUR"
    payment_method: str = "SumUp"


def format_amount(amount: Decimal, currency: str) -> str:
    symbol = "€" if currency == "EUR" else currency
    return f"{Decimal(amount):.2f} {symbol}"


class InvoiceRenderer:
    def __init__(self, settings: Settings):
        self.company_name = settings.COMPANY_NAME
        self.company_address = settings.COMPANY_ADDRESS
        self.company_siret = settings.COMPANY_SIRET
        self.company_vat = settings.COMPANY_VAT

    def render(self, data: InvoiceData) -> bytes:
        buffer = BytesIO()
        pdf = canvas.Canvas(buffer, pagesize=A4)
        _, height = A4
        pdf.setTitle(f"Invoice {data.invoice_number}")

        def y(offset: float) -> float:
            # reportlab's origin is bottom-left
            return height - offset

        # Header
        pdf.setFont("Helvetica-Bold", 20)
        pdf.drawRightString(RIGHT, y(60), "INVOICE")
        pdf.setFont("Helvetica", 10)
        pdf.drawRightString(RIGHT, y(78), f"No. {data.invoice_number}")
        pdf.drawRightString(RIGHT, y(92), f"Date: {data.invoice_date:%d/%m/%Y}")

        # Issuer
        pdf.setFont("Helvetica-Bold", 12)
        pdf.drawString(LEFT, y(130), self.company_name)
        pdf.setFont("Helvetica", 10)
        pdf.drawString(LEFT, y(145), self.company_address)
        pdf.drawString(LEFT, y(159), f"SIRET: {self.company_siret}")
        pdf.drawString(LEFT, y(173), f"VAT: {self.company_vat}")

        # Customer
        pdf.setFont("Helvetica-Bold", 10)
        pdf.drawString(LEFT, y(220), "BILLED TO:")
        pdf.setFont("Helvetica", 10)
        lines = [data.customer_name, data.customer_email]
        if data.customer_company:
            lines.append(data.customer_company)
        for index, line in enumerate(lines):
            pdf.drawString(LEFT, y(235 + index * 14), line)

        # Item table
        pdf.line(LEFT, y(300), RIGHT, y(300))
        pdf.setFont("Helvetica-Bold", 10)
        pdf.drawString(LEFT, y(320), "Description")
        pdf.drawString(300, y(320), "Date")
        pdf.drawRightString(RIGHT, y(320), "Amount")
        pdf.line(LEFT, y(328), RIGHT, y(328))

        pdf.setFont("Helvetica", 10)
        pdf.drawString(LEFT, y(345), "Webinar registration:")
        pdf.drawString(LEFT, y(360), f'"{data.item_description}"'[:60])
        pdf.drawString(300, y(345), f"{data.item_date:%d/%m/%Y %H:%M}")
        pdf.drawRightString(RIGHT, y(345), format_amount(data.amount, data.currency))
        pdf.line(LEFT, y(380), RIGHT, y(380))

        # Total
        pdf.setFont("Helvetica-Bold", 12)
        pdf.drawString(350, y(405), "TOTAL")
        pdf.drawRightString(RIGHT, y(405), format_amount(data.amount, data.currency))
        pdf.setFont("Helvetica", 8)
        pdf.drawCentredString((LEFT + RIGHT) / 2, y(435), "VAT not applicable, art. 293 B of the CGI")

        # Payment
        pdf.setFont("Helvetica", 10)
        pdf.drawString(LEFT, y(480), f"Payment method: {data.payment_method}")
        pdf.drawString(LEFT, y(494), "Payment received - no action required")

        # Footer
        pdf.setFont("Helvetica", 8)
        center = (LEFT + RIGHT) / 2
        pdf.drawCentredString(center, 70, "This invoice is an official document. Please keep it.")
        pdf.drawCentredString(center, 58, f"{self.company_name} - {self.company_address}")
        pdf.drawCentredString(center, 46, f"SIRET: {self.company_siret} - VAT: {self.company_vat}")

        pdf.showPage()
        pdf.save()
        return buffer.getvalue()
