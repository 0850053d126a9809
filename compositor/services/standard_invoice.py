"""Built-in A4 invoice layout used by bulk jobs submitted without a template."""

import io
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from reportlab.lib.colors import black
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfgen import canvas

from compositor.core.ingest import AMOUNT_COLUMNS, DESCRIPTION_COLUMNS, SUPPLIER_NAME_COLUMNS, first_present
from compositor.services.invoices import generate_invoice_number, parse_amount, parse_date
from compositor.services.renderer import RenderedArtifact

PAGE_SIZE = (595.28, 841.89)  # A4 in points
MARGIN = 50
REGULAR = "Helvetica"
BOLD = "Helvetica-Bold"


@dataclass
class StandardInvoiceLine:
    code: str
    description: str
    price: float
    qty: float = 1
    tax_rate: float = 0
    discount_rate: float = 0

    @property
    def gross(self) -> float:
        return self.price * self.qty

    @property
    def discount(self) -> float:
        return self.gross * self.discount_rate / 100

    @property
    def tax(self) -> float:
        return (self.gross - self.discount) * self.tax_rate / 100

    @property
    def total(self) -> float:
        return self.gross - self.discount


@dataclass
class StandardInvoiceSummary:
    gross_total: float
    discount_total: float
    total_with_discount: float
    tax_total: float
    net_total: float


@dataclass
class IssuerInfo:
    name: str
    address: str = ""
    phone: str = ""
    email: str = ""
    registration_number: str = ""


@dataclass
class StandardInvoiceData:
    issuer: IssuerInfo
    client_name: str
    invoice_number: str
    issue_date: datetime
    client_tax_id: str = ""
    client_address: str = ""
    due_date: datetime | None = None
    currency: str = "USD"
    lines: list[StandardInvoiceLine] = field(default_factory=list)

    @property
    def summary(self) -> StandardInvoiceSummary:
        gross = sum(line.gross for line in self.lines)
        discount = sum(line.discount for line in self.lines)
        tax = sum(line.tax for line in self.lines)
        return StandardInvoiceSummary(
            gross_total=gross,
            discount_total=discount,
            total_with_discount=gross - discount,
            tax_total=tax,
            net_total=gross - discount + tax,
        )


def _parse_lines(row: dict[str, Any]) -> list[StandardInvoiceLine]:
    raw = row.get("lines")
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError:
            raw = None

    if isinstance(raw, list):
        return [
            StandardInvoiceLine(
                code=str(item.get("code", "")),
                description=str(item.get("description", "")),
                price=parse_amount(item.get("price")),
                qty=parse_amount(item.get("qty", 1)) or 1,
                tax_rate=parse_amount(item.get("tax_rate", item.get("taxRate"))),
                discount_rate=parse_amount(item.get("discount_rate", item.get("discountRate"))),
            )
            for item in raw
            if isinstance(item, dict)
        ]

    description = first_present(row, DESCRIPTION_COLUMNS) or "Services"
    return [
        StandardInvoiceLine(
            code=str(row.get("code", "")),
            description=str(description),
            price=parse_amount(first_present(row, AMOUNT_COLUMNS)),
        )
    ]


def invoice_data_from_row(row: dict[str, Any], issuer: IssuerInfo) -> StandardInvoiceData:
    """Build invoice data from a submitted row; ``ValueError`` if no client is named."""
    client = first_present(row, ("client_name",) + SUPPLIER_NAME_COLUMNS)
    if not client:
        raise ValueError("Row has no client_name or supplier_name")
    return StandardInvoiceData(
        issuer=issuer,
        client_name=str(client),
        client_tax_id=str(row.get("client_tax_id") or row.get("client_nif") or ""),
        client_address=str(row.get("client_address") or ""),
        invoice_number=str(row.get("invoice_number") or generate_invoice_number()),
        issue_date=parse_date(row.get("issue_date")) or datetime.now(timezone.utc),
        due_date=parse_date(row.get("due_date")),
        currency=str(row.get("currency") or "USD"),
        lines=_parse_lines(row),
    )


def _money(value: float, currency: str) -> str:
    return f"{value:,.2f} {currency}"


def _text(c: canvas.Canvas, text: str, x: float, y: float, size: float = 9, bold: bool = False, align: str = "left") -> None:
    if not text:
        return
    font = BOLD if bold else REGULAR
    width = pdfmetrics.stringWidth(text, font, size)
    if align == "right":
        x -= width
    elif align == "center":
        x -= width / 2
    c.setFont(font, size)
    c.drawString(x, y, text)


def _rule(c: canvas.Canvas, y: float, x1: float = MARGIN, x2: float | None = None, thickness: float = 1) -> None:
    c.setLineWidth(thickness)
    c.line(x1, y, x2 if x2 is not None else PAGE_SIZE[0] - MARGIN, y)


def render_standard_invoice(data: StandardInvoiceData) -> RenderedArtifact:
    """Draw the invoice on a single A4 page."""
    width, height = PAGE_SIZE
    packet = io.BytesIO()
    c = canvas.Canvas(packet, pagesize=PAGE_SIZE)
    c.setFillColor(black)
    c.setStrokeColor(black)

    # ── Issuer (left) and client (right) ──
    y = height - 110
    _text(c, data.issuer.name, MARGIN, y, 10, bold=True)
    for line in (
        data.issuer.address,
        f"Tel: {data.issuer.phone}" if data.issuer.phone else "",
        f"E-mail: {data.issuer.email}" if data.issuer.email else "",
        f"Tax ID: {data.issuer.registration_number}" if data.issuer.registration_number else "",
    ):
        if line:
            y -= 12
            _text(c, line, MARGIN, y)

    client_y = height - 120
    _text(c, "Bill to", 350, client_y)
    client_y -= 12
    _text(c, data.client_name.upper(), 350, client_y, 10, bold=True)
    if data.client_address:
        client_y -= 12
        _text(c, data.client_address.upper(), 350, client_y)

    # ── Title and document info ──
    y -= 30
    _text(c, f"Invoice {data.invoice_number}", MARGIN, y, 11, bold=True)
    y -= 5
    _rule(c, y, thickness=2)
    y -= 15

    info_x = [50, 160, 260, 400]
    for x, header in zip(info_x, ("Issue date", "Due date", "Issued at", "Client tax ID")):
        _text(c, header, x, y)
    y -= 12
    due = data.due_date or data.issue_date
    for x, value in zip(info_x, (
        data.issue_date.date().isoformat(),
        due.date().isoformat(),
        data.issue_date.strftime("%Y-%m-%d %H:%M"),
        data.client_tax_id,
    )):
        _text(c, value, x, y)
    y -= 8
    _rule(c, y)
    y -= 20

    # ── Line items ──
    item_x = [50, 130, 360, 400, 460, 500, 545]
    item_align = ["left", "left", "right", "right", "right", "right", "right"]
    _rule(c, y + 12, thickness=2)
    for x, header, align in zip(item_x, ("Code", "Description", "Price", "Qty", "Tax %", "Disc. %", "Total"), item_align):
        _text(c, header, x, y, bold=True, align=align)
    y -= 5
    _rule(c, y)
    y -= 15

    for line in data.lines:
        if line.total == 0:
            continue
        values = (
            line.code,
            line.description,
            _money(line.price, ""),
            f"{line.qty:.2f}",
            f"{line.tax_rate:.2f}",
            f"{line.discount_rate:.2f}",
            _money(line.total, ""),
        )
        for x, value, align in zip(item_x, values, item_align):
            _text(c, value.strip(), x, y, align=align)
        y -= 15

    # ── Taxes (left) and summary (right) ──
    summary = data.summary
    bottom = 250
    _rule(c, bottom + 12, thickness=2)

    tax_y = bottom
    for x, header in zip((50, 200, 300), ("Tax", "Base", "Amount")):
        _text(c, header, x, tax_y, bold=True)
    tax_y -= 5
    _rule(c, tax_y, x2=330)
    tax_y -= 15
    _text(c, "VAT", 50, tax_y)
    _text(c, _money(summary.total_with_discount, data.currency), 200, tax_y)
    _text(c, _money(summary.tax_total, data.currency), 300, tax_y)

    right_y = bottom
    _text(c, "Summary", 360, right_y, bold=True)
    right_y -= 5
    _rule(c, right_y, x1=360)
    right_y -= 15
    for label, value in (
        ("Gross total:", summary.gross_total),
        ("Discount:", summary.discount_total),
        ("Total after discount:", summary.total_with_discount),
        ("Total tax:", summary.tax_total),
    ):
        _text(c, label, 360, right_y)
        _text(c, _money(value, data.currency), 545, right_y, align="right")
        right_y -= 12
    right_y -= 5
    _rule(c, right_y, x1=360)
    right_y -= 15
    _text(c, "Total:", 360, right_y, 10, bold=True)
    _text(c, _money(summary.net_total, data.currency), 545, right_y, 10, bold=True, align="right")

    # ── Footer ──
    footer = " | ".join(part for part in (data.issuer.address, data.issuer.phone) if part)
    _text(c, footer, MARGIN, 50, 8)
    _text(c, "1 of 1", width - MARGIN, 38, 8, align="right")

    c.showPage()
    c.save()
    return RenderedArtifact(packet.getvalue(), "application/pdf", "pdf")
