# dapurasri/services/invoice_service.py

import io
import os
from typing import List, Optional, Tuple, Union

from docx import Document
from docx.enum.text import WD_ALIGN_PARAGRAPH
from docx.shared import Inches, Pt
from PIL import Image, ImageDraw, ImageFont

from domain.models import CommittedInvoice, InvoiceKind, SalesLine, invoice_total, valid_lines
from utils.barcode import barcode_image, barcode_png
from utils.formatting import format_long_date, format_qty, format_rp, format_rupiah

InvoiceLike = Union[CommittedInvoice, InvoiceKind]

RECEIPT_WIDTH = 576  # 80mm thermal paper at 180dpi
MARGIN = 24
LINE_HEIGHT = 22
DRAFT_LABEL = "DRAFT"


def business_name() -> str:
    return os.getenv("BUSINESS_NAME") or "Dapur Asri"


def _fields(invoice: InvoiceLike) -> Tuple[Optional[str], str, str, List[SalesLine], float]:
    """(number, date, payment method, lines, total) for either shape."""
    if isinstance(invoice, CommittedInvoice):
        return (
            invoice.transaction_no,
            invoice.transaction_date,
            invoice.payment_method_name,
            invoice.lines,
            invoice.total,
        )
    return (
        None,
        invoice.transaction_date,
        invoice.payment_method_name,
        valid_lines(invoice),
        invoice_total(invoice),
    )


def invoice_filename(invoice: InvoiceLike, ext: str) -> str:
    number, date_str, _, _, _ = _fields(invoice)
    return f"invoice-{number or DRAFT_LABEL.lower()}-{date_str}.{ext}"


# ---------------------------------------------------------------------------
# Receipt image (PNG)
# ---------------------------------------------------------------------------

def _font(size: int):
    return ImageFont.load_default(size=size)


def _right(draw: ImageDraw.ImageDraw, x_right: int, y: int, text: str, font) -> None:
    draw.text((x_right - draw.textlength(text, font=font), y), text, fill="black", font=font)


def render_invoice_image(invoice: InvoiceLike) -> bytes:
    """
    Receipt-style PNG: header, line table, total, and a barcode of the
    transaction number once the invoice is committed.
    """
    number, date_str, payment_name, lines, total = _fields(invoice)
    title_font, body_font, bold_font = _font(26), _font(16), _font(20)

    code_img = barcode_image(number) if number else None
    max_code_width = RECEIPT_WIDTH - MARGIN * 2
    if code_img and code_img.width > max_code_width:
        code_img = code_img.resize((max_code_width, int(code_img.height * max_code_width / code_img.width)))
    body_rows = 4 + len(lines) * 2 + 3
    height = MARGIN * 2 + 40 + body_rows * LINE_HEIGHT + (code_img.height + 16 if code_img else 0)

    img = Image.new("RGB", (RECEIPT_WIDTH, height), "white")
    draw = ImageDraw.Draw(img)
    x_right = RECEIPT_WIDTH - MARGIN

    y = MARGIN
    name = business_name()
    draw.text(((RECEIPT_WIDTH - draw.textlength(name, font=title_font)) / 2, y), name,
              fill="black", font=title_font)
    y += 40

    draw.text((MARGIN, y), f"No: {number or DRAFT_LABEL}", fill="black", font=body_font)
    y += LINE_HEIGHT
    draw.text((MARGIN, y), f"Tanggal: {format_long_date(date_str)}", fill="black", font=body_font)
    y += LINE_HEIGHT
    if payment_name:
        draw.text((MARGIN, y), f"Metode pembayaran: {payment_name}", fill="black", font=body_font)
    y += LINE_HEIGHT
    draw.line((MARGIN, y + 8, x_right, y + 8), fill="black", width=1)
    y += LINE_HEIGHT

    for line in lines:
        draw.text((MARGIN, y), line.product_name or "(Produk)", fill="black", font=body_font)
        y += LINE_HEIGHT
        draw.text(
            (MARGIN + 16, y),
            f"{format_qty(line.quantity)} {line.unit or ''} x {format_rupiah(line.effective_price)}",
            fill="black",
            font=body_font,
        )
        _right(draw, x_right, y, format_rupiah(line.subtotal), body_font)
        y += LINE_HEIGHT

    draw.line((MARGIN, y + 8, x_right, y + 8), fill="black", width=1)
    y += LINE_HEIGHT
    draw.text((MARGIN, y), "Total", fill="black", font=bold_font)
    _right(draw, x_right, y, format_rp(total), bold_font)
    y += LINE_HEIGHT * 2

    if code_img:
        img.paste(code_img, ((RECEIPT_WIDTH - code_img.width) // 2, y))

    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


# ---------------------------------------------------------------------------
# Word document (DOCX)
# ---------------------------------------------------------------------------

def build_invoice_docx(invoice: InvoiceLike) -> bytes:
    number, date_str, payment_name, lines, total = _fields(invoice)

    doc = Document()
    heading = doc.add_heading(business_name(), level=1)
    heading.alignment = WD_ALIGN_PARAGRAPH.CENTER

    doc.add_paragraph(f"No: {number or DRAFT_LABEL}")
    doc.add_paragraph(f"Tanggal: {format_long_date(date_str)}")
    if payment_name:
        doc.add_paragraph(f"Metode pembayaran: {payment_name}")

    table = doc.add_table(rows=1, cols=4)
    table.style = "Table Grid"
    for cell, text in zip(table.rows[0].cells, ["Produk", "Qty", "Harga", "Subtotal"]):
        cell.text = text
        for run in cell.paragraphs[0].runs:
            run.bold = True

    for line in lines:
        cells = table.add_row().cells
        cells[0].text = line.product_name or "(Produk)"
        cells[1].text = f"{format_qty(line.quantity)} {line.unit or ''}".strip()
        cells[2].text = format_rp(line.effective_price)
        cells[3].text = format_rp(line.subtotal)
        for cell in cells[1:]:
            cell.paragraphs[0].alignment = WD_ALIGN_PARAGRAPH.RIGHT

    total_par = doc.add_paragraph()
    total_par.alignment = WD_ALIGN_PARAGRAPH.RIGHT
    total_run = total_par.add_run(f"Total: {format_rp(total)}")
    total_run.bold = True
    total_run.font.size = Pt(12)

    if number:
        p = doc.add_paragraph()
        p.alignment = WD_ALIGN_PARAGRAPH.CENTER
        p.add_run().add_picture(io.BytesIO(barcode_png(number)), width=Inches(1.5))

    buf = io.BytesIO()
    doc.save(buf)
    return buf.getvalue()
