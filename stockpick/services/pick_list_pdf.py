from __future__ import annotations

import os
from typing import Dict, List

from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas

from stockpick.models import Order, OrderItem, Product
from stockpick.utils.formatters import ordered_text, short_date, status_text


def generate_pick_list_pdf(
    order: Order,
    items: List[OrderItem],
    products: Dict[str, Product],
    export_dir: str,
) -> str:
    """Printable pick list: one row per order line, sorted by brand and name."""
    os.makedirs(export_dir, exist_ok=True)

    filename = f"pick_list_{order.label}.pdf"
    path = os.path.join(export_dir, filename)

    def sort_key(it: OrderItem):
        p = products.get(it.product_id)
        return ((p.brand if p else "").lower(), (p.name if p else it.product_id).lower())

    c = canvas.Canvas(path, pagesize=A4)
    w, h = A4

    y = h - 50
    c.setFont("Helvetica-Bold", 14)
    c.drawString(40, y, f"PICK LIST {order.label}")
    y -= 20

    c.setFont("Helvetica", 11)
    c.drawString(40, y, f"Store: {order.store_name}   Ordered by: {order.created_by_name}")
    y -= 16
    c.drawString(40, y, f"Date: {short_date(order.created_at)}   Status: {status_text(order.status)}")
    y -= 16
    if order.notes:
        c.drawString(40, y, f"Notes: {order.notes[:80]}")
        y -= 16
    y -= 8

    # header
    c.setFont("Helvetica-Bold", 10)
    c.drawString(40, y, "SKU")
    c.drawString(130, y, "Item")
    c.drawString(360, y, "Ordered")
    c.drawString(480, y, "Picked")
    y -= 10
    c.line(40, y, 550, y)
    y -= 16

    c.setFont("Helvetica", 10)
    for it in sorted(items, key=sort_key):
        p = products.get(it.product_id)
        item_name = f"{p.brand} {p.name}" if p else "unknown product"
        c.drawString(40, y, it.product_id[:14])
        c.drawString(130, y, item_name[:38])
        c.drawString(360, y, ordered_text(it)[:22])
        c.rect(480, y - 3, 60, 13)
        y -= 18
        if y < 80:
            c.showPage()
            y = h - 50
            c.setFont("Helvetica", 10)

    y -= 10
    c.line(40, y, 550, y)
    y -= 18
    c.setFont("Helvetica-Bold", 12)
    c.drawRightString(550, y, f"LINES: {len(items)}")

    c.save()
    return path
