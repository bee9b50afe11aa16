from __future__ import annotations

import io
import logging
from datetime import datetime, timezone

from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas
from sqlalchemy.orm import Session

from villa_api.core.config import settings
from villa_api.models.booking import Booking
from villa_api.services.email_service import queue_email
from villa_api.services.pricing import format_money

logger = logging.getLogger(__name__)


def render_confirmation_pdf_bytes(b: Booking) -> bytes:
    """Return an A4 PDF confirmation built from the persisted booking. Pure function."""
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=A4)
    _, h = A4

    c.setFont("Helvetica-Bold", 18)
    c.drawString(40, h - 60, "Booking Confirmation")
    c.setFont("Helvetica", 11)
    c.drawString(40, h - 80, f"Booking Reference: {b.booking_ref}")

    c.setFont("Helvetica-Bold", 12)
    c.drawString(40, h - 115, "Guest")
    c.setFont("Helvetica", 11)
    c.drawString(40, h - 133, b.guest_name or "(Not provided)")
    c.drawString(40, h - 149, b.guest_email or "")

    c.setFont("Helvetica-Bold", 12)
    c.drawString(40, h - 185, "Stay")
    c.setFont("Helvetica", 11)
    c.drawString(40, h - 203, f"Villa:     {b.villa_name}")
    c.drawString(40, h - 219, f"Check-in:  {b.check_in.isoformat()}")
    c.drawString(40, h - 235, f"Check-out: {b.check_out.isoformat()}")
    c.drawString(40, h - 251, f"Nights:    {b.nights}")
    c.drawString(40, h - 267, f"Guests:    {b.guests}")

    c.setFont("Helvetica-Bold", 12)
    c.drawString(40, h - 305, "Payment")
    c.setFont("Helvetica", 11)
    c.drawString(40, h - 323, f"Total:     {format_money(b.total_amount, b.currency)}")
    c.drawString(40, h - 339, f"Paid:      {format_money(b.deposit_amount, b.currency)} ({b.deposit_percentage}%)")
    c.drawString(40, h - 355, f"Remaining: {format_money(b.remaining_amount, b.currency)}")
    c.drawString(40, h - 371, f"Status:    {b.booking_status} / {b.payment_status}")

    c.setFont("Helvetica", 9)
    c.drawString(40, 40, "Amounts reflect the payment confirmed by our payment provider.")
    c.drawString(40, 26, f"Generated: {datetime.now(timezone.utc).isoformat()}")

    c.showPage()
    c.save()
    return buf.getvalue()


def confirmation_email_body(b: Booking) -> str:
    lines = [
        f"Thank you for booking {b.villa_name}.",
        "",
        f"Booking reference: {b.booking_ref}",
        f"Dates: {b.check_in.isoformat()} to {b.check_out.isoformat()} ({b.nights} night{'s' if b.nights != 1 else ''})",
        f"Guests: {b.guests}",
        f"Total: {format_money(b.total_amount, b.currency)}",
        f"Paid today: {format_money(b.deposit_amount, b.currency)}",
    ]
    if b.remaining_amount:
        lines.append(f"Balance due before arrival: {format_money(b.remaining_amount, b.currency)}")
    if settings.PUBLIC_SITE_URL:
        lines += ["", f"Manage your booking: {settings.PUBLIC_SITE_URL.rstrip('/')}/bookings/{b.booking_ref}"]
    return "\n".join(lines) + "\n"


def send_booking_confirmation(db: Session, b: Booking) -> str | None:
    if not b.guest_email:
        logger.info("booking %s has no guest email; confirmation skipped", b.booking_ref)
        return None
    pdf = render_confirmation_pdf_bytes(b)
    return queue_email(
        db,
        b.guest_email,
        f"Booking confirmed: {b.villa_name} ({b.booking_ref})",
        confirmation_email_body(b),
        related_booking_ref=b.booking_ref,
        attachments=[(f"{b.booking_ref}.pdf", pdf, "application/pdf")],
    )
