from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response
from sqlalchemy.orm import Session
from villa_api.db.session import get_db
from villa_api.models.booking import Booking
from villa_api.services.booking_service import booking_to_dict
from villa_api.services.confirmation_service import render_confirmation_pdf_bytes

router = APIRouter(tags=["bookings"])


def _by_ref(db: Session, booking_ref: str) -> Booking:
    b = db.query(Booking).filter(Booking.booking_ref == booking_ref.strip().upper()).first()
    if not b:
        raise HTTPException(status_code=404, detail="Not found")
    return b


@router.get("/public/bookings/{booking_ref}")
def get_booking(booking_ref: str, db: Session = Depends(get_db)):
    out = booking_to_dict(_by_ref(db, booking_ref))
    # internal fields stay out of the public view
    out.pop("id", None)
    out.pop("version", None)
    return out


@router.get("/public/bookings/{booking_ref}/confirmation.pdf")
def download_confirmation(booking_ref: str, db: Session = Depends(get_db)):
    b = _by_ref(db, booking_ref)
    if b.booking_status == "cancelled":
        raise HTTPException(status_code=409, detail="Booking was cancelled")
    pdf = render_confirmation_pdf_bytes(b)
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{b.booking_ref}.pdf"'},
    )
