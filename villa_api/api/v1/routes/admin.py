from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from villa_api.db.session import get_db
from villa_api.api.deps import require_roles
from villa_api.models.user import BOOKING_READERS, BOOKING_WRITERS, User
from villa_api.schemas.booking import BookingList, BookingOut, BookingStatusUpdate
from villa_api.services.booking_service import (
    BookingNotFound, StaleBookingError, booking_to_dict, get_booking, list_bookings, metrics_overview,
    update_booking_status,
)

router = APIRouter(tags=["admin"])


@router.get("/admin/bookings", response_model=BookingList)
def admin_list_bookings(status: str | None = None, q: str | None = None,
                        limit: int = Query(50, ge=1, le=200), offset: int = Query(0, ge=0),
                        db: Session = Depends(get_db),
                        me: User = Depends(require_roles(*BOOKING_READERS))):
    try:
        total, items = list_bookings(db, status=status, q=q, limit=limit, offset=offset)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"total": total, "items": [booking_to_dict(b) for b in items]}


@router.get("/admin/bookings/{booking_id}", response_model=BookingOut)
def admin_get_booking(booking_id: str, db: Session = Depends(get_db),
                      me: User = Depends(require_roles(*BOOKING_READERS))):
    try:
        return booking_to_dict(get_booking(db, booking_id))
    except BookingNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.patch("/admin/bookings/{booking_id}", response_model=BookingOut)
def admin_update_booking(booking_id: str, body: BookingStatusUpdate, db: Session = Depends(get_db),
                         me: User = Depends(require_roles(*BOOKING_WRITERS))):
    try:
        b = update_booking_status(db, booking_id, body.status, body.version, actor=me.email, note=body.note)
    except BookingNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except StaleBookingError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return booking_to_dict(b)


@router.get("/admin/metrics/overview")
def admin_metrics_overview(db: Session = Depends(get_db),
                           me: User = Depends(require_roles(*BOOKING_READERS))):
    return metrics_overview(db)
