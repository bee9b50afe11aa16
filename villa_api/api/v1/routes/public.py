from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from villa_api.db.session import get_db
from villa_api.models.villa import Villa
from villa_api.schemas.villa import VillaOut
from villa_api.services.checkout_service import find_villa

router = APIRouter(tags=["public"])


def _villa_out(v: Villa) -> VillaOut:
    return VillaOut(
        id=v.id,
        slug=v.slug,
        name=v.name,
        location=v.location or "",
        description=v.description or "",
        imageUrl=v.image_url or "",
        pricePerNight=v.price_per_night / 100,
        currency=v.currency,
        maxGuests=v.max_guests,
    )


@router.get("/public/villas", response_model=list[VillaOut])
def list_villas(location: str | None = None, guests: int | None = None, db: Session = Depends(get_db)):
    """Active villas, optionally filtered by location substring and party size."""
    q = db.query(Villa).filter(Villa.active == True)  # noqa: E712
    if location:
        q = q.filter(Villa.location.ilike(f"%{location.strip()}%"))
    if guests:
        q = q.filter(Villa.max_guests >= guests)
    return [_villa_out(v) for v in q.order_by(Villa.name.asc()).all()]


@router.get("/public/villas/{villa_id}", response_model=VillaOut)
def get_villa(villa_id: str, db: Session = Depends(get_db)):
    v = find_villa(db, villa_id)
    if not v or not v.active:
        raise HTTPException(status_code=404, detail="Villa not found")
    return _villa_out(v)
