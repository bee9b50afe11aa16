from typing import List, Optional
from pydantic import BaseModel


class BookingOut(BaseModel):
    id: str
    bookingRef: str
    villaId: str
    villaName: str
    checkIn: str
    checkOut: str
    nights: int
    guests: int
    guestEmail: str = ""
    guestName: str = ""
    currency: str = "USD"
    totalAmount: float
    depositAmount: float
    depositPercentage: int
    remainingAmount: float
    bookingStatus: str
    paymentStatus: str
    version: int
    createdAt: Optional[str] = None
    updatedAt: Optional[str] = None


class BookingList(BaseModel):
    total: int
    items: List[BookingOut]


class BookingStatusUpdate(BaseModel):
    status: str
    version: int        # value read by the editor; stale values are rejected
    note: str = ""
