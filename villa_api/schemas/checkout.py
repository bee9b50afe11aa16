from datetime import date
from typing import Optional
from pydantic import BaseModel, Field


class CheckoutSessionCreate(BaseModel):
    villaId: str
    villaName: str = ""
    location: str = ""
    checkIn: date
    checkOut: date
    guests: int = Field(default=2)
    pricePerNight: float = Field(gt=0, allow_inf_nan=False)   # major units as shown to the guest
    currency: str = "USD"
    depositPercentage: int = 100
    # What the browser displayed; re-derived server-side and rejected if off by more than one unit
    totalAmount: Optional[float] = Field(default=None, ge=0, allow_inf_nan=False)
    depositAmount: Optional[float] = Field(default=None, ge=0, allow_inf_nan=False)
    customerEmail: Optional[str] = None


class CheckoutSessionOut(BaseModel):
    clientSecret: str
    sessionId: str
    checkoutId: str
    nights: int
    totalAmount: float
    depositAmount: float
    remainingAmount: float
    depositPercentage: int
    currency: str
    expiresAt: Optional[str] = None


class CheckoutStatusOut(BaseModel):
    sessionId: str
    status: str                                # open, complete, expired, failed
    villaId: str
    villaName: str
    checkIn: str
    checkOut: str
    nights: int
    guests: int
    currency: str
    totalAmount: float
    depositAmount: float
    remainingAmount: float
    depositPercentage: int
    bookingRef: Optional[str] = None
    bookingStatus: Optional[str] = None
    amountCharged: Optional[float] = None
    failureReason: Optional[str] = None
