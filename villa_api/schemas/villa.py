from pydantic import BaseModel


class VillaOut(BaseModel):
    id: str
    slug: str
    name: str
    location: str
    description: str = ""
    imageUrl: str = ""
    pricePerNight: float
    currency: str
    maxGuests: int
