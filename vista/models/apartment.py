from enum import Enum

from pydantic import BaseModel, Field

from vista.models.common import Timestamp


class ApartmentStatus(str, Enum):
    AVAILABLE = "AVAILABLE"
    RESERVED = "RESERVED"
    SOLD = "SOLD"
    UNDER_CONSTRUCTION = "UNDER_CONSTRUCTION"


class Apartment(BaseModel):
    id: str
    floor_id: str = Field(min_length=1)
    lot_number: str = Field(min_length=1)  # 'A101', unique within its floor
    type: str = ""  # studio, 2BR, penthouse
    area: float = Field(gt=0)
    price: float = Field(ge=0)
    status: ApartmentStatus = ApartmentStatus.AVAILABLE
    description: str = ""
    media_urls: list[str] = Field(default_factory=list)
    model_url: str | None = None
    created_at: Timestamp
    updated_at: Timestamp
