from enum import Enum

from pydantic import BaseModel, Field

from vista.models.common import Timestamp


class PictureType(str, Enum):
    MAIN = "MAIN"
    INTERIOR = "INTERIOR"
    EXTERIOR = "EXTERIOR"
    FLOOR_PLAN = "FLOOR_PLAN"


class Picture(BaseModel):
    id: str
    apartment_id: str = Field(min_length=1)
    url: str = Field(min_length=1)
    type: PictureType = PictureType.INTERIOR
    order: int = 0
    created_at: Timestamp
