from enum import Enum

from pydantic import BaseModel, Field

from vista.models.common import Timestamp


class FloorStatus(str, Enum):
    ACTIVE = "ACTIVE"
    UNDER_CONSTRUCTION = "UNDER_CONSTRUCTION"


class Hotspot(BaseModel):
    """Clickable area on a floor image pointing at an apartment. Coordinates are % of the image."""
    apartment_id: str
    x: float = Field(ge=0, le=100)
    y: float = Field(ge=0, le=100)
    width: float | None = Field(default=None, ge=0, le=100)
    height: float | None = Field(default=None, ge=0, le=100)
    label: str | None = None


class Floor(BaseModel):
    id: str
    number: int = Field(gt=0)
    name: str = Field(min_length=1)
    model_url: str | None = None
    status: FloorStatus = FloorStatus.ACTIVE
    apartment_count: int = Field(default=0, ge=0)
    top_view_hotspots: list[Hotspot] = Field(default_factory=list)
    angle_hotspots: dict[str, list[Hotspot]] = Field(default_factory=dict)  # key: panorama image number
    created_at: Timestamp
    updated_at: Timestamp
