from enum import Enum

from pydantic import BaseModel, Field

from vista.models.common import Timestamp


class BuyerStatus(str, Enum):
    INTERESTED = "INTERESTED"
    NEGOTIATING = "NEGOTIATING"
    PURCHASED = "PURCHASED"
    CANCELLED = "CANCELLED"


# Older call sites used these; they are rejected rather than mapped.
RETIRED_BUYER_STATUSES = {"VIEWING_SCHEDULED", "CONTRACTED"}


class Contact(BaseModel):
    email: str
    phone: str
    address: str | None = None


class Buyer(BaseModel):
    id: str
    name: str = Field(min_length=1)
    contact: Contact
    interested_apartment_ids: list[str] = Field(default_factory=list)  # unowned back-references
    status: BuyerStatus = BuyerStatus.INTERESTED
    budget: float | None = Field(default=None, ge=0)
    notes: str = ""
    assigned_agent: str | None = None
    contact_date: Timestamp | None = None
    created_at: Timestamp
    updated_at: Timestamp
