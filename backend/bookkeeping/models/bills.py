import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field

ZERO_UUID = uuid.UUID(int=0)


class BillStatus(str, Enum):
    pending = "pending"
    closed = "closed"


class BillFields(BaseModel):
    # Missing values fall through to the field validator so its messages apply.
    person_id: uuid.UUID = ZERO_UUID
    date: datetime | None = None
    description: str = ""
    currency: str = ""
    amount: Decimal = Decimal("0")


class CloseBillRequest(BaseModel):
    account_id: uuid.UUID
    person_account_id: uuid.UUID | None = None
    date: datetime | None = None
    fee: Decimal = Field(default=Decimal("0"))


class PostNotesRequest(BaseModel):
    post_notes: str = Field(max_length=2000)
