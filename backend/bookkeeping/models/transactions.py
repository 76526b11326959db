import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict

from bookkeeping.models.bills import ZERO_UUID


class TransactionFields(BaseModel):
    account_id: uuid.UUID = ZERO_UUID
    person_id: uuid.UUID = ZERO_UUID
    person_account_id: uuid.UUID | None = None
    date: datetime | None = None
    amount: Decimal = Decimal("0")
    description: str = ""


class RevertRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    date: datetime | None = None
