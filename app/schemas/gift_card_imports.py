from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Union

from pydantic import BaseModel, Field

from app.schemas.gift_cards import GiftCardOut


class ImportRowIn(BaseModel):
    code: Optional[str] = Field(default=None, max_length=64)
    # validated per row by the import service so one bad row does not reject the batch
    value: Union[int, float, str]
    recipient_email: Optional[str] = Field(default=None, max_length=320)
    expires_at: Optional[datetime] = None


class ImportBatchIn(BaseModel):
    rows: List[ImportRowIn] = Field(..., min_length=1)


class ImportFailureOut(BaseModel):
    index: int
    row: ImportRowIn
    error: str
    message: str


class ImportBatchOut(BaseModel):
    succeeded: List[GiftCardOut]
    failed: List[ImportFailureOut]
