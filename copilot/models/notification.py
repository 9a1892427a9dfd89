"""Outbound notification record"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional


class NotificationRecord(BaseModel):
    """Mail-queue document consumed by the delivery worker"""

    recipient: str = Field(..., description="Destination address")
    subject: str = Field(..., description="Mail subject")
    body: str = Field(..., description="Plain-text body")
    related_transaction_id: Optional[str] = Field(None, description="Transaction this record is about")
    related_user_id: Optional[str] = Field(None, description="Owner of the transaction")
    created_at: datetime = Field(default_factory=datetime.now, description="Enqueue timestamp")
