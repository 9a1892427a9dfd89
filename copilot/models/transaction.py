"""Transaction data model"""

from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import Optional, Dict, Any
from copilot.constants import TransactionStatus


class NewTransaction(BaseModel):
    """Fields supplied when a transaction is created"""

    merchant_name: str = Field(..., min_length=1, description="Merchant name as shown to the user")
    amount: float = Field(..., gt=0, description="Transaction amount in currency units")
    category: str = Field(..., min_length=1, description="Classification tag (Shopping, Travel, ...)")
    location: Optional[str] = Field(None, description="'City, CC' for travel-like purchases")


class Transaction(NewTransaction):
    """Transaction entity as observed in the store"""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": "tx_8f2c",
                "merchant_name": "Uber Trip",
                "amount": 25.10,
                "category": "Travel",
                "location": "Tokyo, JP",
                "occurred_at": "2025-03-02T14:05:00",
                "status": "requires_verification",
                "anomaly_reason": 'Transaction location "Tokyo, JP" does not match your active travel itinerary for "Osaka, JP".',
                "ai_insight": "We noticed an Uber charge in Tokyo while your itinerary says Osaka..."
            }
        }
    )

    id: str = Field(..., description="Store-assigned identity")
    occurred_at: Optional[datetime] = Field(None, description="Creation timestamp")
    status: TransactionStatus = Field(TransactionStatus.PENDING, description="Lifecycle state")
    anomaly_reason: Optional[str] = Field(None, description="Reason set by the rule that flagged it")
    ai_insight: Optional[str] = Field(None, description="Narrative explanation or disposition note")

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "Transaction":
        """Build from a store document (id merged into the payload)"""
        return cls.model_validate(doc)

    def prompt_payload(self) -> Dict[str, Any]:
        """JSON-safe view used in LLM prompts and notification bodies"""
        return self.model_dump(mode="json", exclude={"ai_insight"})
