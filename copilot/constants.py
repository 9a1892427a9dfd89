"""Constants and enums for the co-pilot"""

from enum import Enum


class TransactionStatus(str, Enum):
    """Transaction lifecycle states"""
    PENDING = "pending"
    ANALYZING = "analyzing"
    REQUIRES_VERIFICATION = "requires_verification"
    VERIFIED = "verified"
    ERROR = "error"


class LifecycleEvent(str, Enum):
    """Events that move a transaction through its lifecycle"""
    NOT_ANOMALOUS = "not_anomalous"
    ANOMALOUS = "anomalous"
    ENRICHMENT_SUCCEEDED = "enrichment_succeeded"
    ENRICHMENT_FAILED = "enrichment_failed"
    USER_CONFIRMED = "user_confirmed"
    USER_REJECTED = "user_rejected"


class ChatRole(str, Enum):
    USER = "user"
    MODEL = "model"


class NotificationReason(str, Enum):
    USER_REJECTED = "user_rejected"
    TEST_ANOMALY = "test_anomaly"


# Rule defaults (frozen contract, overridable only through config)
DEFAULT_AMOUNT_THRESHOLD = 900.0
DEFAULT_FRAUD_TOKEN = "fraudulent"
TRAVEL_CATEGORY = "Travel"

# Disposition notes written to ai_insight
ENRICHMENT_FAILURE_NOTE = "An error occurred during analysis."
MANUAL_CONFIRMATION_NOTE = "Manually verified by user."
USER_REJECTION_NOTE = "User marked as fraudulent."
CHAT_FALLBACK_REPLY = "Sorry, I'm having trouble connecting. Please try again."

# Store layout
ITINERARY_DOC_ID = "main"

# HTTP timeout for the enrichment endpoint
LLM_TIMEOUT_SECONDS = 30
