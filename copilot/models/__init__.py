"""Data models for the co-pilot"""

from .transaction import NewTransaction, Transaction
from .itinerary import Itinerary
from .verdict import Verdict
from .notification import NotificationRecord
from .chat_message import ChatMessage

__all__ = [
    "NewTransaction",
    "Transaction",
    "Itinerary",
    "Verdict",
    "NotificationRecord",
    "ChatMessage"
]
