"""Chat history message"""

from pydantic import BaseModel, Field
from datetime import datetime
from copilot.constants import ChatRole


class ChatMessage(BaseModel):
    role: ChatRole
    text: str
    created_at: datetime = Field(default_factory=datetime.now)
