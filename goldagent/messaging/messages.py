"""Structured message models for GoldAgent's console output.

Pydantic models that decouple message content from presentation.
NO Rich markup should be embedded in any string fields; the renderer
decides how to display them.
"""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field


class MessageLevel(str, Enum):
    """Severity level for text messages."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    SUCCESS = "success"


class TextMessage(BaseModel):
    """Simple text message with a severity level. Text must be plain, no markup!"""

    level: MessageLevel = Field(description="Severity level of this message")
    text: str = Field(description="Plain text content - NO Rich markup allowed")
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When this message was created (UTC)",
    )

    model_config = {"frozen": True, "extra": "forbid"}
