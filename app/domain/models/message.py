# app/domain/models/message.py
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.domain.models.document import DocumentFamily


def new_message_id() -> str:
    return uuid.uuid4().hex


class Message(BaseModel):
    """Sobre inmutable que viaja por los canales del broker."""
    message_id: str = Field(default_factory=new_message_id)
    document_id: int
    family: DocumentFamily
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    payload: Dict[str, Any] = Field(default_factory=dict)
    status: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @property
    def partition_key(self) -> str:
        return str(self.document_id)


class Channel(str, Enum):
    REQUESTS = "requests"
    PROCESSING = "processing"
    RESPONSES = "responses"
    FAILED = "failed"


def channel_name(family: DocumentFamily, channel: Channel) -> str:
    """Ej. `invoice-requests`, `carrier-waybill-failed`."""
    return f"{DocumentFamily(family).value}-{Channel(channel).value}"


class TerminalStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
