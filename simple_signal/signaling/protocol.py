"""Wire protocol shared by the session engine and the relay."""

import json
import uuid
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

DISCOVER = "simple-signal[discover]"
OFFER = "simple-signal[offer]"
SIGNAL = "simple-signal[signal]"
REJECT = "simple-signal[reject]"


def new_session_id() -> str:
    """Generate a collision-resistant session identifier."""
    return uuid.uuid4().hex


def has_sdp(signal: Any) -> bool:
    """Whether a signal payload carries a session description."""
    return isinstance(signal, dict) and bool(signal.get("sdp"))


class WireModel(BaseModel):
    """Base for wire payloads: camelCase on the wire, snake_case in Python."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True)


class DiscoverReply(WireModel):
    """Relay -> client discovery answer."""
    id: str
    discovery_data: Any = Field(None, alias="discoveryData")


class OfferRequestMessage(WireModel):
    """Client -> relay offer."""
    session_id: str = Field(alias="sessionId")
    signal: Any = None
    target: str
    metadata: Any = None


class OfferMessage(WireModel):
    """Relay -> client offer."""
    initiator: str
    session_id: str = Field(alias="sessionId")
    signal: Any = None
    metadata: Any = None


class SignalRequestMessage(WireModel):
    """Client -> relay signal."""
    session_id: str = Field(alias="sessionId")
    signal: Any = None
    target: str
    metadata: Any = None


class SignalMessage(WireModel):
    """Relay -> client signal."""
    session_id: str = Field(alias="sessionId")
    signal: Any = None
    metadata: Optional[Any] = None


class RejectRequestMessage(WireModel):
    """Client -> relay rejection."""
    session_id: str = Field(alias="sessionId")
    target: str
    metadata: Any = None


class RejectMessage(WireModel):
    """Relay -> client rejection."""
    session_id: str = Field(alias="sessionId")
    metadata: Any = None


class Frame(BaseModel):
    """A named event on a text transport."""
    event: str
    data: Any = None

    def encode(self) -> str:
        return json.dumps({"event": self.event, "data": self.data})

    @classmethod
    def decode(cls, raw) -> "Frame":
        """Parse a JSON frame.

        Raises:
            ValueError: If the frame is not valid JSON or lacks an event name
        """
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        return cls.model_validate(json.loads(raw))
