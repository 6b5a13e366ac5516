"""
Wire envelopes for the message channel.

Three shapes travel over the channel in both directions:

    {"type": "serverRequest", "serverEndpoint": ..., "serverRequestId": ..., "serverRequest": payload}
    {"type": "serverResponse", "serverRequestId": ..., "serverResponse": payload}
    {"type": "serverResponse", "serverRequestId": ..., "error": "message"}

Anything else with a string `type` is a push notification addressed by that tag.
"""

from typing import Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

REQUEST_TYPE = "serverRequest"
RESPONSE_TYPE = "serverResponse"
RESERVED_TYPES = frozenset({REQUEST_TYPE, RESPONSE_TYPE})


class RequestEnvelope(BaseModel):
    type: Literal["serverRequest"] = REQUEST_TYPE
    endpoint: str = Field(alias="serverEndpoint", min_length=1)
    request_id: str = Field(alias="serverRequestId", min_length=1)
    payload: Any = Field(default=None, alias="serverRequest")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ResponseEnvelope(BaseModel):
    type: Literal["serverResponse"] = RESPONSE_TYPE
    request_id: str = Field(alias="serverRequestId", min_length=1)
    payload: Any = Field(default=None, alias="serverResponse")
    error: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


Envelope = Union[RequestEnvelope, ResponseEnvelope]


def to_wire(value: Any) -> Any:
    """Convert pydantic models (and containers of them) into JSON-ready data."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True)
    if isinstance(value, dict):
        return {k: to_wire(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_wire(v) for v in value]
    return value


def encode(envelope: Envelope) -> Dict[str, Any]:
    """Serialize an envelope; `error` is omitted from successful responses."""
    message = envelope.model_dump(mode="json", by_alias=True)
    if isinstance(envelope, ResponseEnvelope) and envelope.error is None:
        message.pop("error", None)
    return message


def push_message(message_type: str, fields: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Build a push notification; reserved envelope tags are rejected."""
    if message_type in RESERVED_TYPES:
        raise ValueError(f"'{message_type}' is reserved for request/response envelopes")
    message = {k: to_wire(v) for k, v in (fields or {}).items()}
    message["type"] = message_type
    return message
