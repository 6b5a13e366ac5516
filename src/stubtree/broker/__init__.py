"""
Message channel transport and the correlation broker.
"""

from .broker import CorrelationBroker, PendingRequest
from .channel import LocalChannel, MessageChannel, create_channel_pair

__all__ = [
    "CorrelationBroker",
    "LocalChannel",
    "MessageChannel",
    "PendingRequest",
    "create_channel_pair",
]
