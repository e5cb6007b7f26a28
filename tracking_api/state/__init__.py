"""Estado de sesión observable y dispatcher del hilo dueño."""

from .channels import CONNECTED, DISCONNECTED, Channel, channel_for_metric
from .dispatcher import OwnerDispatcher
from .store import ChannelSnapshot, ChannelWriter, Observation, SessionStateStore

__all__ = [
    "CONNECTED",
    "DISCONNECTED",
    "Channel",
    "channel_for_metric",
    "OwnerDispatcher",
    "ChannelSnapshot",
    "ChannelWriter",
    "Observation",
    "SessionStateStore",
]
