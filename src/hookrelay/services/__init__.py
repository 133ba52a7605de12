# src/hookrelay/services/__init__.py
"""Relay core services."""

from .delivery_queue import DeliveryQueue
from .gateway import SendThrottle, SubscriptionGateway
from .member_cache import MemberCache
from .proxy_endpoints import ProxyEndpointManager
from .registry import ConnectionRegistry
from .relay import EventRelay, shape_message
from .rooms import RoomHub, Subscriber, SubscriberIdentity
from .runtime import RelayRuntime

__all__ = [
    "ConnectionRegistry",
    "DeliveryQueue",
    "EventRelay",
    "MemberCache",
    "ProxyEndpointManager",
    "RelayRuntime",
    "RoomHub",
    "SendThrottle",
    "Subscriber",
    "SubscriberIdentity",
    "SubscriptionGateway",
    "shape_message",
]
