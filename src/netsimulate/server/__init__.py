"""Connection behavior engines (server side)."""

from netsimulate.server.base import BehaviorEngine, HandlerResponse, respond
from netsimulate.server.counter import ConnectionCounter
from netsimulate.server.factory import create_engine
from netsimulate.server.h2_server import H2BehaviorEngine
from netsimulate.server.http_server import HTTPBehaviorEngine
from netsimulate.server.raw_server import (
    RAW_OK_RESPONSE,
    CleanResponseBehavior,
    MultiResponseBehavior,
    RawConnectionEngine,
    ResetBehavior,
    behavior_for,
)
from netsimulate.server.tls import build_server_ssl_context

__all__ = [
    "RAW_OK_RESPONSE",
    "BehaviorEngine",
    "CleanResponseBehavior",
    "ConnectionCounter",
    "H2BehaviorEngine",
    "HTTPBehaviorEngine",
    "HandlerResponse",
    "MultiResponseBehavior",
    "RawConnectionEngine",
    "ResetBehavior",
    "behavior_for",
    "build_server_ssl_context",
    "create_engine",
    "respond",
]
