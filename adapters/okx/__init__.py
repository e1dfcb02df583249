"""
OKX 어댑터

OKX v5 API 연동을 담당.
서명된 REST 요청과 WebSocket 구독/이벤트 분배 지원.
"""

from adapters.okx.client import OkxClient
from adapters.okx.connection import WsConnection
from adapters.okx.errors import (
    AckTimeout,
    AlreadyPendingError,
    AuthError,
    ConnectTimeout,
    DecodeDropped,
    OkxApiError,
    OkxError,
    ProtocolError,
    SinkClosed,
    TransportError,
)
from adapters.okx.models import PushEvent
from adapters.okx.rest_client import OkxRestClient
from adapters.okx.router import SubscriptionOptions, SubscriptionRouter
from adapters.okx.signer import Signer
from adapters.okx.sink import DeliverySink
from adapters.okx.topic import Topic

__all__ = [
    "OkxClient",
    "OkxRestClient",
    "WsConnection",
    "SubscriptionRouter",
    "SubscriptionOptions",
    "DeliverySink",
    "Signer",
    "Topic",
    "PushEvent",
    # Errors
    "OkxError",
    "TransportError",
    "OkxApiError",
    "AuthError",
    "ProtocolError",
    "ConnectTimeout",
    "AckTimeout",
    "AlreadyPendingError",
    "DecodeDropped",
    "SinkClosed",
]
