"""
타입 정의 모듈

Enum 등 핵심 타입 정의
모든 Enum은 str을 상속하여 문자열 직렬화 가능
"""

from enum import Enum


class TradingMode(str, Enum):
    """거래 모드 (실거래 / 모의거래)"""

    PRODUCTION = "production"
    DEMO = "demo"


class ConnectionScope(str, Enum):
    """WebSocket 연결 범위

    PRIVATE는 로그인(인증) 필요
    """

    PUBLIC = "public"
    PRIVATE = "private"


class ConnectionState(str, Enum):
    """WebSocket 연결 상태"""

    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    AUTHENTICATING = "AUTHENTICATING"
    READY = "READY"
    CLOSING = "CLOSING"
    CLOSED = "CLOSED"  # 종료 후 최종 상태


class DropPolicy(str, Enum):
    """Sink가 가득 찼을 때의 처리 정책"""

    DROP_NEWEST = "DROP_NEWEST"  # 새 이벤트 버림 (기본)
    DROP_OLDEST = "DROP_OLDEST"  # 가장 오래된 이벤트 버리고 새 이벤트 보관


class ControlOp(str, Enum):
    """WebSocket 제어 프레임 op"""

    SUBSCRIBE = "subscribe"
    UNSUBSCRIBE = "unsubscribe"
    LOGIN = "login"
