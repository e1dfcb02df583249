"""
OKX 어댑터 에러 정의

REST/WebSocket 공통 에러 계층.
전송 계층 실패, 인증 실패, 거래소 응답 코드 에러, 타임아웃을 구분.
"""

from typing import Any


class OkxError(Exception):
    """OKX 어댑터 에러 베이스

    구독 실패 시 라우터가 sink와 subscribed를 채움. 한 호출의 일부 토픽만
    거부되면 나머지는 살아있고 sink로 계속 전달되므로 호출자가 받아 쓰거나 해지.
    """

    sink: Any = None
    subscribed: tuple[Any, ...] = ()


class TransportError(OkxError):
    """소켓/HTTP 계층 실패 (네트워크, DNS, TLS, 연결 종료)

    이 계층에서는 재시도하지 않음. 재시도 정책은 호출자 몫.
    """
    pass


class OkxApiError(OkxError):
    """OKX API 에러

    거래소가 0이 아닌 코드를 응답했을 때 발생.
    """

    def __init__(self, code: str | None, message: str):
        self.code = code
        self.message = message
        super().__init__(f"OKX API Error [{code}]: {message}")


class AuthError(OkxApiError):
    """인증 실패 (서명 거부, 로그인 실패, 자격 증명 없음)"""
    pass


class ProtocolError(OkxApiError):
    """0이 아닌 응답 코드 또는 형식이 잘못된 응답

    HTTP 200이라도 envelope의 code가 0이 아니면 발생.
    """
    pass


class ConnectTimeout(OkxError, TimeoutError):
    """WebSocket 연결이 제한 시간 안에 READY가 되지 않음"""
    pass


class AckTimeout(OkxError, TimeoutError):
    """구독/해지 응답(ack)이 제한 시간 안에 오지 않음"""
    pass


class AlreadyPendingError(OkxError):
    """같은 토픽에 대한 제어 작업이 이미 진행 중

    구독/해지 ack가 서로 엇갈리지 않도록 토픽별로 직렬화.
    """

    def __init__(self, topic: Any):
        self.topic = topic
        super().__init__(f"이미 진행 중인 작업이 있습니다: {topic}")


class DecodeDropped(OkxError):
    """푸시 페이로드 디코딩 실패

    라우터가 잡아서 카운트/로그만 남기고 프레임을 버림.
    구독자에게는 절대 전달되지 않음.
    """
    pass


class SinkClosed(OkxError):
    """닫힌 Sink에서 읽기 시도"""
    pass
