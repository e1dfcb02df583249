"""
Mock WebSocket 연결

테스트용 메모리 내 연결. IWsConnection Protocol 준수.
송신 프레임을 기록하고, 선택적으로 구독/해지 ack를 자동 응답.
연결 끊김/재연결은 simulate_* 메서드로 재현.
"""

import asyncio
from typing import Any, Awaitable, Callable

from adapters.okx.errors import ConnectTimeout, TransportError
from core.types import ConnectionScope, ConnectionState

FrameCallback = Callable[[dict[str, Any]], None]
StateChangeCallback = Callable[[ConnectionState], Awaitable[None]]


class MockWsConnection:
    """Mock WebSocket 연결

    Args:
        scope: 연결 범위
        auto_ack: 구독/해지 프레임에 자동으로 ack 응답할지
        ready: 생성 직후 READY 상태로 시작할지

    사용 예시:
    ```python
    connection = MockWsConnection()
    router = SubscriptionRouter(connection)
    connection.bind(router)

    sink = await router.subscribe([topic])
    connection.push({"arg": topic.to_arg(), "data": [...]})
    ```
    """

    def __init__(
        self,
        scope: ConnectionScope = ConnectionScope.PUBLIC,
        auto_ack: bool = True,
        ready: bool = True,
    ):
        self.scope = scope
        self.auto_ack = auto_ack
        self._state = ConnectionState.READY if ready else ConnectionState.DISCONNECTED

        self.on_frame: FrameCallback | None = None
        self.on_state_change: StateChangeCallback | None = None

        # 기록
        self.sent_frames: list[dict[str, Any]] = []
        self.ensure_ready_calls = 0
        self.close_calls = 0

        # 시뮬레이션 옵션
        self.reject_topics: dict[str, tuple[str, str]] = {}
        self.fail_next_send: bool = False
        self.ready_error: Exception | None = None

    def bind(self, router: Any) -> None:
        """라우터 콜백 연결"""
        self.on_frame = router.dispatch
        self.on_state_change = router.on_state_change

    @property
    def state(self) -> ConnectionState:
        return self._state

    async def ensure_ready(self, timeout: float) -> None:
        self.ensure_ready_calls += 1
        if self.ready_error is not None:
            raise self.ready_error
        if self._state in (ConnectionState.CLOSING, ConnectionState.CLOSED):
            raise TransportError("연결이 종료되었습니다")
        if self._state != ConnectionState.READY:
            raise ConnectTimeout(f"{self.scope.value} 연결 대기 시간 초과 ({timeout}s)")

    async def send(self, frame: dict[str, Any]) -> None:
        if self._state != ConnectionState.READY:
            raise TransportError(f"연결이 READY 상태가 아닙니다: {self._state.value}")
        if self.fail_next_send:
            self.fail_next_send = False
            raise TransportError("송신 실패")

        self.sent_frames.append(frame)

        if self.auto_ack and frame.get("op") in ("subscribe", "unsubscribe"):
            # 실제 서버처럼 송신 이후 수신 루프에서 응답
            asyncio.get_running_loop().call_soon(self._ack, frame)

    async def close(self) -> None:
        self.close_calls += 1
        await self._set_state(ConnectionState.CLOSING)
        await self._set_state(ConnectionState.CLOSED)

    # -------------------------------------------------------------------------
    # 시뮬레이션
    # -------------------------------------------------------------------------

    def reject(self, channel: str, code: str = "60012", msg: str = "Invalid request") -> None:
        """해당 채널 구독 시 error 이벤트로 응답하도록 설정"""
        self.reject_topics[channel] = (code, msg)

    def push(self, frame: dict[str, Any]) -> None:
        """수신 프레임 주입"""
        if self.on_frame is not None:
            self.on_frame(frame)

    def sent_ops(self, op: str) -> list[dict[str, Any]]:
        """특정 op의 송신 프레임"""
        return [f for f in self.sent_frames if f.get("op") == op]

    async def simulate_disconnect(self) -> None:
        """연결 끊김"""
        await self._set_state(ConnectionState.DISCONNECTED)

    async def simulate_reconnect(self) -> None:
        """재연결 완료 (CONNECTING → READY)"""
        await self._set_state(ConnectionState.CONNECTING)
        await self._set_state(ConnectionState.READY)

    def _ack(self, frame: dict[str, Any]) -> None:
        for arg in frame.get("args", []):
            rejected = self.reject_topics.get(arg.get("channel", ""))
            if rejected is not None and frame["op"] == "subscribe":
                code, msg = rejected
                self.push({"event": "error", "code": code, "msg": msg, "arg": arg})
            else:
                self.push({"event": frame["op"], "arg": dict(arg)})

    async def _set_state(self, new_state: ConnectionState) -> None:
        if self._state == new_state:
            return
        self._state = new_state
        if self.on_state_change is not None:
            await self.on_state_change(new_state)
