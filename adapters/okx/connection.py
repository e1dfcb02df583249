"""
OKX WebSocket 연결 관리자

scope(public/private)별 물리 소켓 1개를 소유.
- private: 소켓 오픈 후 로그인 핸드셰이크
- 주기적 텍스트 ping, pong 미수신 시 연결 재시작
- I/O 실패 시 지수 백오프로 자동 재연결
- 제어 프레임 송신 직렬화 (프레임 단위로 섞이지 않도록)
IWsConnection Protocol 준수.
"""

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from adapters.okx.errors import AuthError, ConnectTimeout, TransportError
from adapters.okx.signer import Signer
from core.constants import Defaults, WsProtocol
from core.types import ConnectionScope, ConnectionState, ControlOp

logger = logging.getLogger(__name__)


# 콜백 타입 정의
FrameCallback = Callable[[dict[str, Any]], None]
StateChangeCallback = Callable[[ConnectionState], Awaitable[None]]
ExhaustedCallback = Callable[[Exception], Awaitable[None]]


class WsConnection:
    """OKX WebSocket 연결

    상태 전이:
    DISCONNECTED → CONNECTING → (AUTHENTICATING) → READY
    READY → DISCONNECTED (I/O 에러, 서버 종료, pong 미수신) → 재연결
    any → CLOSING → CLOSED (명시적 종료, 재연결 없음)

    Args:
        url: WebSocket URL
        scope: 연결 범위 (PRIVATE면 로그인 수행)
        on_frame: JSON 프레임 수신 콜백 (수신 루프에서 동기 호출)
        on_state_change: 상태 변경 콜백
        on_exhausted: 재연결 한도 초과 콜백
        signer: 서명기 (PRIVATE 필수)
        api_key: API 키 (PRIVATE)
        passphrase: API 패스프레이즈 (PRIVATE)
    """

    # 상수
    PING_INTERVAL = 20  # ping 간격 (초), 서버는 30초 무응답 시 연결 종료
    PONG_TIMEOUT = 10  # ping 후 pong 대기 (초)
    LOGIN_TIMEOUT = 10  # 로그인 ack 대기 (초)
    OPEN_TIMEOUT = 10  # 소켓 오픈 타임아웃 (초)
    RECONNECT_MIN_DELAY = 1  # 최소 재연결 대기 (초)
    RECONNECT_MAX_DELAY = 30  # 최대 재연결 대기 (초)
    MAX_RECONNECT_ATTEMPTS = 10  # 연속 실패 허용 횟수

    def __init__(
        self,
        url: str,
        scope: ConnectionScope,
        on_frame: FrameCallback,
        on_state_change: StateChangeCallback | None = None,
        on_exhausted: ExhaustedCallback | None = None,
        signer: Signer | None = None,
        api_key: str = "",
        passphrase: str = "",
    ):
        if scope == ConnectionScope.PRIVATE and signer is None:
            raise ValueError("private 연결에는 signer가 필요합니다")

        self.url = url
        self.scope = scope
        self.on_frame = on_frame
        self.on_state_change = on_state_change
        self.on_exhausted = on_exhausted
        self.signer = signer
        self.api_key = api_key
        self.passphrase = passphrase

        self._state = ConnectionState.DISCONNECTED
        self._ws: Any = None
        self._closed = False

        # 태스크 관리
        self._run_task: asyncio.Task[None] | None = None
        self._ping_task: asyncio.Task[None] | None = None

        self._write_lock = asyncio.Lock()
        self._ready_waiters: list[asyncio.Future[None]] = []

        # 루프 시간 기준 (loop.time())
        self.last_activity: float = 0.0
        self._last_pong: float = 0.0

        # 통계
        self.connect_count = 0

    @property
    def state(self) -> ConnectionState:
        """현재 연결 상태"""
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state == ConnectionState.READY

    async def ensure_ready(self, timeout: float) -> None:
        """READY 상태가 될 때까지 대기 (필요 시 연결 시작)

        Raises:
            ConnectTimeout: timeout 초과
            AuthError: 이번 시도의 로그인 실패
            TransportError: 종료됨 / 재연결 한도 초과
        """
        if self._state == ConnectionState.READY:
            return
        if self._closed:
            raise TransportError("연결이 종료되었습니다")

        waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._ready_waiters.append(waiter)

        if self._run_task is None or self._run_task.done():
            self._run_task = asyncio.create_task(self._run())

        try:
            await asyncio.wait_for(waiter, timeout)
        except asyncio.TimeoutError:
            raise ConnectTimeout(
                f"{self.scope.value} 연결 대기 시간 초과 ({timeout}s)"
            ) from None
        finally:
            if waiter in self._ready_waiters:
                self._ready_waiters.remove(waiter)

    async def send(self, frame: dict[str, Any]) -> None:
        """제어 프레임 송신

        Raises:
            TransportError: READY가 아니거나 송신 실패
        """
        if self._state != ConnectionState.READY:
            raise TransportError(
                f"연결이 READY 상태가 아닙니다: {self._state.value}"
            )
        await self._send_text(json.dumps(frame))
        logger.debug(
            "제어 프레임 송신",
            extra={"scope": self.scope.value, "op": frame.get("op")},
        )

    async def close(self) -> None:
        """연결 종료 (이후 재연결/재구독 없음)"""
        if self._closed:
            return
        self._closed = True

        await self._set_state(ConnectionState.CLOSING)
        self._resolve_waiters(TransportError("연결이 종료되었습니다"))

        await self._cancel_task(self._run_task)
        self._run_task = None
        await self._teardown_socket()

        await self._set_state(ConnectionState.CLOSED)
        logger.info("WebSocket 연결 종료", extra={"scope": self.scope.value})

    # -------------------------------------------------------------------------
    # 연결 수명 주기
    # -------------------------------------------------------------------------

    async def _run(self) -> None:
        """연결 → (로그인) → 수신 → 끊기면 백오프 후 재연결"""
        attempt = 0
        delay = self.RECONNECT_MIN_DELAY

        while not self._closed:
            failure: Exception | None = None
            try:
                await self._establish()
            except AuthError as e:
                logger.error(
                    "WebSocket 로그인 실패",
                    extra={"scope": self.scope.value, "code": e.code, "error": e.message},
                )
                # 이번 연결을 기다리던 호출자에게 보고
                self._resolve_waiters(e)
                failure = e
            except (OSError, WebSocketException, asyncio.TimeoutError, TransportError) as e:
                logger.warning(
                    "WebSocket 연결 실패",
                    extra={"scope": self.scope.value, "error": str(e)},
                )
                failure = e
            else:
                attempt = 0
                delay = self.RECONNECT_MIN_DELAY
                failure = await self._read_loop()

            await self._teardown_socket()
            if self._closed:
                break
            await self._set_state(ConnectionState.DISCONNECTED)

            attempt += 1
            if attempt > self.MAX_RECONNECT_ATTEMPTS:
                error = TransportError(
                    f"재연결 한도 초과 ({self.MAX_RECONNECT_ATTEMPTS}회): {failure}"
                )
                logger.error(
                    "WebSocket 재연결 포기",
                    extra={"scope": self.scope.value, "error": str(failure)},
                )
                self._resolve_waiters(error)
                if self.on_exhausted is not None:
                    try:
                        await self.on_exhausted(error)
                    except Exception as e:
                        logger.error("재연결 한도 콜백 에러", extra={"error": str(e)})
                return

            logger.info(
                "WebSocket 재연결 대기",
                extra={"scope": self.scope.value, "delay": delay, "attempt": attempt},
            )
            await asyncio.sleep(delay)
            delay = min(delay * 2, self.RECONNECT_MAX_DELAY)

    async def _establish(self) -> None:
        """소켓 오픈 + (private) 로그인 → READY"""
        await self._set_state(ConnectionState.CONNECTING)

        self._ws = await self._open()
        self.connect_count += 1

        now = asyncio.get_running_loop().time()
        self.last_activity = now
        self._last_pong = now

        if self.scope == ConnectionScope.PRIVATE:
            await self._set_state(ConnectionState.AUTHENTICATING)
            await self._login()

        await self._set_state(ConnectionState.READY)
        self._ping_task = asyncio.create_task(self._ping_loop())
        self._resolve_waiters()

        logger.info(
            "WebSocket 연결 성공",
            extra={"scope": self.scope.value, "url": self.url},
        )

    async def _open(self) -> Any:
        """물리 소켓 오픈 (프로토콜 ping은 끄고 텍스트 ping 사용)"""
        return await websockets.connect(
            self.url,
            ping_interval=None,
            open_timeout=self.OPEN_TIMEOUT,
        )

    async def _login(self) -> None:
        """로그인 프레임 송신 후 ack 대기

        Raises:
            AuthError: 로그인 거부 또는 응답 시간 초과
        """
        assert self.signer is not None

        timestamp = self.signer.ws_timestamp()
        sign = self.signer.sign(
            WsProtocol.LOGIN_METHOD,
            WsProtocol.LOGIN_PATH,
            "",
            timestamp,
        )
        frame = {
            "op": ControlOp.LOGIN.value,
            "args": [
                {
                    "apiKey": self.api_key,
                    "passphrase": self.passphrase,
                    "timestamp": timestamp,
                    "sign": sign,
                }
            ],
        }
        await self._send_text(json.dumps(frame))

        try:
            await asyncio.wait_for(self._await_login_ack(), self.LOGIN_TIMEOUT)
        except asyncio.TimeoutError:
            raise AuthError(None, "로그인 응답 시간 초과") from None

    async def _await_login_ack(self) -> None:
        """login/error 이벤트가 올 때까지 프레임 소비"""
        loop = asyncio.get_running_loop()
        while True:
            message = await self._ws.recv()
            self.last_activity = loop.time()
            if message == WsProtocol.PONG:
                continue

            try:
                frame = json.loads(message)
            except json.JSONDecodeError:
                continue
            if not isinstance(frame, dict):
                continue

            event = frame.get("event")
            code = str(frame.get("code", "0"))
            if event == ControlOp.LOGIN.value:
                if code == "0":
                    logger.info("WebSocket 로그인 성공")
                    return
                raise AuthError(code, frame.get("msg", ""))
            if event == "error":
                raise AuthError(code, frame.get("msg", ""))

    async def _read_loop(self) -> Exception | None:
        """메시지 수신 루프

        Returns:
            연결이 끊긴 원인
        """
        ws = self._ws
        loop = asyncio.get_running_loop()
        try:
            async for message in ws:
                self.last_activity = loop.time()
                if message == WsProtocol.PONG:
                    self._last_pong = self.last_activity
                    continue
                self._handle_message(message)
        except ConnectionClosed as e:
            logger.warning(
                "WebSocket 연결 끊김",
                extra={"scope": self.scope.value, "error": str(e)},
            )
            return e
        except OSError as e:
            logger.warning(
                "수신 루프 에러",
                extra={"scope": self.scope.value, "error": str(e)},
            )
            return e
        finally:
            await self._cancel_task(self._ping_task)
            self._ping_task = None

        logger.warning("서버가 WebSocket 연결을 종료했습니다", extra={"scope": self.scope.value})
        return TransportError("서버가 연결을 종료했습니다")

    def _handle_message(self, message: str | bytes) -> None:
        """JSON 파싱 후 on_frame 호출 (한 프레임의 실패가 루프를 멈추지 않음)"""
        try:
            frame = json.loads(message)
        except json.JSONDecodeError as e:
            logger.warning(
                "메시지 파싱 실패",
                extra={"error": str(e), "raw": str(message)[:100]},
            )
            return

        if not isinstance(frame, dict):
            return

        try:
            self.on_frame(frame)
        except Exception as e:
            logger.error("프레임 처리 중 에러", extra={"error": str(e)})

    async def _ping_loop(self) -> None:
        """주기적 ping, pong 미수신 시 소켓 종료 (수신 루프가 재연결 처리)"""
        loop = asyncio.get_running_loop()
        while self._state == ConnectionState.READY:
            await asyncio.sleep(self.PING_INTERVAL)
            if self._state != ConnectionState.READY:
                break

            sent_at = loop.time()
            try:
                await self._send_text(WsProtocol.PING)
            except TransportError:
                break

            await asyncio.sleep(self.PONG_TIMEOUT)
            if self._last_pong < sent_at:
                logger.warning(
                    "pong 미수신, 연결 재시작",
                    extra={"scope": self.scope.value, "timeout": self.PONG_TIMEOUT},
                )
                ws = self._ws
                if ws is not None:
                    await ws.close()
                break

    async def _send_text(self, text: str) -> None:
        """소켓 송신 (쓰기 잠금으로 직렬화)"""
        ws = self._ws
        if ws is None:
            raise TransportError("소켓이 열려 있지 않습니다")

        async with self._write_lock:
            try:
                await ws.send(text)
            except (ConnectionClosed, OSError) as e:
                raise TransportError(f"송신 실패: {e}") from e

    async def _teardown_socket(self) -> None:
        """ping 태스크 정리 및 소켓 종료"""
        await self._cancel_task(self._ping_task)
        self._ping_task = None

        ws, self._ws = self._ws, None
        if ws is not None:
            try:
                await ws.close()
            except (OSError, WebSocketException) as e:
                logger.debug("소켓 종료 중 에러", extra={"error": str(e)})

    def _resolve_waiters(self, error: Exception | None = None) -> None:
        """ensure_ready 대기자 완료 처리"""
        waiters, self._ready_waiters = self._ready_waiters, []
        for waiter in waiters:
            if waiter.done():
                continue
            if error is None:
                waiter.set_result(None)
            else:
                waiter.set_exception(error)

    @staticmethod
    async def _cancel_task(task: asyncio.Task[Any] | None) -> None:
        if task is None or task.done() or task is asyncio.current_task():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _set_state(self, new_state: ConnectionState) -> None:
        """상태 변경 및 콜백 호출"""
        old_state = self._state
        self._state = new_state

        if old_state != new_state:
            logger.info(
                "WebSocket 상태 변경",
                extra={
                    "scope": self.scope.value,
                    "old_state": old_state.value,
                    "new_state": new_state.value,
                },
            )

            if self.on_state_change is not None:
                try:
                    await self.on_state_change(new_state)
                except Exception as e:
                    logger.error(
                        "상태 변경 콜백 에러",
                        extra={"error": str(e)},
                    )

    # -------------------------------------------------------------------------
    # 컨텍스트 매니저
    # -------------------------------------------------------------------------

    async def __aenter__(self) -> "WsConnection":
        await self.ensure_ready(Defaults.CONNECT_TIMEOUT_SEC)
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
