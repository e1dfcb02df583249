"""
어댑터 인터페이스 정의

Protocol 기반으로 정의하여 의존성 주입 및 Mock 교체 가능.
라우터/엔드포인트 그룹은 구현체가 아닌 이 Protocol에만 의존.
"""

from typing import Any, Protocol, runtime_checkable

from core.types import ConnectionScope, ConnectionState


@runtime_checkable
class IWsConnection(Protocol):
    """WebSocket 연결 인터페이스 (Subscription Router가 사용)

    하나의 물리 소켓을 소유하며 제어 프레임 송신을 직렬화.
    """

    scope: ConnectionScope

    @property
    def state(self) -> ConnectionState:
        """현재 연결 상태"""
        ...

    async def ensure_ready(self, timeout: float) -> None:
        """READY 상태가 될 때까지 대기 (필요 시 연결 시작)

        Raises:
            ConnectTimeout: timeout 초과
            AuthError: 로그인 실패
            TransportError: 연결 종료/재연결 한도 초과
        """
        ...

    async def send(self, frame: dict[str, Any]) -> None:
        """제어 프레임 송신

        Raises:
            TransportError: READY가 아니거나 송신 실패
        """
        ...

    async def close(self) -> None:
        """연결 종료 (재연결 없음)"""
        ...


@runtime_checkable
class IRestDispatcher(Protocol):
    """REST 요청 디스패처 인터페이스 (엔드포인트 그룹이 사용)

    엔드포인트별 지식 없이 (method, path, private, params)만 받음.
    """

    async def request(
        self,
        method: str,
        path: str,
        private: bool = False,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """요청 후 envelope의 data 반환

        Raises:
            TransportError: 네트워크 실패
            AuthError: 인증 실패
            ProtocolError: 0이 아닌 응답 코드 / 잘못된 응답
        """
        ...
