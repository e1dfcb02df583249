"""
Delivery Sink

구독자가 디코딩된 푸시 이벤트를 읽어가는 단일 소비자 큐.
라우터(수신 루프)는 절대 Sink 때문에 블록되지 않아야 하므로
put은 항상 non-blocking이며, 가득 차면 정책에 따라 버리고 카운트.
"""

import asyncio
from typing import Any

from adapters.okx.errors import SinkClosed
from core.constants import Defaults
from core.types import DropPolicy


# 종료 신호 (큐에 남아 소비자에게 SinkClosed를 알림)
_CLOSED = object()


class DeliverySink:
    """구독 이벤트 전달 큐

    Args:
        maxsize: 최대 보관 이벤트 수 (0이면 무제한)
        policy: 가득 찼을 때 정책 (기본: DROP_NEWEST)

    사용 예시:
    ```python
    sink = await client.public.tickers("BTC-USDT")
    async for event in sink:
        print(event.data[0].last)
    ```
    """

    def __init__(
        self,
        maxsize: int = Defaults.SINK_MAXSIZE,
        policy: DropPolicy = DropPolicy.DROP_NEWEST,
    ):
        if maxsize < 0:
            raise ValueError("maxsize는 0 이상이어야 합니다")

        self.maxsize = maxsize
        self.policy = policy

        # 종료 신호가 항상 들어갈 수 있도록 내부 큐는 무제한, 한도는 직접 관리
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._closed = False

        # 통계
        self.delivered = 0
        self.dropped = 0

    @property
    def closed(self) -> bool:
        """닫힘 여부"""
        return self._closed

    def qsize(self) -> int:
        """대기 중인 이벤트 수"""
        size = self._queue.qsize()
        if self._closed and size > 0:
            return size - 1
        return size

    def full(self) -> bool:
        return self.maxsize > 0 and self.qsize() >= self.maxsize

    def put_nowait(self, item: Any) -> bool:
        """이벤트 추가 (non-blocking)

        Returns:
            새 이벤트가 큐에 들어갔는지 여부
        """
        if self._closed:
            self.dropped += 1
            return False

        if self.full():
            if self.policy == DropPolicy.DROP_NEWEST:
                self.dropped += 1
                return False
            # DROP_OLDEST
            self._queue.get_nowait()
            self.dropped += 1

        self._queue.put_nowait(item)
        self.delivered += 1
        return True

    async def get(self) -> Any:
        """다음 이벤트 대기

        Raises:
            SinkClosed: Sink가 닫혔고 남은 이벤트가 없는 경우
        """
        item = await self._queue.get()
        if item is _CLOSED:
            # 다음 get도 종료를 보도록 신호 유지
            self._queue.put_nowait(_CLOSED)
            raise SinkClosed("Sink가 닫혔습니다")
        return item

    def get_nowait(self) -> Any:
        """즉시 꺼내기

        Raises:
            asyncio.QueueEmpty: 이벤트 없음
            SinkClosed: 닫힘
        """
        item = self._queue.get_nowait()
        if item is _CLOSED:
            self._queue.put_nowait(_CLOSED)
            raise SinkClosed("Sink가 닫혔습니다")
        return item

    def close(self) -> None:
        """Sink 종료 (남은 이벤트는 읽을 수 있고, 이후 SinkClosed)"""
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_CLOSED)

    def stats(self) -> dict[str, Any]:
        """통계 반환"""
        return {
            "size": self.qsize(),
            "maxsize": self.maxsize,
            "policy": self.policy.value,
            "delivered": self.delivered,
            "dropped": self.dropped,
            "closed": self._closed,
        }

    # -------------------------------------------------------------------------
    # async iterator
    # -------------------------------------------------------------------------

    def __aiter__(self) -> "DeliverySink":
        return self

    async def __anext__(self) -> Any:
        try:
            return await self.get()
        except SinkClosed:
            raise StopAsyncIteration from None
