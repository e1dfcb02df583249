"""
Subscription Router

scope별로 (Topic → SubscriptionEntry) 맵과 진행 중인 제어 작업을 관리하고,
수신 프레임을 토픽 기준으로 올바른 Sink에 분배.

- subscribe/unsubscribe: 한 호출의 토픽들은 하나의 제어 프레임으로 묶어 송신,
  토픽마다 ack를 기다림 (ack_timeout으로 제한)
- dispatch: 수신 루프에서 동기 호출, 절대 블록하지 않음
- 재연결 후 살아있는 토픽 전부 재구독 (Sink 유지)
"""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Iterable

from adapters.interfaces import IWsConnection
from adapters.okx.channels import (
    PARAMETERIZED_FAMILIES,
    ChannelFamily,
    PayloadDecoder,
    decoder_for,
    resolve_family,
)
from adapters.okx.errors import (
    AckTimeout,
    AlreadyPendingError,
    OkxError,
    ProtocolError,
    TransportError,
)
from adapters.okx.models import PushEvent
from adapters.okx.sink import DeliverySink
from adapters.okx.topic import Topic
from core.constants import Defaults, WsProtocol
from core.types import ConnectionState, ControlOp, DropPolicy

logger = logging.getLogger(__name__)


@dataclass
class SubscriptionOptions:
    """구독 옵션

    Attributes:
        sink: 사용할 Sink (None이면 기존 Sink 재사용 또는 새로 생성)
        clear_on_unsubscribe: 해지 시 Sink까지 제거할지 여부
        maxsize: 새 Sink 생성 시 최대 크기
        drop_policy: 새 Sink 생성 시 가득 참 정책
    """

    sink: DeliverySink | None = None
    clear_on_unsubscribe: bool = False
    maxsize: int = Defaults.SINK_MAXSIZE
    drop_policy: DropPolicy = DropPolicy.DROP_NEWEST


@dataclass
class SubscriptionEntry:
    """토픽별 구독 상태

    live는 구독 ack 수신 시 True, 해지 ack 수신 시 False.
    live가 아니어도 Sink를 유지한 채 맵에 남아 있을 수 있음 (재구독 대비).
    """

    topic: Topic
    sink: DeliverySink
    decoder: PayloadDecoder
    family: ChannelFamily | None = None
    clear_on_unsubscribe: bool = False
    live: bool = False


@dataclass
class PendingOperation:
    """ack 대기 중인 토픽 단위 제어 작업"""

    op: ControlOp
    topic: Topic
    future: asyncio.Future[None]
    clear_sink: bool = False
    created_entry: bool = False


@dataclass
class _Batch:
    """한 프레임으로 송신된 작업 묶음 (arg 없는 error ack 매칭용)"""

    operations: list[PendingOperation] = field(default_factory=list)

    @property
    def done(self) -> bool:
        return all(op.future.done() for op in self.operations)


def _succeeded(operation: PendingOperation) -> bool:
    future = operation.future
    return future.done() and not future.cancelled() and future.exception() is None


class SubscriptionRouter:
    """구독 라우터 (scope당 1개)

    Args:
        connection: WebSocket 연결
        connect_timeout: 연결 READY 대기 제한 (초)
        ack_timeout: 제어 작업 ack 대기 제한 (초)

    사용 예시:
    ```python
    router = SubscriptionRouter(connection)
    sink = await router.subscribe([Topic.create("tickers", {"instId": "BTC-USDT"})])
    event = await sink.get()
    ```
    """

    def __init__(
        self,
        connection: IWsConnection,
        connect_timeout: float = Defaults.CONNECT_TIMEOUT_SEC,
        ack_timeout: float = Defaults.ACK_TIMEOUT_SEC,
    ):
        self.connection = connection
        self.connect_timeout = connect_timeout
        self.ack_timeout = ack_timeout

        # 맵 변경 구간만 보호, I/O 중에는 잡지 않음
        self._lock = asyncio.Lock()
        self._entries: dict[Topic, SubscriptionEntry] = {}
        self._pending: dict[Topic, PendingOperation] = {}
        self._inflight: deque[_Batch] = deque()
        # 해지되었거나 재구독에 실패한 토픽 (늦게 도착한 프레임이 폴백으로 새지 않도록)
        self._retired: set[Topic] = set()

        self._closed = False
        self._resubscribe_task: asyncio.Task[None] | None = None

        # 통계
        self._stats = {
            "delivered": 0,
            "unrouted": 0,
            "decode_dropped": 0,
            "acks": 0,
            "errors": 0,
            "resubscribed": 0,
        }

    # -------------------------------------------------------------------------
    # 조회
    # -------------------------------------------------------------------------

    def get_entry(self, topic: Topic) -> SubscriptionEntry | None:
        """토픽의 엔트리 (살아있지 않아도 반환)"""
        return self._entries.get(topic)

    def live_topics(self) -> list[Topic]:
        """현재 살아있는 토픽 목록"""
        return [t for t, e in self._entries.items() if e.live]

    def is_pending(self, topic: Topic) -> bool:
        return topic in self._pending

    def get_stats(self) -> dict[str, Any]:
        """통계 반환"""
        return {
            **self._stats,
            "live_topics": len(self.live_topics()),
            "pending": len(self._pending),
        }

    # -------------------------------------------------------------------------
    # 구독 / 해지
    # -------------------------------------------------------------------------

    async def subscribe(
        self,
        topics: Iterable[Topic],
        decoder: PayloadDecoder | None = None,
        options: SubscriptionOptions | None = None,
    ) -> DeliverySink:
        """토픽 구독

        이미 살아있는 토픽은 Sink만 교체하고 프레임을 보내지 않음.

        Args:
            topics: 구독할 토픽 (한 프레임으로 묶어 송신)
            decoder: 페이로드 디코더 (None이면 채널 이름의 패밀리로 결정)
            options: 구독 옵션

        Returns:
            이벤트가 전달될 Sink (호출 내 토픽이 공유)

        Raises:
            ConnectTimeout: 연결 대기 초과
            AckTimeout: ack 대기 초과
            AlreadyPendingError: 같은 토픽에 진행 중인 작업 존재
            ProtocolError: 거래소가 구독을 거부
            TransportError: 연결 종료

            송신/ack 단계 실패 시 에러의 sink/subscribed에 이번 호출의 Sink와 살아있는 토픽이 담김.
        """
        topic_list = list(dict.fromkeys(topics))
        if not topic_list:
            raise ValueError("구독할 토픽이 없습니다")
        options = options or SubscriptionOptions()
        self._ensure_open()

        await self.connection.ensure_ready(self.connect_timeout)

        async with self._lock:
            self._ensure_open()
            self._check_subscribable(topic_list)

            sink = options.sink or self._existing_sink(topic_list)
            if sink is None:
                sink = DeliverySink(maxsize=options.maxsize, policy=options.drop_policy)

            operations: list[PendingOperation] = []
            for topic in topic_list:
                family = resolve_family(topic.channel)
                entry_decoder = decoder or decoder_for(family)
                entry = self._entries.get(topic)
                created = entry is None

                if entry is None:
                    entry = SubscriptionEntry(
                        topic=topic,
                        sink=sink,
                        decoder=entry_decoder,
                        family=family,
                    )
                    self._entries[topic] = entry
                else:
                    entry.sink = sink
                    entry.decoder = entry_decoder
                entry.clear_on_unsubscribe = options.clear_on_unsubscribe

                if not entry.live:
                    operations.append(
                        self._begin(ControlOp.SUBSCRIBE, topic, created_entry=created)
                    )

        if operations:
            try:
                await self._send_and_wait(ControlOp.SUBSCRIBE, operations)
            except OkxError as e:
                # 일부 토픽은 살아있을 수 있음: 이미 전달 중인 Sink를 에러에 첨부
                e.sink = sink
                e.subscribed = tuple(
                    t for t in topic_list
                    if t in self._entries and self._entries[t].live
                )
                raise

        return sink

    async def unsubscribe(
        self,
        topics: Iterable[Topic],
        clear_sink: bool | None = None,
    ) -> None:
        """토픽 구독 해지

        살아있지 않은 토픽은 성공으로 간주 (clear 시 남은 엔트리만 제거).

        Args:
            topics: 해지할 토픽
            clear_sink: Sink까지 제거할지 (None이면 구독 시 옵션 사용)
        """
        topic_list = list(dict.fromkeys(topics))
        self._ensure_open()

        operations: list[PendingOperation] = []
        async with self._lock:
            self._check_not_pending(topic_list)

            for topic in topic_list:
                entry = self._entries.get(topic)
                if entry is None:
                    continue
                clear = entry.clear_on_unsubscribe if clear_sink is None else clear_sink
                if not entry.live:
                    if clear:
                        del self._entries[topic]
                    continue
                operations.append(
                    self._begin(ControlOp.UNSUBSCRIBE, topic, clear_sink=clear)
                )

        if not operations:
            return

        try:
            await self.connection.ensure_ready(self.connect_timeout)
        except BaseException:
            for operation in operations:
                self._fail(operation, TransportError("연결 준비 실패"))
                operation.future.exception()
            raise
        await self._send_and_wait(ControlOp.UNSUBSCRIBE, operations)

    async def resubscribe_all(self) -> None:
        """살아있는 토픽 전부 재구독 (재연결 직후, Sink 유지)

        거래소가 거부하거나 ack가 없으면 해당 토픽은 live 해제.
        연결이 다시 끊기면 live를 유지하고 다음 READY에서 재시도.
        """
        async with self._lock:
            topics = [t for t in self.live_topics() if t not in self._pending]
            batches = []
            for i in range(0, len(topics), WsProtocol.RESUBSCRIBE_BATCH_SIZE):
                chunk = topics[i:i + WsProtocol.RESUBSCRIBE_BATCH_SIZE]
                batches.append([self._begin(ControlOp.SUBSCRIBE, t) for t in chunk])

        if not topics:
            return

        logger.info(
            "재연결 후 재구독",
            extra={"scope": self.connection.scope.value, "topics": len(topics)},
        )
        for operations in batches:
            try:
                await self._send_and_wait(ControlOp.SUBSCRIBE, operations)
            except TransportError as e:
                # 다시 끊김: live 유지, 다음 READY에서 재시도
                logger.warning(
                    "재구독 중 연결 끊김",
                    extra={"topics": len(operations), "error": str(e)},
                )
            except (AckTimeout, ProtocolError) as e:
                failed = [op for op in operations if not _succeeded(op)]
                logger.error(
                    "재구독 실패",
                    extra={
                        "topics": [str(op.topic) for op in failed],
                        "error": str(e),
                    },
                )
                self._abandon(failed)
            self._stats["resubscribed"] += sum(1 for op in operations if _succeeded(op))

    # -------------------------------------------------------------------------
    # 수신 프레임 분배
    # -------------------------------------------------------------------------

    def dispatch(self, frame: dict[str, Any]) -> None:
        """수신 프레임 처리 (수신 루프에서 동기 호출)

        - event 있음: 제어 작업 ack/error
        - arg + data: 푸시 데이터 → 토픽 Sink
        - 그 외: 무시
        """
        if self._closed:
            return

        event = frame.get("event")
        if event:
            self._handle_event(str(event), frame)
            return

        arg = frame.get("arg")
        data = frame.get("data")
        if not isinstance(arg, dict) or not data:
            return

        channel = arg.get("channel")
        if not channel:
            return

        entry = self._route(arg)
        if entry is None:
            self._stats["unrouted"] += 1
            logger.debug("구독되지 않은 채널 프레임 폐기", extra={"channel": channel})
            return

        try:
            items = entry.decoder(data)
        except Exception as e:
            # 한 프레임의 디코딩 실패가 연결/다른 토픽에 영향을 주지 않도록 폐기
            self._stats["decode_dropped"] += 1
            logger.warning(
                "푸시 페이로드 디코딩 실패, 프레임 폐기",
                extra={"topic": str(entry.topic), "error": str(e)},
            )
            return

        event_obj = PushEvent(
            channel=str(channel),
            arg=dict(arg),
            data=items,
            action=frame.get("action"),
        )
        if entry.sink.put_nowait(event_obj):
            self._stats["delivered"] += 1

    def _route(self, arg: dict[str, Any]) -> SubscriptionEntry | None:
        """arg → 살아있는 엔트리

        1. 정확히 일치하는 토픽
        2. 같은 채널 + 토픽 파라미터가 arg에 포함 (uid 등 추가 필드 허용)
        3. 파라미터형 채널 패밀리 폴백 (candle*, books* 등)

        해지된 토픽의 프레임은 폴백하지 않음.
        """
        topic = Topic.from_arg(arg)
        entry = self._entries.get(topic)
        if entry is not None:
            return entry if entry.live else None

        candidates = [
            e for e in self._entries.values()
            if e.live and e.topic.channel == topic.channel and e.topic.matches(arg)
        ]

        # 해지된 토픽의 프레임: 더 구체적인 살아있는 토픽만 받을 수 있고 폴백 없음
        retired = [
            t for t in self._retired
            if t.channel == topic.channel and t.matches(arg)
        ]
        if retired:
            specificity = max(len(t.params) for t in retired)
            candidates = [e for e in candidates if len(e.topic.params) > specificity]
        elif not candidates:
            family = resolve_family(topic.channel)
            if family is None or family not in PARAMETERIZED_FAMILIES:
                return None
            candidates = [
                e for e in self._entries.values()
                if e.live and e.family is family and e.topic.matches(arg)
            ]

        if not candidates:
            return None

        # 가장 구체적인(파라미터가 많은) 토픽 우선
        return min(
            candidates,
            key=lambda e: (-len(e.topic.params), e.topic.channel, e.topic.params),
        )

    def _handle_event(self, event: str, frame: dict[str, Any]) -> None:
        """ack/error/notice 이벤트 처리"""
        if event in (ControlOp.SUBSCRIBE.value, ControlOp.UNSUBSCRIBE.value):
            self._stats["acks"] += 1
            arg = frame.get("arg")
            op = self._find_pending(ControlOp(event), arg) if isinstance(arg, dict) else None
            if op is None:
                logger.debug("대기 중인 작업이 없는 ack", extra={"event": event, "arg": arg})
                return
            self._complete(op)
            return

        if event == "error":
            self._stats["errors"] += 1
            code = frame.get("code")
            error = ProtocolError(
                str(code) if code is not None else None,
                frame.get("msg", ""),
            )
            logger.warning(
                "거래소 에러 응답",
                extra={"code": error.code, "error_msg": error.message},
            )

            arg = frame.get("arg")
            if isinstance(arg, dict):
                op = self._find_pending(None, arg)
                if op is not None:
                    self._fail(op, error)
                return

            # arg 없는 에러는 가장 오래된 미완료 묶음에 귀속 (거래소는 순서대로 응답)
            while self._inflight:
                batch = self._inflight.popleft()
                if batch.done:
                    continue
                for op in batch.operations:
                    self._fail(op, error)
                break
            return

        if event == "notice":
            logger.warning(
                "거래소 공지",
                extra={"code": frame.get("code"), "detail": frame.get("msg")},
            )
            return

        logger.debug("기타 이벤트", extra={"event": event})

    def _find_pending(
        self,
        op: ControlOp | None,
        arg: dict[str, Any],
    ) -> PendingOperation | None:
        """ack arg → 대기 중인 작업 (정확히 일치 우선, 이후 파라미터 포함 매칭)"""
        topic = Topic.from_arg(arg)
        pending = self._pending.get(topic)
        if pending is not None and (op is None or pending.op == op):
            return pending

        for pending in self._pending.values():
            if op is not None and pending.op != op:
                continue
            if pending.topic.channel == topic.channel and pending.topic.matches(arg):
                return pending
        return None

    # -------------------------------------------------------------------------
    # 제어 작업 내부 처리
    # -------------------------------------------------------------------------

    def _begin(
        self,
        op: ControlOp,
        topic: Topic,
        clear_sink: bool = False,
        created_entry: bool = False,
    ) -> PendingOperation:
        operation = PendingOperation(
            op=op,
            topic=topic,
            future=asyncio.get_running_loop().create_future(),
            clear_sink=clear_sink,
            created_entry=created_entry,
        )
        self._pending[topic] = operation
        return operation

    def _complete(self, operation: PendingOperation) -> None:
        """ack 수신 → 엔트리 상태 반영"""
        if self._pending.get(operation.topic) is operation:
            del self._pending[operation.topic]

        entry = self._entries.get(operation.topic)
        if operation.op == ControlOp.SUBSCRIBE:
            if entry is not None:
                entry.live = True
                self._retired.discard(operation.topic)
        elif entry is not None:
            entry.live = False
            self._retired.add(operation.topic)
            if operation.clear_sink:
                del self._entries[operation.topic]

        if not operation.future.done():
            operation.future.set_result(None)

    def _fail(self, operation: PendingOperation, error: Exception) -> None:
        if self._pending.get(operation.topic) is operation:
            del self._pending[operation.topic]
        if not operation.future.done():
            operation.future.set_exception(error)

    async def _send_and_wait(
        self,
        op: ControlOp,
        operations: list[PendingOperation],
    ) -> None:
        """묶음 프레임 송신 후 모든 ack 대기"""
        frame = {
            "op": op.value,
            "args": [operation.topic.to_arg() for operation in operations],
        }
        batch = _Batch(operations=operations)
        self._inflight.append(batch)

        try:
            await self.connection.send(frame)

            futures = [operation.future for operation in operations]
            done, not_done = await asyncio.wait(futures, timeout=self.ack_timeout)

            errors = [
                f.exception() for f in done
                if not f.cancelled() and f.exception() is not None
            ]
            if errors:
                raise errors[0]
            if not_done:
                raise AckTimeout(
                    f"{op.value} ack 대기 시간 초과 ({self.ack_timeout}s): "
                    + ", ".join(str(o.topic) for o in operations if not o.future.done())
                )
        except BaseException:
            self._rollback(operations)
            raise
        finally:
            if batch in self._inflight:
                self._inflight.remove(batch)
            for operation in operations:
                if self._pending.get(operation.topic) is operation:
                    del self._pending[operation.topic]

    def _rollback(self, operations: list[PendingOperation]) -> None:
        """실패한 구독으로 새로 만든 엔트리 제거"""
        for operation in operations:
            if operation.op != ControlOp.SUBSCRIBE or not operation.created_entry:
                continue
            if _succeeded(operation):
                continue
            entry = self._entries.get(operation.topic)
            if entry is not None and not entry.live:
                del self._entries[operation.topic]
            if not operation.future.done():
                # ack 시간 초과: 거래소가 늦게 구독할 수 있음
                self._retired.add(operation.topic)

    def _check_not_pending(self, topics: list[Topic]) -> None:
        for topic in topics:
            if topic in self._pending:
                raise AlreadyPendingError(topic)

    def _check_subscribable(self, topics: list[Topic]) -> None:
        """프레임을 보낼 토픽만 진행 중 작업 확인

        살아있는 토픽의 Sink 교체는 프레임이 없으므로 재구독 중에도 허용.
        """
        for topic in topics:
            pending = self._pending.get(topic)
            if pending is None:
                continue
            entry = self._entries.get(topic)
            if pending.op == ControlOp.SUBSCRIBE and entry is not None and entry.live:
                continue
            raise AlreadyPendingError(topic)

    def _abandon(self, operations: list[PendingOperation]) -> None:
        """재구독 실패 토픽 정리

        엔트리는 live 해제 후 남겨 두어 다음 subscribe가 프레임을 다시 보냄.
        살아있는 토픽이 더 이상 쓰지 않는 Sink는 종료 신호.
        """
        sinks: list[DeliverySink] = []
        for operation in operations:
            entry = self._entries.get(operation.topic)
            if entry is None:
                continue
            entry.live = False
            self._retired.add(operation.topic)
            sinks.append(entry.sink)

        in_use = {id(e.sink) for e in self._entries.values() if e.live}
        for sink in sinks:
            if id(sink) not in in_use:
                sink.close()

    def _existing_sink(self, topics: list[Topic]) -> DeliverySink | None:
        for topic in topics:
            entry = self._entries.get(topic)
            if entry is not None and not entry.sink.closed:
                return entry.sink
        return None

    def _ensure_open(self) -> None:
        if self._closed:
            raise TransportError("라우터가 종료되었습니다")

    def _fail_all_pending(self, error: Exception) -> None:
        for operation in list(self._pending.values()):
            self._fail(operation, error)
        self._inflight.clear()

    # -------------------------------------------------------------------------
    # 연결 콜백
    # -------------------------------------------------------------------------

    async def on_state_change(self, state: ConnectionState) -> None:
        """연결 상태 변경 콜백

        - DISCONNECTED/CLOSING: 대기 중인 작업 실패 처리
        - READY: 살아있는 토픽이 있으면 재구독 태스크 시작 (재연결)
        """
        if state in (ConnectionState.DISCONNECTED, ConnectionState.CLOSING):
            self._fail_all_pending(TransportError(f"연결 상태 변경: {state.value}"))
            return

        if state == ConnectionState.READY:
            if self.live_topics() and not self._closed:
                self._resubscribe_task = asyncio.create_task(self.resubscribe_all())

    async def handle_exhausted(self, error: Exception) -> None:
        """재연결 한도 초과 → 모든 Sink에 종료 신호"""
        logger.error(
            "재연결 실패로 구독 종료",
            extra={"scope": self.connection.scope.value, "error": str(error)},
        )
        self._fail_all_pending(error)
        self._release_entries()

    def _release_entries(self) -> None:
        for entry in self._entries.values():
            entry.live = False
            entry.sink.close()
        self._entries.clear()
        self._retired.clear()

    async def close(self) -> None:
        """라우터 종료: 대기 작업 취소, 연결 종료, Sink 해제"""
        if self._closed:
            return
        self._closed = True

        self._fail_all_pending(TransportError("클라이언트가 종료되었습니다"))

        task = self._resubscribe_task
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._resubscribe_task = None

        await self.connection.close()
        self._release_entries()
        logger.info("구독 라우터 종료", extra={"scope": self.connection.scope.value})
