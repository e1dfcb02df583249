"""
Subscription Router 테스트

MockWsConnection으로 구독/해지 ack, 프레임 분배, 재연결 후 재구독 검증.
"""

import asyncio
from typing import Any

import pytest

from adapters.mock.connection import MockWsConnection
from adapters.okx.errors import (
    AckTimeout,
    AlreadyPendingError,
    ProtocolError,
    TransportError,
)
from adapters.okx.models import Candle, PushEvent, Ticker
from adapters.okx.router import SubscriptionOptions, SubscriptionRouter
from adapters.okx.sink import DeliverySink
from adapters.okx.topic import Topic
from core.types import ConnectionScope

BTC_TICKERS = Topic.create("tickers", {"instId": "BTC-USDT"})
ETH_TICKERS = Topic.create("tickers", {"instId": "ETH-USDT"})


async def wait_for_sent(connection: MockWsConnection, count: int) -> None:
    """송신 프레임이 count개가 될 때까지 대기"""
    for _ in range(100):
        if len(connection.sent_frames) >= count:
            return
        await asyncio.sleep(0)
    raise AssertionError(f"송신 프레임 {count}개를 기다리다 실패")


def make_router(auto_ack: bool = True, ack_timeout: float = 0.5) -> tuple[MockWsConnection, SubscriptionRouter]:
    connection = MockWsConnection(scope=ConnectionScope.PUBLIC, auto_ack=auto_ack)
    router = SubscriptionRouter(connection, connect_timeout=0.5, ack_timeout=ack_timeout)
    connection.bind(router)
    return connection, router


def ticker_frame(inst_id: str, payload: dict[str, Any]) -> dict[str, Any]:
    return {
        "arg": {"channel": "tickers", "instId": inst_id},
        "data": [{**payload, "instId": inst_id}],
    }


class TestRouterSubscribe:
    """구독 테스트"""

    @pytest.mark.asyncio
    async def test_tickers_example(
        self,
        router: SubscriptionRouter,
        mock_connection: MockWsConnection,
        tickers_frame: dict,
    ) -> None:
        """tickers 구독 → 프레임 1개 → Ticker 1개 전달"""
        sink = await router.subscribe([BTC_TICKERS])

        assert mock_connection.sent_ops("subscribe") == [
            {"op": "subscribe", "args": [{"channel": "tickers", "instId": "BTC-USDT"}]}
        ]
        assert router.live_topics() == [BTC_TICKERS]

        mock_connection.push(tickers_frame)

        assert sink.qsize() == 1
        event = sink.get_nowait()
        assert isinstance(event, PushEvent)
        assert event.channel == "tickers"
        assert len(event.data) == 1
        assert isinstance(event.data[0], Ticker)
        assert event.data[0].inst_id == "BTC-USDT"

    @pytest.mark.asyncio
    async def test_candle_channel_routes_to_candle_decoder(
        self,
        router: SubscriptionRouter,
        mock_connection: MockWsConnection,
        candle_payload: list,
    ) -> None:
        """candle1m은 등록된 이름 없이 candle 패밀리로 디코딩"""
        topic = Topic.create("candle1m", {"instId": "BTC-USDT"})
        sink = await router.subscribe([topic])

        mock_connection.push({
            "arg": {"channel": "candle1m", "instId": "BTC-USDT"},
            "data": [candle_payload],
        })

        event = sink.get_nowait()
        assert isinstance(event.data[0], Candle)
        assert event.data[0].close.to_eng_string() == "8548.26"

    @pytest.mark.asyncio
    async def test_batch_one_frame_shared_sink(
        self,
        router: SubscriptionRouter,
        mock_connection: MockWsConnection,
        ticker_payload: dict,
    ) -> None:
        """한 호출의 토픽들은 한 프레임으로 송신, Sink 공유"""
        sink = await router.subscribe([BTC_TICKERS, ETH_TICKERS])

        frames = mock_connection.sent_ops("subscribe")
        assert len(frames) == 1
        assert len(frames[0]["args"]) == 2

        mock_connection.push(ticker_frame("BTC-USDT", ticker_payload))
        mock_connection.push(ticker_frame("ETH-USDT", ticker_payload))
        assert sink.qsize() == 2

    @pytest.mark.asyncio
    async def test_duplicate_topics_in_call_deduped(
        self,
        router: SubscriptionRouter,
        mock_connection: MockWsConnection,
    ) -> None:
        await router.subscribe([BTC_TICKERS, Topic.create("tickers", {"instId": "BTC-USDT"})])
        assert len(mock_connection.sent_ops("subscribe")[0]["args"]) == 1

    @pytest.mark.asyncio
    async def test_empty_topics_rejected(self, router: SubscriptionRouter) -> None:
        with pytest.raises(ValueError):
            await router.subscribe([])

    @pytest.mark.asyncio
    async def test_resubscribe_replaces_sink_without_frame(
        self,
        router: SubscriptionRouter,
        mock_connection: MockWsConnection,
        tickers_frame: dict,
    ) -> None:
        """같은 토픽 재구독: 엔트리 1개, 두 번째 Sink로 교체, 프레임 추가 없음"""
        first = DeliverySink()
        second = DeliverySink()

        await router.subscribe([BTC_TICKERS], options=SubscriptionOptions(sink=first))
        returned = await router.subscribe([BTC_TICKERS], options=SubscriptionOptions(sink=second))

        assert returned is second
        assert len(mock_connection.sent_ops("subscribe")) == 1
        assert router.live_topics() == [BTC_TICKERS]
        assert router.get_entry(BTC_TICKERS).sink is second

        mock_connection.push(tickers_frame)
        assert first.qsize() == 0
        assert second.qsize() == 1

    @pytest.mark.asyncio
    async def test_existing_sink_reused_without_options(
        self,
        router: SubscriptionRouter,
    ) -> None:
        """Sink 미지정 재구독은 기존 Sink 재사용"""
        first = await router.subscribe([BTC_TICKERS])
        again = await router.subscribe([BTC_TICKERS])
        assert again is first

    @pytest.mark.asyncio
    async def test_new_sink_uses_options(self, router: SubscriptionRouter) -> None:
        sink = await router.subscribe(
            [BTC_TICKERS],
            options=SubscriptionOptions(maxsize=3),
        )
        assert sink.maxsize == 3

    @pytest.mark.asyncio
    async def test_custom_decoder(
        self,
        router: SubscriptionRouter,
        mock_connection: MockWsConnection,
        tickers_frame: dict,
    ) -> None:
        """디코더 지정 시 패밀리 디코더 대신 사용"""
        sink = await router.subscribe(
            [BTC_TICKERS],
            decoder=lambda payload: [item["last"] for item in payload],
        )
        mock_connection.push(tickers_frame)
        assert sink.get_nowait().data == ["9999.99"]


class TestRouterAckFailures:
    """ack 실패 테스트"""

    @pytest.mark.asyncio
    async def test_rejected_subscribe(self) -> None:
        """거부된 구독은 ProtocolError, 엔트리 남지 않음"""
        connection, router = make_router()
        connection.reject("tickers", code="60018", msg="doesn't exist")

        with pytest.raises(ProtocolError) as exc_info:
            await router.subscribe([BTC_TICKERS])

        assert exc_info.value.code == "60018"
        assert router.get_entry(BTC_TICKERS) is None
        assert not router.is_pending(BTC_TICKERS)

    @pytest.mark.asyncio
    async def test_partial_reject_attaches_sink(self, ticker_payload: dict) -> None:
        """일부만 거부되면 에러에 Sink와 살아있는 토픽이 첨부됨"""
        connection, router = make_router()
        connection.reject("candle1m", code="60018", msg="doesn't exist")
        candle = Topic.create("candle1m", {"instId": "BTC-USDT"})

        with pytest.raises(ProtocolError) as exc_info:
            await router.subscribe([BTC_TICKERS, candle])

        error = exc_info.value
        assert isinstance(error.sink, DeliverySink)
        assert error.subscribed == (BTC_TICKERS,)
        assert router.live_topics() == [BTC_TICKERS]
        assert router.get_entry(candle) is None

        connection.push(ticker_frame("BTC-USDT", ticker_payload))
        assert error.sink.qsize() == 1

    @pytest.mark.asyncio
    async def test_full_reject_attaches_empty_subscribed(self) -> None:
        connection, router = make_router()
        connection.reject("tickers")

        with pytest.raises(ProtocolError) as exc_info:
            await router.subscribe([BTC_TICKERS])

        assert exc_info.value.subscribed == ()

    @pytest.mark.asyncio
    async def test_error_without_arg_fails_oldest_batch(self) -> None:
        """arg 없는 error는 가장 오래된 진행 중 묶음에 귀속"""
        connection, router = make_router(auto_ack=False)

        task = asyncio.create_task(router.subscribe([BTC_TICKERS]))
        await wait_for_sent(connection, 1)

        connection.push({"event": "error", "code": "60012", "msg": "Invalid request"})

        with pytest.raises(ProtocolError) as exc_info:
            await task
        assert exc_info.value.code == "60012"
        assert router.get_stats()["errors"] == 1

    @pytest.mark.asyncio
    async def test_ack_timeout(self) -> None:
        """ack 미수신 시 AckTimeout, 새 엔트리 제거"""
        connection, router = make_router(auto_ack=False, ack_timeout=0.05)

        with pytest.raises(AckTimeout):
            await router.subscribe([BTC_TICKERS])

        assert router.get_entry(BTC_TICKERS) is None
        assert not router.is_pending(BTC_TICKERS)

    @pytest.mark.asyncio
    async def test_already_pending(self) -> None:
        """같은 토픽에 진행 중인 작업이 있으면 즉시 거부"""
        connection, router = make_router(auto_ack=False)

        first = asyncio.create_task(router.subscribe([BTC_TICKERS]))
        await wait_for_sent(connection, 1)

        with pytest.raises(AlreadyPendingError) as exc_info:
            await router.subscribe([BTC_TICKERS])
        assert exc_info.value.topic == BTC_TICKERS

        connection.push({"event": "subscribe", "arg": BTC_TICKERS.to_arg()})
        sink = await first
        assert isinstance(sink, DeliverySink)
        assert router.live_topics() == [BTC_TICKERS]

    @pytest.mark.asyncio
    async def test_late_ack_ignored(self, router: SubscriptionRouter) -> None:
        """대기 작업이 없는 ack는 무시"""
        router.dispatch({"event": "subscribe", "arg": BTC_TICKERS.to_arg()})

        assert router.live_topics() == []
        assert router.get_stats()["acks"] == 1

    @pytest.mark.asyncio
    async def test_disconnect_fails_pending(self) -> None:
        """연결 끊김 시 진행 중인 작업은 TransportError"""
        connection, router = make_router(auto_ack=False)

        task = asyncio.create_task(router.subscribe([BTC_TICKERS]))
        await wait_for_sent(connection, 1)
        await connection.simulate_disconnect()

        with pytest.raises(TransportError):
            await task
        assert router.get_entry(BTC_TICKERS) is None

    @pytest.mark.asyncio
    async def test_notice_event_is_not_error(self, router: SubscriptionRouter) -> None:
        router.dispatch({"event": "notice", "code": "64008", "msg": "service upgrade"})
        assert router.get_stats()["errors"] == 0


class TestRouterUnsubscribe:
    """해지 테스트"""

    @pytest.mark.asyncio
    async def test_subscribe_then_unsubscribe(
        self,
        router: SubscriptionRouter,
        mock_connection: MockWsConnection,
        tickers_frame: dict,
    ) -> None:
        """구독 직후 해지: 살아있는 엔트리 없음, 이후 전달 없음"""
        sink = await router.subscribe([BTC_TICKERS])
        await router.unsubscribe([BTC_TICKERS])

        assert mock_connection.sent_ops("unsubscribe") == [
            {"op": "unsubscribe", "args": [BTC_TICKERS.to_arg()]}
        ]
        assert router.live_topics() == []

        mock_connection.push(tickers_frame)
        assert sink.qsize() == 0
        assert router.get_stats()["unrouted"] == 1

    @pytest.mark.asyncio
    async def test_keep_sink_by_default(self, router: SubscriptionRouter) -> None:
        """기본: 엔트리(Sink)는 남고 재구독 시 재사용"""
        sink = await router.subscribe([BTC_TICKERS])
        await router.unsubscribe([BTC_TICKERS])

        entry = router.get_entry(BTC_TICKERS)
        assert entry is not None
        assert entry.live is False
        assert not sink.closed

        again = await router.subscribe([BTC_TICKERS])
        assert again is sink

    @pytest.mark.asyncio
    async def test_clear_on_unsubscribe_option(self, router: SubscriptionRouter) -> None:
        """구독 시 clear_on_unsubscribe=True면 해지 시 엔트리 제거"""
        await router.subscribe(
            [BTC_TICKERS],
            options=SubscriptionOptions(clear_on_unsubscribe=True),
        )
        await router.unsubscribe([BTC_TICKERS])

        assert router.get_entry(BTC_TICKERS) is None

    @pytest.mark.asyncio
    async def test_clear_sink_override(self, router: SubscriptionRouter) -> None:
        """해지 시 clear_sink 인자가 구독 옵션보다 우선"""
        await router.subscribe(
            [BTC_TICKERS],
            options=SubscriptionOptions(clear_on_unsubscribe=True),
        )
        await router.unsubscribe([BTC_TICKERS], clear_sink=False)

        assert router.get_entry(BTC_TICKERS) is not None

    @pytest.mark.asyncio
    async def test_unknown_topic_noop(
        self,
        router: SubscriptionRouter,
        mock_connection: MockWsConnection,
    ) -> None:
        """구독하지 않은 토픽 해지는 프레임 없이 성공"""
        await router.unsubscribe([ETH_TICKERS])
        assert mock_connection.sent_ops("unsubscribe") == []

    @pytest.mark.asyncio
    async def test_unsubscribe_not_ready(self) -> None:
        """연결 준비 실패 시 예외 전파, 진행 중 작업 남지 않음"""
        connection, router = make_router()
        await router.subscribe([BTC_TICKERS])

        connection.ready_error = TransportError("down")
        with pytest.raises(TransportError):
            await router.unsubscribe([BTC_TICKERS])

        assert not router.is_pending(BTC_TICKERS)


class TestRouterDispatch:
    """프레임 분배 테스트"""

    @pytest.mark.asyncio
    async def test_unmatched_frame_discarded(
        self,
        router: SubscriptionRouter,
        tickers_frame: dict,
    ) -> None:
        """살아있는 토픽과 맞지 않는 프레임은 에러 없이 폐기"""
        router.dispatch(tickers_frame)
        assert router.get_stats()["unrouted"] == 1

    @pytest.mark.asyncio
    async def test_malformed_payload_isolated(
        self,
        router: SubscriptionRouter,
        mock_connection: MockWsConnection,
        ticker_payload: dict,
    ) -> None:
        """잘못된 페이로드는 폐기, 다른 토픽 전달에 영향 없음"""
        btc_sink = await router.subscribe([BTC_TICKERS])
        eth_sink = await router.subscribe([ETH_TICKERS])

        mock_connection.push({"arg": BTC_TICKERS.to_arg(), "data": [{"last": "1"}]})
        mock_connection.push({"arg": BTC_TICKERS.to_arg(), "data": "oops"})
        mock_connection.push(ticker_frame("ETH-USDT", ticker_payload))

        assert btc_sink.qsize() == 0
        assert eth_sink.qsize() == 1
        assert router.get_stats()["decode_dropped"] == 2
        assert router.live_topics() == [BTC_TICKERS, ETH_TICKERS]

    @pytest.mark.asyncio
    async def test_extra_arg_fields_route(
        self,
        router: SubscriptionRouter,
        mock_connection: MockWsConnection,
        order_payload: dict,
    ) -> None:
        """거래소가 arg에 uid를 추가해도 라우팅"""
        topic = Topic.create("orders", {"instType": "ANY"})
        sink = await router.subscribe([topic])

        mock_connection.push({
            "arg": {"channel": "orders", "instType": "ANY", "uid": "77982378738415879"},
            "data": [order_payload],
        })

        assert sink.qsize() == 1
        assert sink.get_nowait().data[0].ord_id == "312269865356374016"

    @pytest.mark.asyncio
    async def test_parameterized_family_fallback(
        self,
        router: SubscriptionRouter,
        mock_connection: MockWsConnection,
        candle_payload: list,
    ) -> None:
        """파라미터형 채널은 같은 패밀리 엔트리로 폴백, 다른 패밀리로는 안 감"""
        sink = await router.subscribe([Topic.create("candle1m", {"instId": "BTC-USDT"})])

        mock_connection.push({
            "arg": {"channel": "candle3m", "instId": "BTC-USDT"},
            "data": [candle_payload],
        })
        mock_connection.push({
            "arg": {"channel": "mark-price-candle1m", "instId": "BTC-USDT"},
            "data": [candle_payload[:5] + ["0"]],
        })

        assert sink.qsize() == 1
        assert sink.get_nowait().channel == "candle3m"
        assert router.get_stats()["unrouted"] == 1

    @pytest.mark.asyncio
    async def test_unsubscribed_topic_does_not_fall_back(
        self,
        router: SubscriptionRouter,
        mock_connection: MockWsConnection,
        candle_payload: list,
    ) -> None:
        """해지한 토픽의 늦은 프레임은 같은 패밀리 다른 토픽으로 가지 않음"""
        candle1m = Topic.create("candle1m", {"instId": "BTC-USDT"})
        candle5m = Topic.create("candle5m", {"instId": "BTC-USDT"})
        one_minute = await router.subscribe([candle1m])
        await router.subscribe([candle5m])

        await router.unsubscribe([candle5m], clear_sink=True)
        mock_connection.push({"arg": candle5m.to_arg(), "data": [candle_payload]})

        assert one_minute.qsize() == 0
        assert router.get_stats()["unrouted"] == 1

    @pytest.mark.asyncio
    async def test_unsubscribed_topic_kept_entry_drops_frames(
        self,
        router: SubscriptionRouter,
        mock_connection: MockWsConnection,
        candle_payload: list,
    ) -> None:
        """Sink를 남긴 해지도 프레임 폐기, 다시 구독하면 전달 재개"""
        candle1m = Topic.create("candle1m", {"instId": "BTC-USDT"})
        candle5m = Topic.create("candle5m", {"instId": "BTC-USDT"})
        one_minute = await router.subscribe([candle1m])
        five_minute = await router.subscribe([candle5m])

        await router.unsubscribe([candle5m])
        mock_connection.push({"arg": candle5m.to_arg(), "data": [candle_payload]})

        assert one_minute.qsize() == 0
        assert five_minute.qsize() == 0

        await router.subscribe([candle5m])
        mock_connection.push({"arg": candle5m.to_arg(), "data": [candle_payload]})

        assert five_minute.qsize() == 1
        assert one_minute.qsize() == 0

    @pytest.mark.asyncio
    async def test_exact_match_preferred_over_fallback(
        self,
        router: SubscriptionRouter,
        mock_connection: MockWsConnection,
        order_book_payload: dict,
    ) -> None:
        """정확히 일치하는 토픽이 있으면 폴백보다 우선"""
        books = await router.subscribe([Topic.create("books", {"instId": "BTC-USDT"})])
        books5 = await router.subscribe([Topic.create("books5", {"instId": "BTC-USDT"})])

        mock_connection.push({
            "arg": {"channel": "books5", "instId": "BTC-USDT"},
            "data": [order_book_payload],
        })

        assert books.qsize() == 0
        assert books5.qsize() == 1

    @pytest.mark.asyncio
    async def test_action_passed_through(
        self,
        router: SubscriptionRouter,
        mock_connection: MockWsConnection,
        order_book_payload: dict,
    ) -> None:
        """오더북 snapshot/update 구분 전달"""
        sink = await router.subscribe([Topic.create("books", {"instId": "BTC-USDT"})])

        mock_connection.push({
            "arg": {"channel": "books", "instId": "BTC-USDT"},
            "action": "snapshot",
            "data": [order_book_payload],
        })

        assert sink.get_nowait().action == "snapshot"

    @pytest.mark.asyncio
    async def test_full_sink_does_not_block(
        self,
        router: SubscriptionRouter,
        mock_connection: MockWsConnection,
        tickers_frame: dict,
    ) -> None:
        """가득 찬 Sink는 버리고 계속 진행"""
        sink = await router.subscribe([BTC_TICKERS], options=SubscriptionOptions(maxsize=1))

        for _ in range(3):
            mock_connection.push(tickers_frame)

        assert sink.qsize() == 1
        assert sink.dropped == 2
        assert router.get_stats()["delivered"] == 1

    @pytest.mark.asyncio
    async def test_frames_without_data_ignored(self, router: SubscriptionRouter) -> None:
        await router.subscribe([BTC_TICKERS])
        router.dispatch({"arg": BTC_TICKERS.to_arg(), "data": []})
        router.dispatch({"arg": "tickers", "data": [{}]})
        router.dispatch({"op": "pong"})

        stats = router.get_stats()
        assert stats["delivered"] == 0
        assert stats["unrouted"] == 0


class TestRouterReconnect:
    """재연결 후 재구독 테스트"""

    @pytest.mark.asyncio
    async def test_resubscribe_after_reconnect(self, ticker_payload: dict) -> None:
        """N개 토픽이 원래 Sink로 재구독, 중복 엔트리 없음"""
        connection, router = make_router()
        inst_ids = ["BTC-USDT", "ETH-USDT", "SOL-USDT"]
        sinks = {}
        for inst_id in inst_ids:
            sinks[inst_id] = await router.subscribe([Topic.create("tickers", {"instId": inst_id})])

        await connection.simulate_disconnect()
        await connection.simulate_reconnect()
        await router._resubscribe_task

        frames = connection.sent_ops("subscribe")
        assert len(frames) == 4
        resubscribed = {arg["instId"] for arg in frames[-1]["args"]}
        assert resubscribed == set(inst_ids)
        assert len(router.live_topics()) == 3
        assert router.get_stats()["resubscribed"] == 3

        for inst_id in inst_ids:
            connection.push(ticker_frame(inst_id, ticker_payload))
            assert sinks[inst_id].qsize() == 1

    @pytest.mark.asyncio
    async def test_resubscribe_batched(self) -> None:
        """재구독은 20개 단위 프레임으로 나눔"""
        connection, router = make_router()
        topics = [Topic.create("tickers", {"instId": f"COIN{i}-USDT"}) for i in range(25)]
        await router.subscribe(topics)

        await connection.simulate_disconnect()
        await connection.simulate_reconnect()
        await router._resubscribe_task

        frames = connection.sent_ops("subscribe")[1:]
        assert [len(f["args"]) for f in frames] == [20, 5]

    @pytest.mark.asyncio
    async def test_no_resubscribe_without_live_topics(self) -> None:
        connection, router = make_router()

        await connection.simulate_disconnect()
        await connection.simulate_reconnect()

        assert router._resubscribe_task is None
        assert connection.sent_frames == []

    @pytest.mark.asyncio
    async def test_failed_resubscribe_releases_topic(self) -> None:
        """재구독 거부: live 해제, Sink 종료, 다음 subscribe가 프레임을 다시 보냄"""
        connection, router = make_router()
        sink = await router.subscribe([BTC_TICKERS])

        connection.reject("tickers")
        await connection.simulate_disconnect()
        await connection.simulate_reconnect()
        await router._resubscribe_task

        assert router.get_stats()["resubscribed"] == 0
        assert router.live_topics() == []
        assert sink.closed

        connection.reject_topics.clear()
        sent = len(connection.sent_ops("subscribe"))
        again = await router.subscribe([BTC_TICKERS])

        assert len(connection.sent_ops("subscribe")) == sent + 1
        assert again is not sink
        assert router.live_topics() == [BTC_TICKERS]

    @pytest.mark.asyncio
    async def test_failed_resubscribe_keeps_shared_sink(self, ticker_payload: dict) -> None:
        """같은 Sink를 쓰는 다른 토픽이 살아있으면 Sink는 열린 채 유지"""
        connection, router = make_router()
        candle = Topic.create("candle1m", {"instId": "BTC-USDT"})
        sink = await router.subscribe([BTC_TICKERS, candle])

        connection.reject("candle1m")
        await connection.simulate_disconnect()
        await connection.simulate_reconnect()
        await router._resubscribe_task

        assert router.live_topics() == [BTC_TICKERS]
        assert router.get_stats()["resubscribed"] == 1
        assert not sink.closed

        connection.push(ticker_frame("BTC-USDT", ticker_payload))
        assert sink.qsize() == 1

    @pytest.mark.asyncio
    async def test_resubscribe_interrupted_keeps_live(self) -> None:
        """재구독 중 다시 끊기면 live 유지 (다음 재연결에서 재시도)"""
        connection, router = make_router()
        sink = await router.subscribe([BTC_TICKERS])

        connection.auto_ack = False
        await connection.simulate_disconnect()
        await connection.simulate_reconnect()
        await wait_for_sent(connection, 2)
        await connection.simulate_disconnect()
        await router._resubscribe_task

        assert router.live_topics() == [BTC_TICKERS]
        assert not sink.closed

    @pytest.mark.asyncio
    async def test_sink_swap_during_resubscribe(self, tickers_frame: dict) -> None:
        """재구독 진행 중에도 살아있는 토픽의 Sink 교체는 허용, 프레임 추가 없음"""
        connection, router = make_router()
        await router.subscribe([BTC_TICKERS])

        connection.auto_ack = False
        await connection.simulate_disconnect()
        await connection.simulate_reconnect()
        await wait_for_sent(connection, 2)
        assert router.is_pending(BTC_TICKERS)

        replacement = DeliverySink()
        returned = await router.subscribe(
            [BTC_TICKERS],
            options=SubscriptionOptions(sink=replacement),
        )

        assert returned is replacement
        assert len(connection.sent_ops("subscribe")) == 2

        connection.push({"event": "subscribe", "arg": BTC_TICKERS.to_arg()})
        await router._resubscribe_task
        connection.push(tickers_frame)
        assert replacement.qsize() == 1

    @pytest.mark.asyncio
    async def test_pending_unsubscribe_still_rejects_subscribe(self) -> None:
        connection, router = make_router()
        await router.subscribe([BTC_TICKERS])

        connection.auto_ack = False
        task = asyncio.create_task(router.unsubscribe([BTC_TICKERS]))
        await wait_for_sent(connection, 2)

        with pytest.raises(AlreadyPendingError):
            await router.subscribe([BTC_TICKERS])

        connection.push({"event": "unsubscribe", "arg": BTC_TICKERS.to_arg()})
        await task

    @pytest.mark.asyncio
    async def test_exhausted_closes_sinks(self) -> None:
        """재연결 한도 초과 시 모든 Sink 종료, 엔트리 제거"""
        connection, router = make_router()
        sink = await router.subscribe([BTC_TICKERS])

        await router.handle_exhausted(TransportError("재연결 한도 초과"))

        assert sink.closed
        assert router.live_topics() == []
        assert router.get_entry(BTC_TICKERS) is None


class TestRouterClose:
    """종료 테스트"""

    @pytest.mark.asyncio
    async def test_close(self, router: SubscriptionRouter, mock_connection: MockWsConnection) -> None:
        sink = await router.subscribe([BTC_TICKERS])

        await router.close()

        assert sink.closed
        assert mock_connection.close_calls == 1
        with pytest.raises(TransportError):
            await router.subscribe([BTC_TICKERS])

    @pytest.mark.asyncio
    async def test_close_fails_pending(self) -> None:
        connection, router = make_router(auto_ack=False)

        task = asyncio.create_task(router.subscribe([BTC_TICKERS]))
        await wait_for_sent(connection, 1)
        await router.close()

        with pytest.raises(TransportError):
            await task

    @pytest.mark.asyncio
    async def test_close_idempotent(self, router: SubscriptionRouter, mock_connection: MockWsConnection) -> None:
        await router.close()
        await router.close()
        assert mock_connection.close_calls == 1

    @pytest.mark.asyncio
    async def test_dispatch_after_close_ignored(
        self,
        router: SubscriptionRouter,
        tickers_frame: dict,
    ) -> None:
        await router.close()
        router.dispatch(tickers_frame)
        assert router.get_stats()["unrouted"] == 0
