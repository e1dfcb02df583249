"""
Public 채널 구독 Facade

채널별 파라미터 조합 → Topic 생성 → Router 위임.
모든 구독 메서드는 이벤트가 전달될 DeliverySink를 반환.

공식 문서: https://www.okx.com/docs-v5/en/#websocket-api-public-channel
"""

from typing import Callable, Sequence

from adapters.okx.router import SubscriptionOptions, SubscriptionRouter
from adapters.okx.sink import DeliverySink
from adapters.okx.topic import Topic

# 오더북 깊이 채널
ORDER_BOOK_CHANNELS = ("books", "books5", "bbo-tbt", "books-l2-tbt", "books50-l2-tbt")


class PublicChannels:
    """Public WebSocket 채널

    Args:
        get_router: public 라우터 반환 (최초 호출 시 연결 생성)

    사용 예시:
    ```python
    sink = await client.public.tickers("BTC-USDT")
    event = await sink.get()
    ticker = event.data[0]
    ```
    """

    def __init__(self, get_router: Callable[[], SubscriptionRouter]):
        self._get_router = get_router

    async def _subscribe(
        self,
        topics: list[Topic],
        options: SubscriptionOptions | None,
    ) -> DeliverySink:
        return await self._get_router().subscribe(topics, options=options)

    async def _unsubscribe(
        self,
        topics: list[Topic],
        clear_sink: bool | None,
    ) -> None:
        await self._get_router().unsubscribe(topics, clear_sink=clear_sink)

    # -------------------------------------------------------------------------
    # Topic 생성
    # -------------------------------------------------------------------------

    @staticmethod
    def instruments_topic(inst_type: str) -> Topic:
        return Topic.create("instruments", {"instType": inst_type})

    @staticmethod
    def tickers_topic(inst_id: str) -> Topic:
        return Topic.create("tickers", {"instId": inst_id})

    @staticmethod
    def open_interest_topic(inst_id: str) -> Topic:
        return Topic.create("open-interest", {"instId": inst_id})

    @staticmethod
    def candlesticks_topic(inst_id: str, bar: str = "1m") -> Topic:
        return Topic.create(f"candle{bar}", {"instId": inst_id})

    @staticmethod
    def trades_topic(inst_id: str) -> Topic:
        return Topic.create("trades", {"instId": inst_id})

    @staticmethod
    def estimated_price_topic(
        inst_type: str,
        inst_family: str | None = None,
        inst_id: str | None = None,
    ) -> Topic:
        return Topic.create(
            "estimated-price",
            {"instType": inst_type, "instFamily": inst_family, "instId": inst_id},
        )

    @staticmethod
    def mark_price_topic(inst_id: str) -> Topic:
        return Topic.create("mark-price", {"instId": inst_id})

    @staticmethod
    def mark_price_candlesticks_topic(inst_id: str, bar: str = "1m") -> Topic:
        return Topic.create(f"mark-price-candle{bar}", {"instId": inst_id})

    @staticmethod
    def price_limit_topic(inst_id: str) -> Topic:
        return Topic.create("price-limit", {"instId": inst_id})

    @staticmethod
    def order_book_topics(
        inst_ids: str | Sequence[str],
        channel: str = "books",
    ) -> list[Topic]:
        if channel not in ORDER_BOOK_CHANNELS:
            raise ValueError(f"지원하지 않는 오더북 채널: {channel}")
        if isinstance(inst_ids, str):
            inst_ids = [inst_ids]
        return [Topic.create(channel, {"instId": inst_id}) for inst_id in inst_ids]

    @staticmethod
    def option_summary_topic(inst_family: str) -> Topic:
        return Topic.create("opt-summary", {"instFamily": inst_family})

    @staticmethod
    def funding_rate_topic(inst_id: str) -> Topic:
        return Topic.create("funding-rate", {"instId": inst_id})

    @staticmethod
    def index_candlesticks_topic(inst_id: str, bar: str = "1m") -> Topic:
        return Topic.create(f"index-candle{bar}", {"instId": inst_id})

    @staticmethod
    def index_tickers_topic(inst_id: str) -> Topic:
        return Topic.create("index-tickers", {"instId": inst_id})

    # -------------------------------------------------------------------------
    # 구독 / 해지
    # -------------------------------------------------------------------------

    async def instruments(
        self,
        inst_type: str,
        options: SubscriptionOptions | None = None,
    ) -> DeliverySink:
        """상품 목록 변경 (instType: SPOT, MARGIN, SWAP, FUTURES, OPTION)"""
        return await self._subscribe([self.instruments_topic(inst_type)], options)

    async def unsubscribe_instruments(
        self,
        inst_type: str,
        clear_sink: bool | None = None,
    ) -> None:
        await self._unsubscribe([self.instruments_topic(inst_type)], clear_sink)

    async def tickers(
        self,
        inst_id: str,
        options: SubscriptionOptions | None = None,
    ) -> DeliverySink:
        """시세 (최대 100ms 주기)"""
        return await self._subscribe([self.tickers_topic(inst_id)], options)

    async def unsubscribe_tickers(
        self,
        inst_id: str,
        clear_sink: bool | None = None,
    ) -> None:
        await self._unsubscribe([self.tickers_topic(inst_id)], clear_sink)

    async def open_interest(
        self,
        inst_id: str,
        options: SubscriptionOptions | None = None,
    ) -> DeliverySink:
        return await self._subscribe([self.open_interest_topic(inst_id)], options)

    async def unsubscribe_open_interest(
        self,
        inst_id: str,
        clear_sink: bool | None = None,
    ) -> None:
        await self._unsubscribe([self.open_interest_topic(inst_id)], clear_sink)

    async def candlesticks(
        self,
        inst_id: str,
        bar: str = "1m",
        options: SubscriptionOptions | None = None,
    ) -> DeliverySink:
        """캔들 (채널 이름: candle{bar}, 예: candle1m, candle1H)"""
        return await self._subscribe([self.candlesticks_topic(inst_id, bar)], options)

    async def unsubscribe_candlesticks(
        self,
        inst_id: str,
        bar: str = "1m",
        clear_sink: bool | None = None,
    ) -> None:
        await self._unsubscribe([self.candlesticks_topic(inst_id, bar)], clear_sink)

    async def trades(
        self,
        inst_id: str,
        options: SubscriptionOptions | None = None,
    ) -> DeliverySink:
        return await self._subscribe([self.trades_topic(inst_id)], options)

    async def unsubscribe_trades(
        self,
        inst_id: str,
        clear_sink: bool | None = None,
    ) -> None:
        await self._unsubscribe([self.trades_topic(inst_id)], clear_sink)

    async def estimated_price(
        self,
        inst_type: str,
        inst_family: str | None = None,
        inst_id: str | None = None,
        options: SubscriptionOptions | None = None,
    ) -> DeliverySink:
        """예상 체결가 (FUTURES/OPTION, instFamily 또는 instId 중 하나 필요)"""
        if inst_family is None and inst_id is None:
            raise ValueError("inst_family 또는 inst_id가 필요합니다")
        topic = self.estimated_price_topic(inst_type, inst_family, inst_id)
        return await self._subscribe([topic], options)

    async def unsubscribe_estimated_price(
        self,
        inst_type: str,
        inst_family: str | None = None,
        inst_id: str | None = None,
        clear_sink: bool | None = None,
    ) -> None:
        topic = self.estimated_price_topic(inst_type, inst_family, inst_id)
        await self._unsubscribe([topic], clear_sink)

    async def mark_price(
        self,
        inst_id: str,
        options: SubscriptionOptions | None = None,
    ) -> DeliverySink:
        return await self._subscribe([self.mark_price_topic(inst_id)], options)

    async def unsubscribe_mark_price(
        self,
        inst_id: str,
        clear_sink: bool | None = None,
    ) -> None:
        await self._unsubscribe([self.mark_price_topic(inst_id)], clear_sink)

    async def mark_price_candlesticks(
        self,
        inst_id: str,
        bar: str = "1m",
        options: SubscriptionOptions | None = None,
    ) -> DeliverySink:
        topic = self.mark_price_candlesticks_topic(inst_id, bar)
        return await self._subscribe([topic], options)

    async def unsubscribe_mark_price_candlesticks(
        self,
        inst_id: str,
        bar: str = "1m",
        clear_sink: bool | None = None,
    ) -> None:
        topic = self.mark_price_candlesticks_topic(inst_id, bar)
        await self._unsubscribe([topic], clear_sink)

    async def price_limit(
        self,
        inst_id: str,
        options: SubscriptionOptions | None = None,
    ) -> DeliverySink:
        return await self._subscribe([self.price_limit_topic(inst_id)], options)

    async def unsubscribe_price_limit(
        self,
        inst_id: str,
        clear_sink: bool | None = None,
    ) -> None:
        await self._unsubscribe([self.price_limit_topic(inst_id)], clear_sink)

    async def order_book(
        self,
        inst_ids: str | Sequence[str],
        channel: str = "books",
        options: SubscriptionOptions | None = None,
    ) -> DeliverySink:
        """오더북 (여러 심볼을 한 프레임으로 구독, 하나의 Sink 공유)

        Args:
            inst_ids: 심볼 또는 심볼 목록
            channel: books, books5, bbo-tbt, books-l2-tbt, books50-l2-tbt
        """
        return await self._subscribe(self.order_book_topics(inst_ids, channel), options)

    async def unsubscribe_order_book(
        self,
        inst_ids: str | Sequence[str],
        channel: str = "books",
        clear_sink: bool | None = None,
    ) -> None:
        await self._unsubscribe(self.order_book_topics(inst_ids, channel), clear_sink)

    async def option_summary(
        self,
        inst_family: str,
        options: SubscriptionOptions | None = None,
    ) -> DeliverySink:
        return await self._subscribe([self.option_summary_topic(inst_family)], options)

    async def unsubscribe_option_summary(
        self,
        inst_family: str,
        clear_sink: bool | None = None,
    ) -> None:
        await self._unsubscribe([self.option_summary_topic(inst_family)], clear_sink)

    async def funding_rate(
        self,
        inst_id: str,
        options: SubscriptionOptions | None = None,
    ) -> DeliverySink:
        return await self._subscribe([self.funding_rate_topic(inst_id)], options)

    async def unsubscribe_funding_rate(
        self,
        inst_id: str,
        clear_sink: bool | None = None,
    ) -> None:
        await self._unsubscribe([self.funding_rate_topic(inst_id)], clear_sink)

    async def index_candlesticks(
        self,
        inst_id: str,
        bar: str = "1m",
        options: SubscriptionOptions | None = None,
    ) -> DeliverySink:
        topic = self.index_candlesticks_topic(inst_id, bar)
        return await self._subscribe([topic], options)

    async def unsubscribe_index_candlesticks(
        self,
        inst_id: str,
        bar: str = "1m",
        clear_sink: bool | None = None,
    ) -> None:
        topic = self.index_candlesticks_topic(inst_id, bar)
        await self._unsubscribe([topic], clear_sink)

    async def index_tickers(
        self,
        inst_id: str,
        options: SubscriptionOptions | None = None,
    ) -> DeliverySink:
        return await self._subscribe([self.index_tickers_topic(inst_id)], options)

    async def unsubscribe_index_tickers(
        self,
        inst_id: str,
        clear_sink: bool | None = None,
    ) -> None:
        await self._unsubscribe([self.index_tickers_topic(inst_id)], clear_sink)
