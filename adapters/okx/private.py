"""
Private 채널 구독 Facade

로그인된 private 연결의 계정/포지션/주문 채널.

공식 문서: https://www.okx.com/docs-v5/en/#websocket-api-private-channel
"""

from typing import Callable

from adapters.okx.router import SubscriptionOptions, SubscriptionRouter
from adapters.okx.sink import DeliverySink
from adapters.okx.topic import Topic


class PrivateChannels:
    """Private WebSocket 채널

    Args:
        get_router: private 라우터 반환 (최초 호출 시 연결 및 로그인)
    """

    def __init__(self, get_router: Callable[[], SubscriptionRouter]):
        self._get_router = get_router

    @staticmethod
    def account_topic(ccy: str | None = None) -> Topic:
        return Topic.create("account", {"ccy": ccy})

    @staticmethod
    def positions_topic(
        inst_type: str,
        inst_family: str | None = None,
        inst_id: str | None = None,
    ) -> Topic:
        return Topic.create(
            "positions",
            {"instType": inst_type, "instFamily": inst_family, "instId": inst_id},
        )

    @staticmethod
    def balance_and_position_topic() -> Topic:
        return Topic.create("balance_and_position")

    @staticmethod
    def orders_topic(
        inst_type: str,
        inst_family: str | None = None,
        inst_id: str | None = None,
    ) -> Topic:
        return Topic.create(
            "orders",
            {"instType": inst_type, "instFamily": inst_family, "instId": inst_id},
        )

    async def account(
        self,
        ccy: str | None = None,
        options: SubscriptionOptions | None = None,
    ) -> DeliverySink:
        """계정 잔고 (ccy 생략 시 전체 통화)"""
        topic = self.account_topic(ccy)
        return await self._get_router().subscribe([topic], options=options)

    async def unsubscribe_account(
        self,
        ccy: str | None = None,
        clear_sink: bool | None = None,
    ) -> None:
        topic = self.account_topic(ccy)
        await self._get_router().unsubscribe([topic], clear_sink=clear_sink)

    async def positions(
        self,
        inst_type: str = "ANY",
        inst_family: str | None = None,
        inst_id: str | None = None,
        options: SubscriptionOptions | None = None,
    ) -> DeliverySink:
        """포지션 (instType: MARGIN, SWAP, FUTURES, OPTION, ANY)"""
        topic = self.positions_topic(inst_type, inst_family, inst_id)
        return await self._get_router().subscribe([topic], options=options)

    async def unsubscribe_positions(
        self,
        inst_type: str = "ANY",
        inst_family: str | None = None,
        inst_id: str | None = None,
        clear_sink: bool | None = None,
    ) -> None:
        topic = self.positions_topic(inst_type, inst_family, inst_id)
        await self._get_router().unsubscribe([topic], clear_sink=clear_sink)

    async def balance_and_position(
        self,
        options: SubscriptionOptions | None = None,
    ) -> DeliverySink:
        topic = self.balance_and_position_topic()
        return await self._get_router().subscribe([topic], options=options)

    async def unsubscribe_balance_and_position(
        self,
        clear_sink: bool | None = None,
    ) -> None:
        topic = self.balance_and_position_topic()
        await self._get_router().unsubscribe([topic], clear_sink=clear_sink)

    async def orders(
        self,
        inst_type: str = "ANY",
        inst_family: str | None = None,
        inst_id: str | None = None,
        options: SubscriptionOptions | None = None,
    ) -> DeliverySink:
        """주문 업데이트"""
        topic = self.orders_topic(inst_type, inst_family, inst_id)
        return await self._get_router().subscribe([topic], options=options)

    async def unsubscribe_orders(
        self,
        inst_type: str = "ANY",
        inst_family: str | None = None,
        inst_id: str | None = None,
        clear_sink: bool | None = None,
    ) -> None:
        topic = self.orders_topic(inst_type, inst_family, inst_id)
        await self._get_router().unsubscribe([topic], clear_sink=clear_sink)
