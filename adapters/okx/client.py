"""
OKX 클라이언트

자격 증명, Signer 1개, REST 클라이언트 1개,
scope별 (WsConnection, SubscriptionRouter) 쌍을 소유하는 명시적 핸들.
WebSocket 연결은 해당 scope의 첫 구독 시점에 생성.
"""

import asyncio
import logging
from datetime import timedelta
from typing import Any

from adapters.okx.connection import WsConnection
from adapters.okx.endpoints import SubAccountApi, TradeDataApi
from adapters.okx.private import PrivateChannels
from adapters.okx.public import PublicChannels
from adapters.okx.rest_client import OkxRestClient
from adapters.okx.router import SubscriptionRouter
from adapters.okx.signer import Signer
from core.config.loader import ExchangeConfig
from core.constants import Defaults, OkxEndpoints
from core.types import ConnectionScope, TradingMode

logger = logging.getLogger(__name__)


class OkxClient:
    """OKX v5 클라이언트

    Args:
        api_key: API 키 (public 채널만 쓰면 생략 가능)
        secret_key: API 시크릿
        passphrase: API 패스프레이즈
        mode: 거래 모드 (DEMO면 모의거래 엔드포인트/헤더)
        rest_url: REST URL (None이면 모드 기본값)
        ws_public_url: public WS URL (None이면 모드 기본값)
        ws_private_url: private WS URL (None이면 모드 기본값)
        http_timeout: REST 요청 타임아웃 (초)
        connect_timeout: WS READY 대기 제한 (초)
        ack_timeout: 구독 ack 대기 제한 (초)

    사용 예시:
    ```python
    async with OkxClient.from_config(settings.exchange_config) as client:
        await client.sync_time()
        sink = await client.public.tickers("BTC-USDT")
        async for event in sink:
            print(event.data[0].last)
    ```
    """

    def __init__(
        self,
        api_key: str = "",
        secret_key: str = "",
        passphrase: str = "",
        mode: TradingMode = TradingMode.PRODUCTION,
        rest_url: str | None = None,
        ws_public_url: str | None = None,
        ws_private_url: str | None = None,
        http_timeout: float = Defaults.HTTP_TIMEOUT_SEC,
        connect_timeout: float = Defaults.CONNECT_TIMEOUT_SEC,
        ack_timeout: float = Defaults.ACK_TIMEOUT_SEC,
    ):
        demo = mode == TradingMode.DEMO

        self.mode = mode
        self.api_key = api_key
        self.passphrase = passphrase
        self.connect_timeout = connect_timeout
        self.ack_timeout = ack_timeout

        if demo:
            self.rest_url = rest_url or OkxEndpoints.DEMO_REST_URL
            self.ws_public_url = ws_public_url or OkxEndpoints.DEMO_WS_PUBLIC_URL
            self.ws_private_url = ws_private_url or OkxEndpoints.DEMO_WS_PRIVATE_URL
        else:
            self.rest_url = rest_url or OkxEndpoints.PROD_REST_URL
            self.ws_public_url = ws_public_url or OkxEndpoints.PROD_WS_PUBLIC_URL
            self.ws_private_url = ws_private_url or OkxEndpoints.PROD_WS_PRIVATE_URL

        # REST와 WS 로그인이 같은 시계 오차를 쓰도록 공유
        self.signer = Signer(secret_key)
        self.rest = OkxRestClient(
            self.rest_url,
            api_key=api_key,
            passphrase=passphrase,
            demo=demo,
            timeout=http_timeout,
            signer=self.signer,
        )

        self._routers: dict[ConnectionScope, SubscriptionRouter] = {}
        self._closed = False

        self.public = PublicChannels(lambda: self.router(ConnectionScope.PUBLIC))
        self.private = PrivateChannels(lambda: self.router(ConnectionScope.PRIVATE))

    @classmethod
    def from_config(cls, config: ExchangeConfig, **kwargs: Any) -> "OkxClient":
        """ExchangeConfig로 생성 (타임아웃은 config.options, kwargs가 우선)"""
        timeouts: dict[str, Any] = {
            "http_timeout": config.options.http_timeout,
            "connect_timeout": config.options.connect_timeout,
            "ack_timeout": config.options.ack_timeout,
        }
        timeouts.update(kwargs)
        return cls(
            api_key=config.api_key,
            secret_key=config.secret_key,
            passphrase=config.passphrase,
            mode=TradingMode.DEMO if config.demo else TradingMode.PRODUCTION,
            rest_url=config.rest_url,
            ws_public_url=config.ws_public_url,
            ws_private_url=config.ws_private_url,
            **timeouts,
        )

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def sub_account(self) -> SubAccountApi:
        """서브계정 API"""
        return self.rest.sub_account

    @property
    def trade_data(self) -> TradeDataApi:
        """거래 통계 API"""
        return self.rest.trade_data

    def router(self, scope: ConnectionScope) -> SubscriptionRouter:
        """scope의 라우터 반환 (없으면 연결과 함께 생성, 연결 시작은 첫 구독 시)

        Raises:
            RuntimeError: 종료된 클라이언트
            ValueError: private scope인데 자격 증명이 없음
        """
        if self._closed:
            raise RuntimeError("종료된 클라이언트입니다")

        router = self._routers.get(scope)
        if router is not None:
            return router

        if scope == ConnectionScope.PRIVATE and not self.api_key:
            raise ValueError("private 채널에는 API 자격 증명이 필요합니다")

        router = self._create_router(scope)
        self._routers[scope] = router
        logger.debug("구독 라우터 생성", extra={"scope": scope.value})
        return router

    def _create_router(self, scope: ConnectionScope) -> SubscriptionRouter:
        """연결 + 라우터 쌍 생성 후 콜백 연결"""
        url = self.ws_public_url if scope == ConnectionScope.PUBLIC else self.ws_private_url
        holder: list[SubscriptionRouter] = []

        connection = WsConnection(
            url,
            scope,
            on_frame=lambda frame: holder[0].dispatch(frame),
            on_state_change=lambda state: holder[0].on_state_change(state),
            on_exhausted=lambda error: holder[0].handle_exhausted(error),
            signer=self.signer if scope == ConnectionScope.PRIVATE else None,
            api_key=self.api_key,
            passphrase=self.passphrase,
        )
        router = SubscriptionRouter(
            connection,
            connect_timeout=self.connect_timeout,
            ack_timeout=self.ack_timeout,
        )
        holder.append(router)
        return router

    async def sync_time(self) -> timedelta:
        """서버 시간 동기화 (REST 서명과 WS 로그인 모두에 적용)"""
        return await self.rest.sync_time()

    async def close(self) -> None:
        """모든 연결/라우터/HTTP 클라이언트 종료

        대기 중인 구독 작업은 TransportError로 끝나고 모든 Sink가 닫힘.
        """
        if self._closed:
            return
        self._closed = True

        routers = list(self._routers.values())
        self._routers.clear()
        await asyncio.gather(*(router.close() for router in routers))
        await self.rest.close()

        logger.info("OKX 클라이언트 종료")

    async def __aenter__(self) -> "OkxClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
