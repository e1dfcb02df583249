#!/usr/bin/env python3
"""
실시간 시세 스트리밍 스크립트

흐름:
1. secrets.yaml 로드 (없으면 public 채널만 사용)
2. 서버 시간 동기화
3. tickers 구독 후 수신 이벤트 출력
4. --orders 지정 시 private orders 채널도 함께 구독

사용법:
    python scripts/stream_tickers.py BTC-USDT ETH-USDT --seconds 60
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# 프로젝트 루트를 Python 경로에 추가
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from adapters.okx.client import OkxClient
from adapters.okx.errors import OkxError
from adapters.okx.sink import DeliverySink
from core.config.loader import SecretsLoadError, get_settings
from core.logging import setup_logging
from core.types import ConnectionScope

logger = logging.getLogger(__name__)


async def print_events(name: str, sink: DeliverySink) -> None:
    """Sink가 닫힐 때까지 이벤트 출력"""
    async for event in sink:
        for item in event.data:
            if name == "tickers":
                logger.info(f"[{item.inst_id}] last={item.last} bid={item.bid_px} ask={item.ask_px}")
            else:
                logger.info(f"[{name}] {item}")


def create_client() -> OkxClient:
    try:
        settings = get_settings()
    except SecretsLoadError as e:
        logger.warning(f"secrets.yaml 로드 실패, public 채널만 사용: {e}")
        return OkxClient()

    logger.info(f"  - mode: {settings.mode.value}")
    return OkxClient.from_config(settings.exchange_config)


async def main() -> int:
    parser = argparse.ArgumentParser(description="OKX 실시간 시세 스트리밍")
    parser.add_argument("inst_ids", nargs="+", help="심볼 (예: BTC-USDT)")
    parser.add_argument(
        "--seconds",
        type=float,
        default=30.0,
        help="스트리밍 시간 (초)",
    )
    parser.add_argument(
        "--orders",
        action="store_true",
        help="private orders 채널 구독 (API 키 필요)",
    )
    args = parser.parse_args()

    setup_logging("stream_tickers")

    tasks: list[asyncio.Task[None]] = []
    async with create_client() as client:
        try:
            await client.sync_time()

            for inst_id in args.inst_ids:
                sink = await client.public.tickers(inst_id)
                tasks.append(asyncio.create_task(print_events("tickers", sink)))

            if args.orders:
                sink = await client.private.orders()
                tasks.append(asyncio.create_task(print_events("orders", sink)))
        except (OkxError, ValueError) as e:
            logger.error(f"구독 실패: {e}")
            return 1

        logger.info(f"{args.seconds}초 동안 수신")
        await asyncio.sleep(args.seconds)

        stats = client.router(ConnectionScope.PUBLIC).get_stats()
        logger.info(f"통계: {stats}")

    # 클라이언트 종료 시 Sink가 닫히므로 출력 태스크도 끝남
    await asyncio.gather(*tasks)
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
