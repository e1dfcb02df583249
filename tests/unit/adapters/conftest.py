"""
어댑터 테스트 픽스처

OKX 푸시 프레임 샘플 및 Mock 연결/라우터 제공.
"""

from typing import Any

import pytest

from adapters.mock.connection import MockWsConnection
from adapters.okx.router import SubscriptionRouter
from core.types import ConnectionScope


# -------------------------------------------------------------------------
# 공통 데이터 픽스처 (OKX 문서 예시 기반)
# -------------------------------------------------------------------------

@pytest.fixture
def ticker_payload() -> dict[str, Any]:
    """tickers 채널 data 항목"""
    return {
        "instType": "SPOT",
        "instId": "BTC-USDT",
        "last": "9999.99",
        "lastSz": "0.1",
        "askPx": "9999.99",
        "askSz": "11",
        "bidPx": "8888.88",
        "bidSz": "5",
        "open24h": "9000",
        "high24h": "10000",
        "low24h": "8888.88",
        "volCcy24h": "2222",
        "vol24h": "2222",
        "sodUtc0": "2222",
        "sodUtc8": "2222",
        "ts": "1597026383085",
    }


@pytest.fixture
def candle_payload() -> list[str]:
    """candle 채널 data 항목 (9개 필드)"""
    return [
        "1597026383085",
        "8533.02",
        "8553.74",
        "8527.17",
        "8548.26",
        "45247",
        "529.5858061",
        "529.5858061",
        "0",
    ]


@pytest.fixture
def order_book_payload() -> dict[str, Any]:
    """books 채널 data 항목"""
    return {
        "asks": [["8476.98", "415", "0", "13"], ["8477", "7", "0", "2"]],
        "bids": [["8476.97", "256", "0", "12"]],
        "ts": "1597026383085",
        "checksum": -855196043,
        "prevSeqId": -1,
        "seqId": 123456,
    }


@pytest.fixture
def order_payload() -> dict[str, Any]:
    """orders 채널 data 항목"""
    return {
        "instType": "SWAP",
        "instId": "BTC-USDT-SWAP",
        "ordId": "312269865356374016",
        "clOrdId": "b1",
        "px": "30000",
        "sz": "2",
        "ordType": "limit",
        "side": "buy",
        "posSide": "long",
        "tdMode": "cross",
        "state": "partially_filled",
        "accFillSz": "1",
        "avgPx": "29999.5",
        "fillPx": "29999.5",
        "fillSz": "1",
        "fee": "-0.01",
        "feeCcy": "USDT",
        "uTime": "1597026383085",
        "cTime": "1597026383000",
    }


@pytest.fixture
def tickers_frame(ticker_payload: dict[str, Any]) -> dict[str, Any]:
    """tickers 푸시 프레임"""
    return {
        "arg": {"channel": "tickers", "instId": "BTC-USDT"},
        "data": [ticker_payload],
    }


# -------------------------------------------------------------------------
# Mock 연결 / 라우터
# -------------------------------------------------------------------------

@pytest.fixture
def mock_connection() -> MockWsConnection:
    """READY 상태, 자동 ack Mock 연결"""
    return MockWsConnection(scope=ConnectionScope.PUBLIC)


@pytest.fixture
def router(mock_connection: MockWsConnection) -> SubscriptionRouter:
    """Mock 연결에 묶인 라우터 (ack 대기 0.5초)"""
    router = SubscriptionRouter(mock_connection, connect_timeout=0.5, ack_timeout=0.5)
    mock_connection.bind(router)
    return router
