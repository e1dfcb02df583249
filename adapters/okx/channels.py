"""
채널 패밀리 및 디코더 매핑

채널 이름 → 패밀리(tag) → 디코더.
디코더는 구독 등록 시점에 한 번 결정되어 SubscriptionEntry에 보관됨.

고정 이름 채널은 정확히 일치로, 파라미터가 이름에 붙는 채널
(candle1m, mark-price-candle1H, books5 등)은 부분 문자열로 패밀리를 찾음.
부분 문자열 규칙은 가장 긴 패턴부터 검사하므로 평가 순서와 무관하게
서로 배타적으로 동작함 (mark-price-candle > index-candle > candle).
"""

from enum import Enum
from typing import Any, Callable

from adapters.okx.errors import DecodeDropped
from adapters.okx.models import (
    parse_account_update,
    parse_candle,
    parse_estimated_price,
    parse_funding_rate,
    parse_index_ticker,
    parse_mark_price,
    parse_open_interest,
    parse_order_book,
    parse_order_update,
    parse_position_update,
    parse_price_limit,
    parse_raw,
    parse_ticker,
    parse_trade,
)


# rawPayloadList -> 디코딩된 항목 목록 (실패 시 DecodeDropped)
PayloadDecoder = Callable[[Any], list[Any]]


class ChannelFamily(str, Enum):
    """채널 패밀리 태그"""

    # public
    INSTRUMENTS = "INSTRUMENTS"
    TICKERS = "TICKERS"
    OPEN_INTEREST = "OPEN_INTEREST"
    CANDLES = "CANDLES"
    TRADES = "TRADES"
    ESTIMATED_PRICE = "ESTIMATED_PRICE"
    MARK_PRICE = "MARK_PRICE"
    MARK_PRICE_CANDLES = "MARK_PRICE_CANDLES"
    PRICE_LIMIT = "PRICE_LIMIT"
    ORDER_BOOK = "ORDER_BOOK"
    OPTION_SUMMARY = "OPTION_SUMMARY"
    FUNDING_RATE = "FUNDING_RATE"
    INDEX_CANDLES = "INDEX_CANDLES"
    INDEX_TICKERS = "INDEX_TICKERS"

    # private
    ACCOUNT = "ACCOUNT"
    POSITIONS = "POSITIONS"
    BALANCE_AND_POSITION = "BALANCE_AND_POSITION"
    ORDERS = "ORDERS"


# 고정 이름 채널
EXACT_CHANNELS: dict[str, ChannelFamily] = {
    "instruments": ChannelFamily.INSTRUMENTS,
    "tickers": ChannelFamily.TICKERS,
    "open-interest": ChannelFamily.OPEN_INTEREST,
    "trades": ChannelFamily.TRADES,
    "estimated-price": ChannelFamily.ESTIMATED_PRICE,
    "mark-price": ChannelFamily.MARK_PRICE,
    "price-limit": ChannelFamily.PRICE_LIMIT,
    "opt-summary": ChannelFamily.OPTION_SUMMARY,
    "funding-rate": ChannelFamily.FUNDING_RATE,
    "index-tickers": ChannelFamily.INDEX_TICKERS,
    "bbo-tbt": ChannelFamily.ORDER_BOOK,
    "account": ChannelFamily.ACCOUNT,
    "positions": ChannelFamily.POSITIONS,
    "balance_and_position": ChannelFamily.BALANCE_AND_POSITION,
    "orders": ChannelFamily.ORDERS,
}

# 이름에 파라미터가 붙는 채널 (부분 문자열 → 패밀리)
PARAMETERIZED_PATTERNS: dict[str, ChannelFamily] = {
    "mark-price-candle": ChannelFamily.MARK_PRICE_CANDLES,
    "index-candle": ChannelFamily.INDEX_CANDLES,
    "candle": ChannelFamily.CANDLES,
    "books": ChannelFamily.ORDER_BOOK,
}

# 긴 패턴 우선
_PATTERNS_LONGEST_FIRST: tuple[tuple[str, ChannelFamily], ...] = tuple(
    sorted(PARAMETERIZED_PATTERNS.items(), key=lambda kv: (-len(kv[0]), kv[0]))
)

# 폴백 라우팅 대상 패밀리
PARAMETERIZED_FAMILIES: frozenset[ChannelFamily] = frozenset(
    PARAMETERIZED_PATTERNS.values()
)

PRIVATE_FAMILIES: frozenset[ChannelFamily] = frozenset({
    ChannelFamily.ACCOUNT,
    ChannelFamily.POSITIONS,
    ChannelFamily.BALANCE_AND_POSITION,
    ChannelFamily.ORDERS,
})


def resolve_family(channel: str) -> ChannelFamily | None:
    """채널 이름 → 패밀리

    1. 고정 이름 정확히 일치
    2. 부분 문자열 패턴 (가장 긴 패턴부터)
    """
    family = EXACT_CHANNELS.get(channel)
    if family is not None:
        return family

    for pattern, pattern_family in _PATTERNS_LONGEST_FIRST:
        if pattern in channel:
            return pattern_family

    return None


def make_decoder(parser: Callable[[Any], Any]) -> PayloadDecoder:
    """항목 파서 → 페이로드 디코더

    data 배열의 각 항목에 파서를 적용. 어떤 실패든 DecodeDropped로 변환.
    """

    def decode(payload: Any) -> list[Any]:
        if not isinstance(payload, list):
            raise DecodeDropped(f"data는 배열이어야 합니다: {type(payload).__name__}")
        try:
            return [parser(item) for item in payload]
        except DecodeDropped:
            raise
        except Exception as e:
            raise DecodeDropped(f"{parser.__name__} 실패: {e}") from e

    decode.__name__ = f"decode_{parser.__name__}"
    return decode


DECODERS: dict[ChannelFamily, PayloadDecoder] = {
    ChannelFamily.INSTRUMENTS: make_decoder(parse_raw),
    ChannelFamily.TICKERS: make_decoder(parse_ticker),
    ChannelFamily.OPEN_INTEREST: make_decoder(parse_open_interest),
    ChannelFamily.CANDLES: make_decoder(parse_candle),
    ChannelFamily.TRADES: make_decoder(parse_trade),
    ChannelFamily.ESTIMATED_PRICE: make_decoder(parse_estimated_price),
    ChannelFamily.MARK_PRICE: make_decoder(parse_mark_price),
    ChannelFamily.MARK_PRICE_CANDLES: make_decoder(parse_candle),
    ChannelFamily.PRICE_LIMIT: make_decoder(parse_price_limit),
    ChannelFamily.ORDER_BOOK: make_decoder(parse_order_book),
    ChannelFamily.OPTION_SUMMARY: make_decoder(parse_raw),
    ChannelFamily.FUNDING_RATE: make_decoder(parse_funding_rate),
    ChannelFamily.INDEX_CANDLES: make_decoder(parse_candle),
    ChannelFamily.INDEX_TICKERS: make_decoder(parse_index_ticker),
    ChannelFamily.ACCOUNT: make_decoder(parse_account_update),
    ChannelFamily.POSITIONS: make_decoder(parse_position_update),
    ChannelFamily.BALANCE_AND_POSITION: make_decoder(parse_raw),
    ChannelFamily.ORDERS: make_decoder(parse_order_update),
}

RAW_DECODER: PayloadDecoder = make_decoder(parse_raw)


def decoder_for(family: ChannelFamily | None) -> PayloadDecoder:
    """패밀리 → 디코더 (알 수 없는 패밀리는 dict 그대로)"""
    if family is None:
        return RAW_DECODER
    return DECODERS[family]
