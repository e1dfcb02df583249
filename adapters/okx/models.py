"""
OKX 푸시 페이로드 → 도메인 모델 변환

WebSocket 푸시의 data 배열 항목을 표준 모델로 변환.
모든 가격/수량은 문자열에서 Decimal로 변환 (빈 문자열은 None).
전용 모델이 없는 채널은 dict 그대로 전달.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any


@dataclass(frozen=True)
class PushEvent:
    """라우터가 Sink에 넣는 푸시 이벤트

    Attributes:
        channel: 수신 프레임의 채널 이름 (예: candle1m)
        arg: 수신 프레임의 arg 객체
        data: 디코딩된 항목 목록
        action: 오더북 snapshot/update 구분 (해당 채널만)
    """

    channel: str
    arg: dict[str, Any]
    data: list[Any] = field(default_factory=list)
    action: str | None = None


@dataclass(frozen=True)
class Ticker:
    """티커"""

    inst_type: str
    inst_id: str
    last: Decimal | None
    last_sz: Decimal | None
    ask_px: Decimal | None
    ask_sz: Decimal | None
    bid_px: Decimal | None
    bid_sz: Decimal | None
    open_24h: Decimal | None
    high_24h: Decimal | None
    low_24h: Decimal | None
    vol_24h: Decimal | None
    vol_ccy_24h: Decimal | None
    ts: int


@dataclass(frozen=True)
class Candle:
    """캔들 (일반/마크가격/인덱스 공용)

    인덱스/마크가격 캔들은 거래량 필드가 없어 None.
    """

    ts: int
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    vol: Decimal | None = None
    vol_ccy: Decimal | None = None
    confirm: bool = False


@dataclass(frozen=True)
class PublicTrade:
    """공개 체결"""

    inst_id: str
    trade_id: str
    px: Decimal
    sz: Decimal
    side: str
    ts: int


@dataclass(frozen=True)
class BookLevel:
    """호가 한 단계 [가격, 수량, 청산 주문 수(폐기 필드), 주문 수]"""

    price: Decimal
    size: Decimal
    order_count: int = 0


@dataclass(frozen=True)
class OrderBook:
    """오더북 스냅샷/업데이트"""

    asks: tuple[BookLevel, ...]
    bids: tuple[BookLevel, ...]
    ts: int
    checksum: int | None = None
    seq_id: int | None = None
    prev_seq_id: int | None = None


@dataclass(frozen=True)
class MarkPrice:
    """마크 가격"""

    inst_type: str
    inst_id: str
    mark_px: Decimal
    ts: int


@dataclass(frozen=True)
class FundingRate:
    """펀딩비"""

    inst_type: str
    inst_id: str
    funding_rate: Decimal | None
    next_funding_rate: Decimal | None
    funding_time: int


@dataclass(frozen=True)
class OpenInterest:
    """미결제약정"""

    inst_type: str
    inst_id: str
    oi: Decimal
    oi_ccy: Decimal | None
    ts: int


@dataclass(frozen=True)
class PriceLimit:
    """가격 제한"""

    inst_id: str
    buy_lmt: Decimal | None
    sell_lmt: Decimal | None
    ts: int


@dataclass(frozen=True)
class EstimatedPrice:
    """예상 인도/행사가"""

    inst_type: str
    inst_id: str
    settle_px: Decimal
    ts: int


@dataclass(frozen=True)
class IndexTicker:
    """인덱스 티커"""

    inst_id: str
    idx_px: Decimal
    open_24h: Decimal | None
    high_24h: Decimal | None
    low_24h: Decimal | None
    ts: int


@dataclass(frozen=True)
class OrderUpdate:
    """주문 상태 변경 (private orders 채널)"""

    inst_type: str
    inst_id: str
    ord_id: str
    cl_ord_id: str
    side: str
    ord_type: str
    state: str
    px: Decimal | None
    sz: Decimal
    fill_sz: Decimal | None
    acc_fill_sz: Decimal | None
    avg_px: Decimal | None
    u_time: int


@dataclass(frozen=True)
class PositionUpdate:
    """포지션 변경 (private positions 채널)"""

    inst_type: str
    inst_id: str
    pos_id: str
    pos_side: str
    pos: Decimal
    avg_px: Decimal | None
    upl: Decimal | None
    lever: Decimal | None
    mgn_mode: str
    u_time: int


@dataclass(frozen=True)
class AccountUpdate:
    """계좌 잔고 (private account 채널)

    details는 통화별 원본 dict 목록.
    """

    total_eq: Decimal | None
    u_time: int
    details: tuple[dict[str, Any], ...] = ()


# -------------------------------------------------------------------------
# 변환 헬퍼
# -------------------------------------------------------------------------

def _dec(value: Any) -> Decimal | None:
    """문자열 → Decimal (빈 값은 None)"""
    if value is None or value == "":
        return None
    return Decimal(str(value))


def _req_dec(value: Any) -> Decimal:
    """필수 Decimal 필드"""
    result = _dec(value)
    if result is None:
        raise ValueError("필수 숫자 필드가 비어 있습니다")
    return result


def _int(value: Any, default: int = 0) -> int:
    if value is None or value == "":
        return default
    return int(value)


def _opt_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    return int(value)


def _require_dict(item: Any) -> dict[str, Any]:
    if not isinstance(item, dict):
        raise TypeError(f"dict 항목이 필요합니다: {type(item).__name__}")
    return item


# -------------------------------------------------------------------------
# 공개 채널 파서
# -------------------------------------------------------------------------

def parse_ticker(item: Any) -> Ticker:
    """tickers 채널 항목 -> Ticker

    예시:
    {
        "instType": "SPOT", "instId": "BTC-USDT",
        "last": "9999.99", "lastSz": "0.1",
        "askPx": "9999.99", "askSz": "11", "bidPx": "8888.88", "bidSz": "5",
        "open24h": "9000", "high24h": "10000", "low24h": "8888.88",
        "volCcy24h": "2222", "vol24h": "2222", "ts": "1597026383085"
    }
    """
    data = _require_dict(item)
    return Ticker(
        inst_type=data.get("instType", ""),
        inst_id=data["instId"],
        last=_dec(data.get("last")),
        last_sz=_dec(data.get("lastSz")),
        ask_px=_dec(data.get("askPx")),
        ask_sz=_dec(data.get("askSz")),
        bid_px=_dec(data.get("bidPx")),
        bid_sz=_dec(data.get("bidSz")),
        open_24h=_dec(data.get("open24h")),
        high_24h=_dec(data.get("high24h")),
        low_24h=_dec(data.get("low24h")),
        vol_24h=_dec(data.get("vol24h")),
        vol_ccy_24h=_dec(data.get("volCcy24h")),
        ts=_int(data.get("ts")),
    )


def parse_candle(item: Any) -> Candle:
    """candle 채널 항목 (배열) -> Candle

    일반 캔들: [ts, o, h, l, c, vol, volCcy, volCcyQuote, confirm]
    마크가격/인덱스 캔들: [ts, o, h, l, c, confirm]
    """
    if not isinstance(item, (list, tuple)) or len(item) < 5:
        raise TypeError("캔들 항목은 최소 5개 원소의 배열이어야 합니다")

    if len(item) >= 7:
        vol = _dec(item[5])
        vol_ccy = _dec(item[6])
    else:
        vol = None
        vol_ccy = None

    # confirm 필드는 마지막 원소 (6/8/9개 형식)
    confirm = str(item[-1]) == "1" if len(item) in (6, 8, 9) else False

    return Candle(
        ts=int(item[0]),
        open=_req_dec(item[1]),
        high=_req_dec(item[2]),
        low=_req_dec(item[3]),
        close=_req_dec(item[4]),
        vol=vol,
        vol_ccy=vol_ccy,
        confirm=confirm,
    )


def parse_trade(item: Any) -> PublicTrade:
    """trades 채널 항목 -> PublicTrade"""
    data = _require_dict(item)
    return PublicTrade(
        inst_id=data["instId"],
        trade_id=str(data["tradeId"]),
        px=_req_dec(data["px"]),
        sz=_req_dec(data["sz"]),
        side=data["side"],
        ts=_int(data.get("ts")),
    )


def _parse_levels(levels: Any) -> tuple[BookLevel, ...]:
    if not isinstance(levels, list):
        raise TypeError("호가 목록은 배열이어야 합니다")
    result = []
    for level in levels:
        result.append(
            BookLevel(
                price=_req_dec(level[0]),
                size=_req_dec(level[1]),
                order_count=_int(level[3]) if len(level) > 3 else 0,
            )
        )
    return tuple(result)


def parse_order_book(item: Any) -> OrderBook:
    """books/books5/bbo-tbt/books-l2-tbt 항목 -> OrderBook"""
    data = _require_dict(item)
    return OrderBook(
        asks=_parse_levels(data.get("asks", [])),
        bids=_parse_levels(data.get("bids", [])),
        ts=_int(data.get("ts")),
        checksum=_opt_int(data.get("checksum")),
        seq_id=_opt_int(data.get("seqId")),
        prev_seq_id=_opt_int(data.get("prevSeqId")),
    )


def parse_mark_price(item: Any) -> MarkPrice:
    """mark-price 채널 항목 -> MarkPrice"""
    data = _require_dict(item)
    return MarkPrice(
        inst_type=data.get("instType", ""),
        inst_id=data["instId"],
        mark_px=_req_dec(data["markPx"]),
        ts=_int(data.get("ts")),
    )


def parse_funding_rate(item: Any) -> FundingRate:
    """funding-rate 채널 항목 -> FundingRate"""
    data = _require_dict(item)
    return FundingRate(
        inst_type=data.get("instType", ""),
        inst_id=data["instId"],
        funding_rate=_dec(data.get("fundingRate")),
        next_funding_rate=_dec(data.get("nextFundingRate")),
        funding_time=_int(data.get("fundingTime")),
    )


def parse_open_interest(item: Any) -> OpenInterest:
    """open-interest 채널 항목 -> OpenInterest"""
    data = _require_dict(item)
    return OpenInterest(
        inst_type=data.get("instType", ""),
        inst_id=data["instId"],
        oi=_req_dec(data["oi"]),
        oi_ccy=_dec(data.get("oiCcy")),
        ts=_int(data.get("ts")),
    )


def parse_price_limit(item: Any) -> PriceLimit:
    """price-limit 채널 항목 -> PriceLimit"""
    data = _require_dict(item)
    return PriceLimit(
        inst_id=data["instId"],
        buy_lmt=_dec(data.get("buyLmt")),
        sell_lmt=_dec(data.get("sellLmt")),
        ts=_int(data.get("ts")),
    )


def parse_estimated_price(item: Any) -> EstimatedPrice:
    """estimated-price 채널 항목 -> EstimatedPrice"""
    data = _require_dict(item)
    return EstimatedPrice(
        inst_type=data.get("instType", ""),
        inst_id=data["instId"],
        settle_px=_req_dec(data["settlePx"]),
        ts=_int(data.get("ts")),
    )


def parse_index_ticker(item: Any) -> IndexTicker:
    """index-tickers 채널 항목 -> IndexTicker"""
    data = _require_dict(item)
    return IndexTicker(
        inst_id=data["instId"],
        idx_px=_req_dec(data["idxPx"]),
        open_24h=_dec(data.get("open24h")),
        high_24h=_dec(data.get("high24h")),
        low_24h=_dec(data.get("low24h")),
        ts=_int(data.get("ts")),
    )


# -------------------------------------------------------------------------
# 비공개 채널 파서
# -------------------------------------------------------------------------

def parse_order_update(item: Any) -> OrderUpdate:
    """orders 채널 항목 -> OrderUpdate"""
    data = _require_dict(item)
    return OrderUpdate(
        inst_type=data.get("instType", ""),
        inst_id=data["instId"],
        ord_id=str(data["ordId"]),
        cl_ord_id=data.get("clOrdId", ""),
        side=data["side"],
        ord_type=data.get("ordType", ""),
        state=data["state"],
        px=_dec(data.get("px")),
        sz=_req_dec(data["sz"]),
        fill_sz=_dec(data.get("fillSz")),
        acc_fill_sz=_dec(data.get("accFillSz")),
        avg_px=_dec(data.get("avgPx")),
        u_time=_int(data.get("uTime")),
    )


def parse_position_update(item: Any) -> PositionUpdate:
    """positions 채널 항목 -> PositionUpdate"""
    data = _require_dict(item)
    return PositionUpdate(
        inst_type=data.get("instType", ""),
        inst_id=data["instId"],
        pos_id=str(data.get("posId", "")),
        pos_side=data.get("posSide", "net"),
        pos=_dec(data.get("pos")) or Decimal("0"),
        avg_px=_dec(data.get("avgPx")),
        upl=_dec(data.get("upl")),
        lever=_dec(data.get("lever")),
        mgn_mode=data.get("mgnMode", ""),
        u_time=_int(data.get("uTime")),
    )


def parse_account_update(item: Any) -> AccountUpdate:
    """account 채널 항목 -> AccountUpdate"""
    data = _require_dict(item)
    details = data.get("details", [])
    if not isinstance(details, list):
        raise TypeError("details는 배열이어야 합니다")
    return AccountUpdate(
        total_eq=_dec(data.get("totalEq")),
        u_time=_int(data.get("uTime")),
        details=tuple(_require_dict(d) for d in details),
    )


def parse_raw(item: Any) -> dict[str, Any]:
    """전용 모델이 없는 채널 - dict 그대로 (형식만 확인)"""
    return _require_dict(item)
