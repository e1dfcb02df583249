"""
REST 엔드포인트 그룹

서브계정 관리, 거래 통계(rubik) 조회.
snake_case 인자 → camelCase 파라미터 (None 값은 제외) → 디스패처 위임.
응답 data는 가공하지 않고 그대로 반환.

공식 문서:
- https://www.okx.com/docs-v5/en/#sub-account-rest-api
- https://www.okx.com/docs-v5/en/#trading-statistics-rest-api
"""

from typing import Any, Sequence

from adapters.interfaces import IRestDispatcher


def _params(**kwargs: Any) -> dict[str, Any]:
    """None 값 제외한 파라미터 dict"""
    return {k: v for k, v in kwargs.items() if v is not None}


def _join_ips(ip: str | Sequence[str] | None) -> str | None:
    """IP 목록 → 콤마 구분 문자열"""
    if ip is None or isinstance(ip, str):
        return ip
    return ",".join(ip) if ip else None


class SubAccountApi:
    """서브계정 API (모두 private)"""

    def __init__(self, dispatcher: IRestDispatcher):
        self._dispatcher = dispatcher

    async def view_list(
        self,
        enable: bool | None = None,
        sub_acct: str | None = None,
        after: str | None = None,
        before: str | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """서브계정 목록"""
        params = _params(
            enable=None if enable is None else str(enable).lower(),
            subAcct=sub_acct,
            after=after,
            before=before,
            limit=limit,
        )
        return await self._dispatcher.request(
            "GET", "/api/v5/users/subaccount/list", private=True, params=params,
        )

    async def create_api_key(
        self,
        sub_acct: str,
        label: str,
        passphrase: str,
        perm: str | None = None,
        ip: str | Sequence[str] | None = None,
    ) -> list[dict[str, Any]]:
        """서브계정 API 키 생성 (perm: read_only, trade)"""
        params = _params(
            subAcct=sub_acct,
            label=label,
            passphrase=passphrase,
            perm=perm,
            ip=_join_ips(ip),
        )
        return await self._dispatcher.request(
            "POST", "/api/v5/users/subaccount/apikey", private=True, params=params,
        )

    async def query_api_key(
        self,
        sub_acct: str,
        api_key: str | None = None,
    ) -> list[dict[str, Any]]:
        params = _params(subAcct=sub_acct, apiKey=api_key)
        return await self._dispatcher.request(
            "GET", "/api/v5/users/subaccount/apikey", private=True, params=params,
        )

    async def reset_api_key(
        self,
        sub_acct: str,
        api_key: str,
        label: str | None = None,
        perm: str | None = None,
        ip: str | Sequence[str] | None = None,
    ) -> list[dict[str, Any]]:
        """서브계정 API 키 수정"""
        params = _params(
            subAcct=sub_acct,
            apiKey=api_key,
            label=label,
            perm=perm,
            ip=_join_ips(ip),
        )
        return await self._dispatcher.request(
            "POST", "/api/v5/users/subaccount/modify-apikey", private=True, params=params,
        )

    async def delete_api_key(self, sub_acct: str, api_key: str) -> list[dict[str, Any]]:
        params = _params(subAcct=sub_acct, apiKey=api_key)
        return await self._dispatcher.request(
            "POST", "/api/v5/users/subaccount/delete-apikey", private=True, params=params,
        )

    async def get_balance(self, sub_acct: str) -> list[dict[str, Any]]:
        """서브계정 거래 계정 잔고"""
        return await self._dispatcher.request(
            "GET",
            "/api/v5/account/subaccount/balances",
            private=True,
            params=_params(subAcct=sub_acct),
        )

    async def history_transfer(
        self,
        ccy: str | None = None,
        type: int | None = None,
        sub_acct: str | None = None,
        after: str | None = None,
        before: str | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """서브계정 이체 내역 (type: 0 마스터→서브, 1 서브→마스터)"""
        params = _params(
            ccy=ccy,
            type=type,
            subAcct=sub_acct,
            after=after,
            before=before,
            limit=limit,
        )
        return await self._dispatcher.request(
            "GET", "/api/v5/account/subaccount/bills", private=True, params=params,
        )

    async def manage_transfers(
        self,
        ccy: str,
        amt: str,
        from_account: str,
        to_account: str,
        from_sub_account: str,
        to_sub_account: str,
    ) -> list[dict[str, Any]]:
        """서브계정 간 이체 (from/to: 6 펀딩, 18 트레이딩)"""
        params = _params(
            ccy=ccy,
            amt=amt,
            **{"from": from_account, "to": to_account},
            fromSubAccount=from_sub_account,
            toSubAccount=to_sub_account,
        )
        return await self._dispatcher.request(
            "POST", "/api/v5/account/subaccount/transfer", private=True, params=params,
        )


class TradeDataApi:
    """거래 통계 API (모두 public GET)

    period: 5m, 1H, 1D (옵션 계열은 8H, 1D)
    """

    def __init__(self, dispatcher: IRestDispatcher):
        self._dispatcher = dispatcher

    async def _get(self, path: str, **kwargs: Any) -> list[Any]:
        return await self._dispatcher.request(
            "GET", f"/api/v5/rubik/stat{path}", params=_params(**kwargs) or None,
        )

    async def get_support_coin(self) -> dict[str, Any]:
        """통계를 지원하는 통화 목록 (contract, option, spot)"""
        return await self._dispatcher.request(
            "GET", "/api/v5/rubik/stat/trading-data/support-coin",
        )

    async def get_taker_volume(
        self,
        ccy: str,
        inst_type: str,
        begin: int | None = None,
        end: int | None = None,
        period: str | None = None,
    ) -> list[Any]:
        """테이커 매수/매도 거래량 (inst_type: SPOT, CONTRACTS)"""
        return await self._get(
            "/taker-volume",
            ccy=ccy, instType=inst_type, begin=begin, end=end, period=period,
        )

    async def get_margin_lending_ratio(
        self,
        ccy: str,
        begin: int | None = None,
        end: int | None = None,
        period: str | None = None,
    ) -> list[Any]:
        """마진 대출 비율"""
        return await self._get(
            "/margin/loan-ratio", ccy=ccy, begin=begin, end=end, period=period,
        )

    async def get_long_short_ratio(
        self,
        ccy: str,
        begin: int | None = None,
        end: int | None = None,
        period: str | None = None,
    ) -> list[Any]:
        """롱/숏 계정 비율"""
        return await self._get(
            "/contracts/long-short-account-ratio",
            ccy=ccy, begin=begin, end=end, period=period,
        )

    async def get_contracts_open_interest_and_volume(
        self,
        ccy: str,
        begin: int | None = None,
        end: int | None = None,
        period: str | None = None,
    ) -> list[Any]:
        return await self._get(
            "/contracts/open-interest-volume",
            ccy=ccy, begin=begin, end=end, period=period,
        )

    async def get_options_open_interest_and_volume(
        self,
        ccy: str,
        period: str | None = None,
    ) -> list[Any]:
        return await self._get("/option/open-interest-volume", ccy=ccy, period=period)

    async def get_put_call_ratio(
        self,
        ccy: str,
        period: str | None = None,
    ) -> list[Any]:
        """옵션 풋/콜 비율"""
        return await self._get(
            "/option/open-interest-volume-ratio", ccy=ccy, period=period,
        )

    async def get_open_interest_and_volume_expiry(
        self,
        ccy: str,
        period: str | None = None,
    ) -> list[Any]:
        """만기별 옵션 미결제약정/거래량"""
        return await self._get(
            "/option/open-interest-volume-expiry", ccy=ccy, period=period,
        )

    async def get_open_interest_and_volume_strike(
        self,
        ccy: str,
        exp_time: str,
        period: str | None = None,
    ) -> list[Any]:
        """행사가별 옵션 미결제약정/거래량 (exp_time: YYYYMMdd)"""
        return await self._get(
            "/option/open-interest-volume-strike",
            ccy=ccy, expTime=exp_time, period=period,
        )

    async def get_taker_flow(
        self,
        ccy: str,
        period: str | None = None,
    ) -> list[Any]:
        """옵션 테이커 블록 거래량"""
        return await self._get("/option/taker-block-volume", ccy=ccy, period=period)
