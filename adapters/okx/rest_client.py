"""
OKX v5 REST API 클라이언트

서명 → 송신 → envelope 디코딩.
엔드포인트별 지식 없이 (method, path, private, params)만 받아 처리하며
IRestDispatcher Protocol 준수. 재시도/Rate Limit 정책은 호출자 몫.
"""

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any
from urllib.parse import urlencode

import httpx

from adapters.okx.endpoints import SubAccountApi, TradeDataApi
from adapters.okx.errors import AuthError, ProtocolError, TransportError
from adapters.okx.signer import Signer
from core.constants import Defaults, OkxHeaders

logger = logging.getLogger(__name__)


class OkxRestClient:
    """OKX REST API 클라이언트

    Args:
        base_url: REST API 베이스 URL
        api_key: API 키 (public 요청만 쓰면 생략 가능)
        secret_key: API 시크릿
        passphrase: API 패스프레이즈
        demo: 모의투자 여부 (x-simulated-trading 헤더)
        timeout: 요청 타임아웃 (초)
        signer: 공유 서명기 (None이면 secret_key로 생성)

    사용 예시:
    ```python
    client = OkxRestClient("https://www.okx.com", api_key, secret, passphrase)
    status = await client.get_system_status()
    coins = await client.trade_data.get_support_coin()
    await client.close()
    ```
    """

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        secret_key: str = "",
        passphrase: str = "",
        demo: bool = False,
        timeout: float = Defaults.HTTP_TIMEOUT_SEC,
        signer: Signer | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.passphrase = passphrase
        self.demo = demo
        self.timeout = timeout
        self.signer = signer or Signer(secret_key)

        self._client: httpx.AsyncClient | None = None

        # 엔드포인트 그룹
        self.sub_account = SubAccountApi(self)
        self.trade_data = TradeDataApi(self)

    async def _get_client(self) -> httpx.AsyncClient:
        """HTTP 클라이언트 가져오기 (lazy initialization)"""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self) -> None:
        """HTTP 클라이언트 종료"""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "OkxRestClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    # -------------------------------------------------------------------------
    # 요청 디스패치
    # -------------------------------------------------------------------------

    @staticmethod
    def build_query(params: dict[str, Any] | None) -> str:
        """GET 파라미터 → 쿼리스트링 (키 정렬, 값의 큰따옴표 제거)"""
        if not params:
            return ""
        items = [
            (key, str(value).replace('"', ""))
            for key, value in sorted(params.items())
            if value is not None
        ]
        return urlencode(items)

    def _build_headers(
        self,
        method: str,
        request_path: str,
        body: str,
        private: bool,
    ) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}

        if private:
            if not self.api_key:
                raise AuthError(None, "private 요청에는 API 자격 증명이 필요합니다")
            timestamp, sign = self.signer.sign_request(method, request_path, body)
            headers[OkxHeaders.API_KEY] = self.api_key
            headers[OkxHeaders.PASSPHRASE] = self.passphrase
            headers[OkxHeaders.SIGN] = sign
            headers[OkxHeaders.TIMESTAMP] = timestamp

        if self.demo:
            headers[OkxHeaders.SIMULATED_TRADING] = "1"

        return headers

    async def do(
        self,
        method: str,
        path: str,
        private: bool = False,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """요청 송신 (디코딩 없음)

        GET은 쿼리스트링을 서명 경로에 포함, 그 외는 JSON 본문을 서명.
        빈 본문 "{}"는 서명에서 빈 문자열로 취급하지만 그대로 송신.

        Raises:
            AuthError: private 요청인데 자격 증명이 없음
            TransportError: 네트워크 실패
        """
        method = method.upper()
        request_path = path
        body = ""
        sign_body = ""

        if method == "GET":
            query = self.build_query(params)
            if query:
                request_path = f"{path}?{query}"
        else:
            body = json.dumps(params or {}, separators=(",", ":"))
            sign_body = "" if body == "{}" else body

        headers = self._build_headers(method, request_path, sign_body, private)
        url = f"{self.base_url}{request_path}"
        client = await self._get_client()

        try:
            response = await client.request(
                method,
                url,
                content=body or None,
                headers=headers,
            )
        except httpx.TimeoutException as e:
            logger.warning("Request timeout", extra={"path": path})
            raise TransportError(f"요청 시간 초과: {path}") from e
        except httpx.RequestError as e:
            logger.error("Request error", extra={"path": path, "error": str(e)})
            raise TransportError(f"요청 실패: {path}: {e}") from e

        logger.debug(
            "REST 응답",
            extra={"method": method, "path": path, "status": response.status_code},
        )
        return response

    @staticmethod
    def decode(response: httpx.Response) -> dict[str, Any]:
        """응답 envelope {code, msg, data} 검증

        Raises:
            AuthError: HTTP 401 + 0이 아닌 코드
            ProtocolError: JSON이 아니거나 code 없음 / 0이 아닌 코드
        """
        try:
            envelope = response.json()
        except ValueError as e:
            raise ProtocolError(
                str(response.status_code),
                f"JSON이 아닌 응답: {response.text[:200]}",
            ) from e

        if not isinstance(envelope, dict) or "code" not in envelope:
            raise ProtocolError(str(response.status_code), "응답에 code가 없습니다")

        code = str(envelope["code"])
        if code != "0":
            message = str(envelope.get("msg", ""))
            if response.status_code == 401:
                raise AuthError(code, message)
            raise ProtocolError(code, message)

        return envelope

    async def request(
        self,
        method: str,
        path: str,
        private: bool = False,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """요청 후 envelope의 data 반환"""
        response = await self.do(method, path, private=private, params=params)
        return self.decode(response).get("data")

    # -------------------------------------------------------------------------
    # 시스템
    # -------------------------------------------------------------------------

    async def get_system_status(self, state: str | None = None) -> list[dict[str, Any]]:
        """시스템 점검 상태 (state: scheduled, ongoing, pre_open, completed, canceled)"""
        params = {"state": state} if state else None
        return await self.request("GET", "/api/v5/system/status", params=params)

    async def get_server_time(self) -> int:
        """서버 시간 조회 (밀리초 타임스탬프)"""
        data = await self.request("GET", "/api/v5/public/time")
        if not data:
            raise ProtocolError(None, "서버 시간 응답이 비어 있습니다")
        return int(data[0]["ts"])

    async def sync_time(self) -> timedelta:
        """서버 시간과 동기화

        서버 - 로컬 오차를 Signer에 반영. Signer를 공유하는
        WebSocket 로그인에도 같은 오차가 적용됨.

        Returns:
            계산된 시계 오차
        """
        server_ms = await self.get_server_time()
        local = datetime.now(timezone.utc)
        server = datetime.fromtimestamp(server_ms / 1000, tz=timezone.utc)
        offset = server - local
        self.signer.set_clock_offset(offset)

        logger.info(
            "서버 시간 동기화 완료",
            extra={"offset_ms": int(offset.total_seconds() * 1000)},
        )
        return offset
