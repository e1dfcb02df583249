"""
OKX 요청 서명

REST 요청과 WebSocket 로그인에 동일하게 사용.
timestamp + method + path + body 를 HMAC-SHA256 → Base64.
"""

import base64
import hashlib
import hmac
from datetime import datetime, timedelta, timezone


class Signer:
    """OKX 서명기

    서버와의 시계 오차(clock offset)를 보정한 timestamp로 서명하여
    로컬 시계가 틀어져도 요청이 거부되지 않도록 함.

    Args:
        secret_key: API 시크릿 키
    """

    def __init__(self, secret_key: str):
        self._secret = secret_key.encode("utf-8")
        self._clock_offset = timedelta(0)

    @property
    def clock_offset(self) -> timedelta:
        """현재 적용 중인 시계 오차 (서버 - 로컬)"""
        return self._clock_offset

    def set_clock_offset(self, offset: timedelta) -> None:
        """서버 시계 오차 설정"""
        self._clock_offset = offset

    def now(self) -> datetime:
        """오차가 보정된 현재 UTC 시각"""
        return datetime.now(timezone.utc) + self._clock_offset

    def timestamp(self) -> str:
        """REST용 ISO-8601 timestamp (밀리초, UTC)

        예: 2026-10-19T08:30:15.123Z
        """
        now = self.now()
        return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"

    def ws_timestamp(self) -> str:
        """WebSocket 로그인용 timestamp (Unix epoch 초)"""
        return str(int(self.now().timestamp()))

    def sign(self, method: str, path: str, body: str, timestamp: str) -> str:
        """서명 생성

        Args:
            method: HTTP 메서드 (대문자로 정규화)
            path: 요청 경로 (GET이면 쿼리스트링 포함)
            body: 직렬화된 요청 본문 (없으면 빈 문자열)
            timestamp: 서명에 포함할 timestamp

        Returns:
            Base64 인코딩된 HMAC-SHA256 서명
        """
        message = f"{timestamp}{method.upper()}{path}{body}"
        digest = hmac.new(
            self._secret,
            message.encode("utf-8"),
            hashlib.sha256,
        ).digest()
        return base64.b64encode(digest).decode("ascii")

    def sign_request(self, method: str, path: str, body: str = "") -> tuple[str, str]:
        """현재 시각으로 서명

        Returns:
            (timestamp, signature)
        """
        timestamp = self.timestamp()
        return timestamp, self.sign(method, path, body, timestamp)
