"""
설정 로더

config/secrets.yaml 로드 및 OKX 연결 설정 생성.

```yaml
mode: demo                 # production | demo
production:
  api_key: "..."
  secret_key: "..."
  passphrase: "..."
demo:
  api_key: "..."
  secret_key: "..."
  passphrase: "..."
client:                    # 선택, 생략 시 Defaults
  http_timeout: 30
  connect_timeout: 10
  ack_timeout: 10
```
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from core.constants import Defaults, OkxEndpoints, Paths
from core.types import TradingMode


@dataclass(frozen=True)
class ClientOptions:
    """전송 계층 타임아웃 (초)"""

    http_timeout: float = Defaults.HTTP_TIMEOUT_SEC
    connect_timeout: float = Defaults.CONNECT_TIMEOUT_SEC
    ack_timeout: float = Defaults.ACK_TIMEOUT_SEC


@dataclass(frozen=True)
class Secrets:
    """보안 설정 (secrets.yaml에서 로드)

    선택된 mode 섹션의 자격 증명만 보관.
    """

    mode: TradingMode
    api_key: str
    secret_key: str
    passphrase: str
    options: ClientOptions = field(default_factory=ClientOptions)


@dataclass(frozen=True)
class ExchangeConfig:
    """OKX 연결 설정

    OkxClient.from_config()의 입력. demo면 모의거래 엔드포인트와
    x-simulated-trading 헤더 사용.
    """

    rest_url: str
    ws_public_url: str
    ws_private_url: str
    api_key: str
    secret_key: str
    passphrase: str
    demo: bool = False
    options: ClientOptions = field(default_factory=ClientOptions)


class SecretsLoadError(Exception):
    """Secrets 로드 실패 예외"""

    pass


def load_secrets(path: Path | None = None) -> Secrets:
    """secrets.yaml 파일 로드

    Args:
        path: secrets.yaml 경로 (None이면 Paths.SECRETS_FILE)

    Returns:
        Secrets 인스턴스

    Raises:
        SecretsLoadError: 파일/섹션/필드가 없거나 형식이 잘못된 경우
        ValueError: 유효하지 않은 mode인 경우
    """
    if path is None:
        path = Paths.SECRETS_FILE

    if not path.exists():
        raise SecretsLoadError(f"secrets.yaml 파일을 찾을 수 없습니다: {path}")

    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise SecretsLoadError(f"secrets.yaml 파싱 실패: {e}") from e

    if data is None:
        raise SecretsLoadError("secrets.yaml이 비어 있습니다")
    if not isinstance(data, dict):
        raise SecretsLoadError("secrets.yaml 최상위는 매핑이어야 합니다")

    mode_str = data.get("mode")
    if mode_str is None:
        raise SecretsLoadError("secrets.yaml에 'mode' 필드가 없습니다")

    try:
        mode = TradingMode(mode_str)
    except ValueError as e:
        valid_modes = [m.value for m in TradingMode]
        raise ValueError(
            f"유효하지 않은 mode입니다: '{mode_str}'. "
            f"유효한 값: {valid_modes}"
        ) from e

    mode_config = data.get(mode.value)
    if mode_config is None:
        raise SecretsLoadError(
            f"secrets.yaml에 '{mode.value}' 설정이 없습니다"
        )

    credentials: dict[str, str] = {}
    for name in ("api_key", "secret_key", "passphrase"):
        value = mode_config.get(name)
        if not value:
            raise SecretsLoadError(
                f"secrets.yaml의 {mode.value} 섹션에 '{name}'가 없습니다"
            )
        credentials[name] = str(value)

    return Secrets(
        mode=mode,
        options=parse_client_options(data.get("client")),
        **credentials,
    )


def parse_client_options(section: Any) -> ClientOptions:
    """client 섹션 → ClientOptions (생략된 값은 기본값)

    Raises:
        SecretsLoadError: 알 수 없는 키 또는 양수가 아닌 값
    """
    if section is None:
        return ClientOptions()
    if not isinstance(section, dict):
        raise SecretsLoadError("secrets.yaml의 client 섹션은 매핑이어야 합니다")

    known = ClientOptions.__dataclass_fields__
    values: dict[str, float] = {}
    for key, raw in section.items():
        if key not in known:
            raise SecretsLoadError(f"client 섹션의 알 수 없는 키: '{key}'")
        try:
            value = float(raw)
        except (TypeError, ValueError):
            raise SecretsLoadError(f"client.{key}는 숫자여야 합니다: {raw!r}") from None
        if value <= 0:
            raise SecretsLoadError(f"client.{key}는 0보다 커야 합니다: {raw!r}")
        values[key] = value

    return ClientOptions(**values)


def get_exchange_config(secrets: Secrets) -> ExchangeConfig:
    """모드에 따른 OKX 연결 설정 반환"""
    demo = secrets.mode == TradingMode.DEMO
    return ExchangeConfig(
        rest_url=OkxEndpoints.DEMO_REST_URL if demo else OkxEndpoints.PROD_REST_URL,
        ws_public_url=OkxEndpoints.DEMO_WS_PUBLIC_URL if demo else OkxEndpoints.PROD_WS_PUBLIC_URL,
        ws_private_url=OkxEndpoints.DEMO_WS_PRIVATE_URL if demo else OkxEndpoints.PROD_WS_PRIVATE_URL,
        api_key=secrets.api_key,
        secret_key=secrets.secret_key,
        passphrase=secrets.passphrase,
        demo=demo,
        options=secrets.options,
    )


class Settings:
    """애플리케이션 설정 (싱글턴)

    secrets.yaml을 한 번만 로드. 전송 계층 객체는 보관하지 않음
    (OkxClient는 호출자가 from_config로 명시적으로 생성).
    """

    _instance: "Settings | None" = None
    _secrets: Secrets | None = None

    def __new__(cls, secrets_path: Path | None = None) -> "Settings":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self, secrets_path: Path | None = None) -> None:
        if self._secrets is None:
            self._secrets = load_secrets(secrets_path)

    @property
    def mode(self) -> TradingMode:
        assert self._secrets is not None
        return self._secrets.mode

    @property
    def exchange_config(self) -> ExchangeConfig:
        """현재 모드의 OKX 연결 설정"""
        assert self._secrets is not None
        return get_exchange_config(self._secrets)

    @classmethod
    def reset(cls) -> None:
        """싱글턴 초기화 (테스트용)"""
        cls._instance = None
        cls._secrets = None


def get_settings(secrets_path: Path | None = None) -> Settings:
    """Settings 싱글턴 반환"""
    return Settings(secrets_path)
