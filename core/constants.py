"""
하드코딩 상수 - 변경될 일이 거의 없는 고정값

중요: 경로는 반드시 pathlib.Path 사용 (Windows/Linux 크로스 플랫폼)
"""

from pathlib import Path


# 프로젝트 루트 (이 파일 기준 2단계 상위: core/constants.py → 프로젝트 루트)
PROJECT_ROOT: Path = Path(__file__).resolve().parent.parent


class OkxEndpoints:
    """OKX v5 API 엔드포인트 (고정값)

    공식 문서: https://www.okx.com/docs-v5/en/#overview-production-trading-services
    """

    # Production
    PROD_REST_URL: str = "https://www.okx.com"
    PROD_WS_PUBLIC_URL: str = "wss://ws.okx.com:8443/ws/v5/public"
    PROD_WS_PRIVATE_URL: str = "wss://ws.okx.com:8443/ws/v5/private"

    # Demo (모의거래) - REST는 동일 호스트 + x-simulated-trading 헤더
    DEMO_REST_URL: str = "https://www.okx.com"
    DEMO_WS_PUBLIC_URL: str = "wss://wspap.okx.com:8443/ws/v5/public?brokerId=9999"
    DEMO_WS_PRIVATE_URL: str = "wss://wspap.okx.com:8443/ws/v5/private?brokerId=9999"


class OkxHeaders:
    """REST 인증 헤더 이름"""

    API_KEY: str = "OK-ACCESS-KEY"
    PASSPHRASE: str = "OK-ACCESS-PASSPHRASE"
    SIGN: str = "OK-ACCESS-SIGN"
    TIMESTAMP: str = "OK-ACCESS-TIMESTAMP"
    SIMULATED_TRADING: str = "x-simulated-trading"


class WsProtocol:
    """WebSocket 프로토콜 고정값"""

    # 로그인 서명 대상 문자열: "GET" + "/users/self/verify" + ""
    LOGIN_METHOD: str = "GET"
    LOGIN_PATH: str = "/users/self/verify"

    PING: str = "ping"
    PONG: str = "pong"

    # 한 번의 재구독 프레임에 담을 최대 토픽 수
    RESUBSCRIBE_BATCH_SIZE: int = 20


class Defaults:
    """기본값 상수"""

    HTTP_TIMEOUT_SEC: float = 30.0
    CONNECT_TIMEOUT_SEC: float = 10.0
    ACK_TIMEOUT_SEC: float = 10.0

    SINK_MAXSIZE: int = 1024

    LOG_LEVEL: str = "INFO"


class Paths:
    """프로젝트 경로 상수 (pathlib 사용 - OS 독립적)"""

    # 디렉토리
    CONFIG_DIR: Path = PROJECT_ROOT / "config"
    LOGS_DIR: Path = PROJECT_ROOT / "logs"

    # 설정 파일
    SECRETS_FILE: Path = CONFIG_DIR / "secrets.yaml"
