"""
로깅 설정 유틸리티

OKX 어댑터 모듈은 logger.info("...", extra={"scope": ..., "topics": ...})처럼
구조화된 컨텍스트를 extra로 넘김. ContextFormatter가 이를 메시지 뒤에
key=value로 덧붙여 콘솔/파일 모두에서 볼 수 있게 함.

사용법:
    from core.logging import setup_logging
    setup_logging("stream_tickers")
"""

import logging
import sys
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Any

from core.constants import Paths


LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_FILE_BACKUP_COUNT = 7  # 최대 7일치 파일 유지

# 전송 계층 라이브러리 (프레임/요청마다 로그를 남김)
NOISY_LOGGERS = [
    "httpcore",
    "httpx",
    "websockets",
    "asyncio",
]

# LogRecord 기본 속성 (이 외의 속성은 extra로 들어온 컨텍스트)
_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", None, None))
) | {"message", "asctime"}


class ContextFormatter(logging.Formatter):
    """extra 컨텍스트를 메시지 뒤에 key=value로 붙이는 포맷터

    예: 2026-02-21 09:00:00 | INFO     | adapters.okx.router | 구독 완료 | scope=public topics=2
    """

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = self.extract_context(record)
        if not context:
            return line
        joined = " ".join(f"{key}={value}" for key, value in context.items())
        return f"{line} | {joined}"

    @staticmethod
    def extract_context(record: logging.LogRecord) -> dict[str, Any]:
        return {
            key: value
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and not key.startswith("_")
        }


def setup_logging(
    process_name: str,
    console_level: int = logging.INFO,
    file_level: int = logging.INFO,
    log_dir: Path | None = None,
) -> logging.Logger:
    """로깅 설정 초기화

    콘솔 + 일별 롤링 파일 핸들러. 여러 번 호출해도 핸들러가 중복되지 않음.

    Args:
        process_name: 프로세스 이름 (로그 파일명으로 사용)
        console_level: 콘솔 로그 레벨
        file_level: 파일 로그 레벨
        log_dir: 로그 디렉토리 (None이면 Paths.LOGS_DIR)

    Returns:
        설정된 루트 Logger
    """
    log_file = get_log_file_path(process_name, log_dir)
    log_file.parent.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(min(console_level, file_level))

    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    formatter = ContextFormatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    file_handler = TimedRotatingFileHandler(
        filename=log_file,
        when="midnight",
        backupCount=LOG_FILE_BACKUP_COUNT,
        encoding="utf-8",
    )
    file_handler.suffix = "%Y-%m-%d"  # stream_tickers.log.2026-02-21
    file_handler.setLevel(file_level)
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)

    for logger_name in NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(logging.WARNING)

    root_logger.info(
        "로깅 초기화 완료",
        extra={"process_name": process_name, "file": str(log_file)},
    )
    return root_logger


def get_log_file_path(process_name: str, log_dir: Path | None = None) -> Path:
    """로그 파일 경로 반환"""
    return (log_dir or Paths.LOGS_DIR) / f"{process_name}.log"
