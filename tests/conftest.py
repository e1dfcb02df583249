"""
pytest 공통 fixture 정의

설정 로더 테스트용 secrets.yaml fixture
"""

import tempfile
from pathlib import Path

import pytest


@pytest.fixture
def temp_dir() -> Path:
    """OS 독립적인 임시 디렉토리 생성"""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def temp_secrets_file(temp_dir: Path) -> Path:
    """테스트용 secrets.yaml 파일 생성 (demo 모드)"""
    secrets_content = """# 테스트용 secrets.yaml
mode: demo

production:
  api_key: "prod_api_key_12345"
  secret_key: "prod_secret_key_67890"
  passphrase: "prod_passphrase"

demo:
  api_key: "demo_api_key_abcde"
  secret_key: "demo_secret_key_fghij"
  passphrase: "demo_passphrase"
"""
    secrets_path = temp_dir / "secrets.yaml"
    secrets_path.write_text(secrets_content, encoding="utf-8")
    return secrets_path


@pytest.fixture
def temp_secrets_file_production(temp_dir: Path) -> Path:
    """테스트용 secrets.yaml 파일 생성 (production 모드)"""
    secrets_content = """mode: production

production:
  api_key: "prod_api_key_12345"
  secret_key: "prod_secret_key_67890"
  passphrase: "prod_passphrase"

demo:
  api_key: "demo_api_key_abcde"
  secret_key: "demo_secret_key_fghij"
  passphrase: "demo_passphrase"
"""
    secrets_path = temp_dir / "secrets_prod.yaml"
    secrets_path.write_text(secrets_content, encoding="utf-8")
    return secrets_path


@pytest.fixture
def temp_secrets_file_invalid_mode(temp_dir: Path) -> Path:
    """잘못된 모드의 secrets.yaml 파일 생성"""
    secrets_content = """mode: invalid_mode

production:
  api_key: "prod_api_key"
  secret_key: "prod_secret_key"
  passphrase: "prod_passphrase"
"""
    secrets_path = temp_dir / "secrets_invalid.yaml"
    secrets_path.write_text(secrets_content, encoding="utf-8")
    return secrets_path


@pytest.fixture
def temp_secrets_file_missing_passphrase(temp_dir: Path) -> Path:
    """passphrase가 없는 secrets.yaml 파일 생성"""
    secrets_content = """mode: demo

demo:
  api_key: "demo_api_key"
  secret_key: "demo_secret_key"
"""
    secrets_path = temp_dir / "secrets_missing.yaml"
    secrets_path.write_text(secrets_content, encoding="utf-8")
    return secrets_path
