"""Elasticsearch 접속 / 적재 설정"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from dotenv import find_dotenv, load_dotenv

from .exceptions import ConfigError

# ── cloud 접속 시 필수 환경변수 (ES_URL 지정 시 생략 가능) ──
REQUIRED_CLOUD_ENV = ("CLOUD_ID", "API_KEY_ID", "API_KEY")

BULK_ACTIONS = ("create", "index")


@dataclass
class Config:
    # Elasticsearch 연결 — cloud_id가 있으면 es_url/es_nodes 무시
    cloud_id: str | None = None
    es_url: str = "http://localhost:9200"
    es_nodes: list[str] | None = None       # 클러스터 노드 목록 (설정 시 es_url 무시)
    es_fingerprint: str | None = None       # TLS 인증서 SHA-256 fingerprint

    # 인증 — API Key 우선, 없으면 Basic Auth
    api_key_id: str | None = None
    api_key: str | None = None              # api_key_id 없이 주면 encoded key로 취급
    es_username: str | None = None
    es_password: str | None = None

    request_timeout: float = 30.0
    verify_connection: bool = True          # connect 시 info() 로 즉시 검증

    # 인덱스
    index_name: str = "products"

    # 벌크
    max_batch_size: int | None = None       # None = 분할 없이 1회 요청
    bulk_action: str = "create"             # "index" = 중복 안전 upsert
    refresh: str | None = None              # "true" / "false" / "wait_for"

    # 재시도 (0 = 재시도 없음)
    max_retries: int = 0
    retry_backoff: float = 1.0
    retry_max_backoff: float = 30.0

    # 로그 / 실패 기록
    log_file: Path | None = None
    failure_log_path: Path | None = None

    @property
    def is_cloud(self) -> bool:
        return bool(self.cloud_id)

    @property
    def endpoint(self) -> str:
        """로그/요약 표시용 접속 대상 설명"""
        if self.cloud_id:
            return f"cloud:{self.cloud_id.partition(':')[0] or '?'}"
        return ", ".join(self.es_nodes or [self.es_url])

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        **overrides,
    ) -> Config:
        """환경변수 → Config.

        ES_URL이 없으면 CLOUD_ID / API_KEY_ID / API_KEY 가 모두 필요.
        누락 시 ConfigError (기동 시점 실패).

        overrides: CLI 인자 등 환경변수보다 우선하는 값 (None은 무시)
        """
        env = os.environ if environ is None else environ

        def get(name: str) -> str | None:
            value = env.get(name)
            return value.strip() if value and value.strip() else None

        es_url = overrides.get("es_url") or get("ES_URL")
        if not es_url:
            missing = [name for name in REQUIRED_CLOUD_ENV if not get(name)]
            if missing:
                raise ConfigError(
                    f"missing required environment variables: {', '.join(missing)} "
                    f"(or set ES_URL for a self-managed cluster)"
                )

        kwargs: dict = {
            "cloud_id": None if es_url else get("CLOUD_ID"),
            "api_key_id": get("API_KEY_ID"),
            "api_key": get("API_KEY"),
            "es_username": get("ES_USERNAME"),
            "es_password": get("ES_PASSWORD"),
            "es_fingerprint": get("ES_FINGERPRINT"),
            "refresh": get("ES_REFRESH"),
        }
        if es_url:
            kwargs["es_url"] = es_url
        if get("ES_INDEX"):
            kwargs["index_name"] = get("ES_INDEX")
        if get("ES_BULK_ACTION"):
            kwargs["bulk_action"] = get("ES_BULK_ACTION")

        kwargs["max_batch_size"] = _parse_number(get, "ES_MAX_BATCH_SIZE", int)
        kwargs["max_retries"] = _parse_number(get, "ES_MAX_RETRIES", int) or 0
        timeout = _parse_number(get, "ES_REQUEST_TIMEOUT", float)
        if timeout is not None:
            kwargs["request_timeout"] = timeout

        kwargs.update({k: v for k, v in overrides.items() if v is not None})

        if kwargs.get("bulk_action", "create") not in BULK_ACTIONS:
            raise ConfigError(
                f"bulk action must be one of {BULK_ACTIONS}, got {kwargs['bulk_action']!r}"
            )
        if kwargs.get("max_batch_size") is not None and kwargs["max_batch_size"] < 1:
            raise ConfigError("max_batch_size must be a positive integer")
        if kwargs.get("max_retries", 0) < 0:
            raise ConfigError(f"max_retries must be >= 0, got {kwargs['max_retries']}")

        return cls(**kwargs)


def _parse_number(get, name: str, kind: type):
    raw = get(name)
    if raw is None:
        return None
    try:
        return kind(raw)
    except ValueError:
        raise ConfigError(f"{name} must be {kind.__name__}, got {raw!r}") from None


def load_env(env_file: Path | None = None) -> bool:
    """.env 파일 로드 (이미 설정된 환경변수는 덮어쓰지 않음)."""
    if env_file is not None:
        return load_dotenv(env_file, override=False)
    return load_dotenv(find_dotenv(usecwd=True), override=False)
