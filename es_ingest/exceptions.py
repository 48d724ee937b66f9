"""es_ingest 예외 타입

모든 예외는 IngestError를 상속하며 단계(stage) 이름을 함께 가진다.
"엔진 접속 불가" / "엔진이 요청을 거부" / "일부 문서 적재 실패"를
호출자가 구분할 수 있도록 stage + status + body를 보존.

    try:
        await ensure_index(conn, "products", PRODUCT_SCHEMA)
    except IngestError as e:
        logger.error(f"{e.stage} 실패: {e}")
"""

from __future__ import annotations

from typing import Any


class IngestError(Exception):
    """es_ingest 예외 기본 클래스."""

    stage: str = "ingest"

    def __init__(
        self,
        message: str,
        *,
        stage: str | None = None,
        status: int | None = None,
        body: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if stage is not None:
            self.stage = stage
        self.status = status
        self.body = body

    def __str__(self) -> str:
        text = f"[{self.stage}] {self.message}"
        if self.status is not None:
            text += f" (status={self.status})"
        return text


class ConfigError(IngestError):
    """필수 설정(환경변수) 누락 또는 잘못된 값."""

    stage = "config"


class EngineConnectionError(IngestError):
    """locator 형식 오류, 엔진 접속 불가, 인증 거부."""

    stage = "connect"


class ProvisioningError(IngestError):
    """인덱스 생성이 already-exists 이외의 이유로 거부됨."""

    stage = "provision"


class TransportError(IngestError):
    """요청 전체 실패 (네트워크 단절, 타임아웃, 요청 단위 거부)."""

    stage = "transport"


class QueryError(IngestError):
    """잘못된 쿼리, non-2xx 응답, hit 디코딩 실패."""

    stage = "search"


class SchemaMismatch(IngestError):
    """클라이언트 측 스키마 검증 실패.

    fields: {필드명: 사유} — 문제가 된 모든 필드
    position: 배치 검증 시 문서의 입력 순서 위치 (단건이면 None)
    """

    stage = "validate"

    def __init__(
        self,
        fields: dict[str, str],
        position: int | None = None,
    ) -> None:
        detail = ", ".join(f"{name}: {reason}" for name, reason in fields.items())
        where = f"document #{position}" if position is not None else "document"
        super().__init__(f"{where} does not match schema ({detail})")
        self.fields = dict(fields)
        self.position = position
