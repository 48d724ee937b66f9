"""인덱스 프로비저닝 — 없을 때만 생성 (idempotent)

매 기동마다 호출해도 안전하다. 동시에 두 프로세스가 "없음"을 보고
둘 다 생성을 시도하면 뒤쪽은 resource_already_exists_exception(400)을
받는데, 이것도 ALREADY_EXISTS로 취급한다.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from elasticsearch import ApiError, NotFoundError, TransportError as ESTransportError

from .connection import Connection
from .exceptions import ProvisioningError, TransportError
from .log import get_logger
from .schema import IndexSchema

logger = get_logger("provisioner")

ALREADY_EXISTS_ERROR = "resource_already_exists_exception"


class IndexState(str, Enum):
    ALREADY_EXISTS = "already_exists"
    CREATED = "created"


def error_type(body: Any) -> str | None:
    """에러 응답 body에서 error.type 추출"""
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            return error.get("type")
    return None


class IndexProvisioner:
    """
    Connection 위에서 인덱스 존재 확인 / 생성.

    사용법:
        provisioner = IndexProvisioner(conn)
        state = await provisioner.ensure_index("products", PRODUCT_SCHEMA)
    """

    def __init__(self, conn: Connection):
        self.conn = conn

    async def exists(self, name: str) -> bool:
        """HEAD 존재 확인"""
        try:
            return bool(await self.conn.client.indices.exists(index=name))
        except ApiError as e:
            raise TransportError(
                f"index existence probe failed for {name!r}: {e.message}",
                stage="provision",
                status=e.meta.status,
                body=e.body,
            ) from e
        except ESTransportError as e:
            raise TransportError(
                f"index existence probe failed for {name!r}: {e}",
                stage="provision",
            ) from e

    async def ensure_index(self, name: str, schema: IndexSchema) -> IndexState:
        """
        인덱스가 없을 때만 schema로 생성 (기존 데이터 보존).

        Returns: CREATED면 새로 생성됨, ALREADY_EXISTS면 이미 존재.
        Raises:  ProvisioningError — already-exists 이외의 생성 거부
        """
        if await self.exists(name):
            logger.info(f"인덱스 {name} 이미 존재")
            return IndexState.ALREADY_EXISTS

        logger.info(f"인덱스 {name} 없음 → 생성")
        try:
            await self.conn.client.indices.create(index=name, **schema.to_body())
        except ApiError as e:
            if error_type(e.body) == ALREADY_EXISTS_ERROR:
                # 다른 프로비저너가 먼저 생성
                logger.info(f"인덱스 {name} 동시 생성 감지 → 기존 인덱스 사용")
                return IndexState.ALREADY_EXISTS
            raise ProvisioningError(
                f"failed to create index {name!r}: {e.message}",
                status=e.meta.status,
                body=e.body,
            ) from e
        except ESTransportError as e:
            raise TransportError(
                f"index creation request failed for {name!r}: {e}",
                stage="provision",
            ) from e

        logger.info(f"[green]인덱스 {name} 생성 완료[/green]")
        return IndexState.CREATED

    async def delete_index(self, name: str) -> bool:
        """인덱스 삭제. 없으면 False."""
        try:
            await self.conn.client.indices.delete(index=name)
        except NotFoundError:
            return False
        except ApiError as e:
            raise ProvisioningError(
                f"failed to delete index {name!r}: {e.message}",
                status=e.meta.status,
                body=e.body,
            ) from e
        except ESTransportError as e:
            raise TransportError(
                f"index deletion request failed for {name!r}: {e}",
                stage="provision",
            ) from e
        logger.info(f"인덱스 {name} 삭제")
        return True


async def ensure_index(conn: Connection, name: str, schema: IndexSchema) -> IndexState:
    return await IndexProvisioner(conn).ensure_index(name, schema)


async def delete_index(conn: Connection, name: str) -> bool:
    return await IndexProvisioner(conn).delete_index(name)
