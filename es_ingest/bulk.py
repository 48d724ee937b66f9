"""벌크 적재 — 문서 시퀀스 → NDJSON 쌍(action 줄 + 문서 줄) → 항목별 결과

Bulk API 요청 형식 (입력 순서 유지):
    {"create": {}}
    {"name": "Pen", "price": 1.5}
    {"create": {}}
    {"name": "Ink", "price": 3.0}

일부 문서 실패는 예외가 아니라 BulkResult 안의 ItemFailure로 보고한다.
요청 전체가 실패했을 때(네트워크 단절, 타임아웃, 요청 단위 거부)만 TransportError.

사용법:
    ingestor = BulkIngestor(conn, max_batch_size=500)
    result = await ingestor.bulk_create("products", [p.to_source() for p in products])
    for position, item in result.failed:
        print(position, item.error.reason)
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Iterator, Mapping, Sequence, TypeVar

from elasticsearch import ApiError, TransportError as ESTransportError

from .connection import Connection, response_body
from .exceptions import TransportError
from .log import get_logger
from .retry import RetryConfig, async_with_retry
from .schema import IndexSchema, validate

logger = get_logger("bulk")

T = TypeVar("T")


class BulkAction(str, Enum):
    CREATE = "create"
    INDEX = "index"
    UPDATE = "update"
    DELETE = "delete"


def to_source(document: Any) -> dict:
    """Mapping 또는 to_source()를 가진 타입 문서 → _source dict"""
    if hasattr(document, "to_source"):
        return document.to_source()
    if isinstance(document, Mapping):
        return dict(document)
    raise TypeError(f"cannot index {type(document).__name__}: expected a mapping or to_source()")


@dataclass(frozen=True)
class BulkOperation:
    """벌크 요청 1건 = action 줄 + (있으면) payload 줄"""

    action: BulkAction
    document: Mapping[str, Any] | None = None
    doc_id: str | None = None

    def __post_init__(self):
        object.__setattr__(self, "action", BulkAction(self.action))
        if self.action in (BulkAction.UPDATE, BulkAction.DELETE) and not self.doc_id:
            raise ValueError(f"{self.action.value} operation requires doc_id")
        if self.action is not BulkAction.DELETE and self.document is None:
            raise ValueError(f"{self.action.value} operation requires a document")

    def to_lines(self) -> list[dict]:
        meta: dict = {}
        if self.doc_id is not None:
            meta["_id"] = self.doc_id
        lines: list[dict] = [{self.action.value: meta}]
        if self.action is BulkAction.UPDATE:
            lines.append({"doc": dict(self.document)})
        elif self.action is not BulkAction.DELETE:
            lines.append(dict(self.document))
        return lines


@dataclass(frozen=True)
class ItemFailure:
    """항목 단위 실패 상세 (치명적이지 않음)"""

    status: int
    error_type: str | None
    reason: str | None

    @classmethod
    def from_error(cls, status: int, error: Any) -> ItemFailure:
        if isinstance(error, Mapping):
            return cls(status=status, error_type=error.get("type"), reason=error.get("reason"))
        return cls(status=status, error_type=None, reason=None if error is None else str(error))


@dataclass(frozen=True)
class BulkItemResult:
    action: str
    status: int
    doc_id: str | None = None
    error: ItemFailure | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and 200 <= self.status < 300

    @classmethod
    def from_item(cls, item: Mapping[str, Any]) -> BulkItemResult:
        """응답 items[] 1건: {"create": {"_id": ..., "status": 201, ...}}"""
        (action, body), = item.items()
        status = int(body.get("status", 0))
        error = body.get("error")
        failure = None
        if error is not None or not 200 <= status < 300:
            failure = ItemFailure.from_error(status, error)
        return cls(action=action, status=status, doc_id=body.get("_id"), error=failure)


class BulkResult(Sequence[BulkItemResult]):
    """제출한 operation과 같은 길이/순서의 항목별 결과"""

    def __init__(
        self,
        items: Iterable[BulkItemResult],
        took_ms: int = 0,
        raw: list[dict] | None = None,
    ):
        self._items = list(items)
        self.took_ms = took_ms
        self.raw = raw or []

    def __getitem__(self, index):
        return self._items[index]

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:
        return f"BulkResult(ok={len(self.succeeded)}, failed={len(self.failed)}, took_ms={self.took_ms})"

    @property
    def errors(self) -> bool:
        return any(not item.ok for item in self._items)

    @property
    def succeeded(self) -> list[tuple[int, BulkItemResult]]:
        return [(i, item) for i, item in enumerate(self._items) if item.ok]

    @property
    def failed(self) -> list[tuple[int, BulkItemResult]]:
        return [(i, item) for i, item in enumerate(self._items) if not item.ok]


def batch_iter(items: Sequence[T], batch_size: int) -> Iterator[tuple[int, Sequence[T]]]:
    """
    시퀀스를 배치 단위로 분할.

    Yields:
        (start_index, batch) — start_index는 원본 시퀀스에서의 시작 위치
    """
    for i in range(0, len(items), batch_size):
        yield i, items[i : i + batch_size]


class BulkIngestor:
    """
    Connection 위의 벌크 적재기.

    Args:
        max_batch_size: 물리 요청 1회당 최대 operation 수 (None = 분할 없음)
        action:         문서 시퀀스에 쓸 action — "create"(기본, 중복 _id 실패)
                        또는 "index"(중복 안전 upsert)
        refresh:        bulk 요청의 refresh 파라미터 ("true" / "wait_for" / None)
        schema:         지정하면 요청 전에 모든 문서를 validate (SchemaMismatch)
        retry:          연결 오류 재시도 설정 (기본: 재시도 없음)
    """

    def __init__(
        self,
        conn: Connection,
        max_batch_size: int | None = None,
        action: BulkAction | str = BulkAction.CREATE,
        refresh: str | bool | None = None,
        schema: IndexSchema | None = None,
        retry: RetryConfig | None = None,
    ):
        if max_batch_size is not None and max_batch_size < 1:
            raise ValueError("max_batch_size must be a positive integer")
        action = BulkAction(action)
        if action not in (BulkAction.CREATE, BulkAction.INDEX):
            raise ValueError(f"document action must be create or index, got {action.value}")
        self.conn = conn
        self.max_batch_size = max_batch_size
        self.action = action
        self.refresh = refresh
        self.schema = schema
        self._send = async_with_retry(retry or RetryConfig())(self._send_once)

    async def bulk_create(self, index: str, documents: Iterable[Any]) -> BulkResult:
        """문서 시퀀스 → 설정된 action으로 벌크 적재 (입력 순서 = 결과 순서)"""
        sources = [to_source(doc) for doc in documents]
        if self.schema is not None:
            for position, source in enumerate(sources):
                validate(source, self.schema, position)
        return await self.bulk(index, [BulkOperation(self.action, source) for source in sources])

    async def bulk(self, index: str, operations: Iterable[BulkOperation]) -> BulkResult:
        """임의 action이 섞인 operation 시퀀스 적재"""
        operations = list(operations)
        if not operations:
            return BulkResult([])

        batch_size = self.max_batch_size or len(operations)
        items: list[BulkItemResult] = []
        raw: list[dict] = []
        took = 0

        t0 = time.perf_counter()
        for start, batch in batch_iter(operations, batch_size):
            end = start + len(batch)
            try:
                body = await self._send(index, batch)
            except ApiError as e:
                raise TransportError(
                    f"bulk request for operations [{start}, {end}) rejected: {e.message}",
                    stage="bulk",
                    status=e.meta.status,
                    body=e.body,
                ) from e
            except ESTransportError as e:
                raise TransportError(
                    f"bulk request for operations [{start}, {end}) failed: {e}",
                    stage="bulk",
                ) from e
            items.extend(self._decode(body, batch, start))
            took += body.get("took", 0)
            raw.append(body)

        result = BulkResult(items, took_ms=took, raw=raw)
        wall_ms = (time.perf_counter() - t0) * 1000
        logger.info(
            f"bulk {index}: {len(result.succeeded)}/{len(result)} 성공 "
            f"(requests={len(raw)}, took={took}ms, wall={wall_ms:.0f}ms)"
        )
        for position, item in result.failed:
            logger.warning(
                f"[red]문서 #{position} 실패[/red] status={item.status} "
                f"{item.error.error_type}: {item.error.reason}"
            )
        return result

    async def _send_once(self, index: str, batch: Sequence[BulkOperation]) -> dict:
        lines = [line for op in batch for line in op.to_lines()]
        kwargs: dict = {"index": index, "operations": lines}
        if self.refresh is not None:
            kwargs["refresh"] = self.refresh
        return response_body(await self.conn.client.bulk(**kwargs))

    @staticmethod
    def _decode(body: Mapping[str, Any], batch: Sequence[BulkOperation], start: int) -> list[BulkItemResult]:
        raw_items = body.get("items")
        if not isinstance(raw_items, list) or len(raw_items) != len(batch):
            count = len(raw_items) if isinstance(raw_items, list) else 0
            raise TransportError(
                f"bulk response for operations starting at {start} has {count} items, "
                f"expected {len(batch)}",
                stage="bulk",
                body=body,
            )
        return [BulkItemResult.from_item(item) for item in raw_items]


# ================================================================
# 단건 / 상태 확인
# ================================================================

def _wrap_error(e: Exception, stage: str, what: str) -> TransportError:
    if isinstance(e, ApiError):
        return TransportError(f"{what}: {e.message}", stage=stage, status=e.meta.status, body=e.body)
    return TransportError(f"{what}: {e}", stage=stage)


async def bulk_create(
    conn: Connection,
    index: str,
    documents: Iterable[Any],
    max_batch_size: int | None = None,
) -> BulkResult:
    return await BulkIngestor(conn, max_batch_size=max_batch_size).bulk_create(index, documents)


async def index_document(
    conn: Connection,
    index: str,
    document: Any,
    doc_id: str | None = None,
    refresh: str | bool | None = None,
) -> str:
    """단일 문서 인덱싱 (doc_id 지정 시 upsert). 엔진이 부여한 _id 반환."""
    kwargs: dict = {"index": index, "document": to_source(document)}
    if doc_id is not None:
        kwargs["id"] = doc_id
    if refresh is not None:
        kwargs["refresh"] = refresh
    try:
        resp = response_body(await conn.client.index(**kwargs))
    except (ApiError, ESTransportError) as e:
        raise _wrap_error(e, "index", f"failed to index document into {index!r}") from e
    return resp["_id"]


async def refresh_index(conn: Connection, index: str):
    """수동 리프레시 — pending 문서를 검색 가능하게"""
    try:
        await conn.client.indices.refresh(index=index)
    except (ApiError, ESTransportError) as e:
        raise _wrap_error(e, "refresh", f"failed to refresh {index!r}") from e


async def count_documents(conn: Connection, index: str) -> int:
    try:
        resp = response_body(await conn.client.count(index=index))
    except (ApiError, ESTransportError) as e:
        raise _wrap_error(e, "count", f"failed to count {index!r}") from e
    return resp["count"]
