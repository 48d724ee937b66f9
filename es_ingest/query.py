"""검색 + hit 디코딩

결과는 반환 전에 전부 버퍼링/디코딩한다. hit 하나라도 디코딩에 실패하면
부분 결과 없이 QueryError. SearchResult는 한 번만 순회할 수 있고,
다시 보려면 search()를 다시 호출한다.

    client = QueryClient(conn)
    result = await client.search("products", multi_match("toothbrush", ["name", "description"]),
                                 document_type=Product)
    for score, product in result:
        print(f"{score:.3f}  {product.name}")
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterator, Mapping, Sequence

from elasticsearch import ApiError, TransportError as ESTransportError

from .connection import Connection, response_body
from .exceptions import QueryError, TransportError
from .log import get_logger

logger = get_logger("query")


def multi_match(text: str, fields: Sequence[str], **options) -> dict:
    """여러 필드 대상 전문 검색 body"""
    clause = {"query": text, "fields": list(fields), **options}
    return {"query": {"multi_match": clause}}


@dataclass(frozen=True)
class SearchHit:
    score: float | None
    source: dict
    document: Any
    doc_id: str | None = None
    index: str | None = None


class SearchResult:
    """(score, document) 1회용 이터레이터 + 메타 정보"""

    def __init__(
        self,
        hits: list[SearchHit],
        total: int | None = None,
        max_score: float | None = None,
        took_ms: int = 0,
    ):
        self.hits = hits
        self.total = total
        self.max_score = max_score
        self.took_ms = took_ms
        self._iter = iter(hits)

    def __iter__(self) -> Iterator[tuple[float | None, Any]]:
        return self

    def __next__(self) -> tuple[float | None, Any]:
        hit = next(self._iter)
        return hit.score, hit.document

    def __len__(self) -> int:
        return len(self.hits)

    def documents(self) -> list[Any]:
        return [hit.document for hit in self.hits]


def _decode_hits(raw_hits: list, document_type) -> list[SearchHit]:
    hits = []
    for position, raw in enumerate(raw_hits):
        if not isinstance(raw, Mapping):
            raise QueryError(f"hit #{position} is not an object: {type(raw).__name__}")
        source = raw.get("_source")
        if source is None:
            raise QueryError(f"hit #{position} has no _source")
        try:
            document = document_type.from_source(source) if document_type else source
        except (ValueError, TypeError, KeyError) as e:
            raise QueryError(
                f"failed to decode hit #{position} (_id={raw.get('_id')}): {e}"
            ) from e
        hits.append(SearchHit(
            score=raw.get("_score"),
            source=source,
            document=document,
            doc_id=raw.get("_id"),
            index=raw.get("_index"),
        ))
    return hits


class QueryClient:
    """Connection 위의 검색 클라이언트"""

    def __init__(self, conn: Connection):
        self.conn = conn

    async def search(
        self,
        index: str,
        query: Mapping[str, Any],
        document_type=None,
        size: int | None = None,
    ) -> SearchResult:
        """
        query body로 검색 → 디코딩된 SearchResult.

        Args:
            query:         요청 body ({"query": {...}, "sort": ..., ...})
            document_type: from_source(dict)를 가진 타입 (None이면 _source dict 그대로)
            size:          body의 size보다 우선

        Raises:
            QueryError:     body 형식 오류, non-2xx(없는 인덱스 포함), 디코딩 실패
            TransportError: 네트워크 단절 / 타임아웃
        """
        if not isinstance(query, Mapping):
            raise QueryError(f"query body must be a mapping, got {type(query).__name__}")

        body = dict(query)
        if size is not None:
            body["size"] = size

        try:
            resp = response_body(await self.conn.client.search(index=index, body=body))
        except ApiError as e:
            raise QueryError(
                f"search on {index!r} rejected: {e.message}",
                status=e.meta.status,
                body=e.body,
            ) from e
        except ESTransportError as e:
            raise TransportError(f"search request on {index!r} failed: {e}", stage="search") from e

        hits_body = resp.get("hits")
        if not isinstance(hits_body, Mapping) or not isinstance(hits_body.get("hits"), list):
            raise QueryError(f"malformed search response from {index!r}", body=resp)

        hits = _decode_hits(hits_body["hits"], document_type)
        total = hits_body.get("total")
        if isinstance(total, Mapping):
            total = total.get("value")

        logger.info(f"search {index}: {len(hits)} hits (total={total}, took={resp.get('took', 0)}ms)")
        return SearchResult(
            hits,
            total=total,
            max_score=hits_body.get("max_score"),
            took_ms=resp.get("took", 0),
        )


async def search(
    conn: Connection,
    index: str,
    query: Mapping[str, Any],
    document_type=None,
    size: int | None = None,
) -> SearchResult:
    return await QueryClient(conn).search(index, query, document_type=document_type, size=size)
