"""공용 fixture — Mock 클라이언트 + 인메모리 가짜 엔진

외부 Elasticsearch 없이 MagicMock(AsyncMock 메서드)으로 코드 경로를 검증한다.
엔진 예외는 실제 elasticsearch / elastic_transport 클래스로 만든다.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from elastic_transport import ApiResponseMeta, HttpHeaders, NodeConfig
from elasticsearch import ApiError, BadRequestError, NotFoundError

from es_ingest.connection import Connection


def make_api_error(status: int, error_type: str = "some_exception", reason: str = "rejected"):
    meta = ApiResponseMeta(
        status=status,
        http_version="1.1",
        headers=HttpHeaders(),
        duration=0.0,
        node=NodeConfig("http", "localhost", 9200),
    )
    body = {
        "error": {
            "root_cause": [{"type": error_type, "reason": reason}],
            "type": error_type,
            "reason": reason,
        },
        "status": status,
    }
    cls = {400: BadRequestError, 404: NotFoundError}.get(status, ApiError)
    return cls(message=error_type, meta=meta, body=body)


def make_client() -> MagicMock:
    client = MagicMock()
    client.info = AsyncMock(return_value={
        "cluster_name": "test-cluster",
        "version": {"number": "8.15.0"},
    })
    client.indices.exists = AsyncMock(return_value=False)
    client.indices.create = AsyncMock(return_value={"acknowledged": True})
    client.indices.delete = AsyncMock(return_value={"acknowledged": True})
    client.indices.refresh = AsyncMock(return_value={})
    client.bulk = AsyncMock()
    client.search = AsyncMock()
    client.index = AsyncMock(return_value={"_id": "generated-1", "result": "created"})
    client.count = AsyncMock(return_value={"count": 0})
    client.close = AsyncMock()
    return client


class FakeEngine:
    """exists / create / bulk / search 만 흉내내는 인메모리 엔진.

    - create: 이미 있으면 resource_already_exists_exception (400)
    - bulk:   float/keyword/text 타입이 맞지 않으면 해당 항목만 400
    - search: multi_match 토큰 일치, 없는 인덱스는 index_not_found_exception (404)
    """

    def __init__(self):
        self.indices: dict[str, dict] = {}
        self.bulk_requests: list[list[dict]] = []
        self._next_id = 0
        self.client = make_client()
        self.client.indices.exists = AsyncMock(side_effect=self.exists)
        self.client.indices.create = AsyncMock(side_effect=self.create)
        self.client.bulk = AsyncMock(side_effect=self.bulk)
        self.client.search = AsyncMock(side_effect=self.search)

    async def exists(self, index):
        return index in self.indices

    async def create(self, index, mappings=None, settings=None):
        if index in self.indices:
            raise make_api_error(400, "resource_already_exists_exception", f"index [{index}] already exists")
        self.indices[index] = {"properties": (mappings or {}).get("properties", {}), "docs": []}
        return {"acknowledged": True, "index": index}

    def _reject_reason(self, index, doc):
        for name, value in doc.items():
            spec = self.indices[index]["properties"].get(name)
            if spec is None:
                continue
            if spec["type"] == "float":
                if isinstance(value, (int, float)) and not isinstance(value, bool):
                    continue
                try:
                    float(value)
                except (TypeError, ValueError):
                    return f"failed to parse field [{name}] of type [float]"
            elif spec["type"] in ("text", "keyword") and not isinstance(value, str):
                return f"failed to parse field [{name}] of type [{spec['type']}]"
        return None

    async def bulk(self, index, operations, refresh=None):
        if index not in self.indices:
            # 실제 엔진은 자동 생성하지만 테스트에서는 사전 생성만 허용
            raise make_api_error(404, "index_not_found_exception", f"no such index [{index}]")
        self.bulk_requests.append(list(operations))
        items = []
        lines = iter(operations)
        for action_line in lines:
            (action, meta), = action_line.items()
            doc = next(lines)
            reason = self._reject_reason(index, doc)
            if reason:
                items.append({action: {
                    "_index": index,
                    "status": 400,
                    "error": {"type": "document_parsing_exception", "reason": reason},
                }})
                continue
            self._next_id += 1
            doc_id = meta.get("_id", f"id-{self._next_id}")
            self.indices[index]["docs"].append((doc_id, dict(doc)))
            items.append({action: {"_index": index, "_id": doc_id, "status": 201, "result": "created"}})
        return {
            "took": 3,
            "errors": any("error" in next(iter(i.values())) for i in items),
            "items": items,
        }

    async def search(self, index, body):
        if index not in self.indices:
            raise make_api_error(404, "index_not_found_exception", f"no such index [{index}]")
        match = body["query"]["multi_match"]
        terms = set(match["query"].lower().split())
        hits = []
        for doc_id, doc in self.indices[index]["docs"]:
            tokens = set()
            for field in match["fields"]:
                tokens.update(str(doc.get(field, "")).lower().split())
            if terms & tokens:
                hits.append({"_index": index, "_id": doc_id, "_score": 1.0, "_source": doc})
        hits = hits[: body.get("size", 10)]
        return {
            "took": 1,
            "hits": {
                "total": {"value": len(hits), "relation": "eq"},
                "max_score": 1.0 if hits else None,
                "hits": hits,
            },
        }


@pytest.fixture
def api_error():
    return make_api_error


@pytest.fixture
def client() -> MagicMock:
    return make_client()


@pytest.fixture
def conn(client) -> Connection:
    return Connection(client=client, endpoint="http://localhost:9200")


@pytest.fixture
def engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def engine_conn(engine) -> Connection:
    return Connection(client=engine.client, endpoint="fake://engine")
