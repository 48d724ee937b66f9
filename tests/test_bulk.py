"""BulkIngestor: NDJSON 쌍 형식, 항목별 결과(길이/순서), 분할, 요청 전체 실패"""

import asyncio
from unittest.mock import AsyncMock

import pytest
from elasticsearch import ConnectionError as ESConnectionError

from es_ingest.bulk import (
    BulkAction,
    BulkIngestor,
    BulkItemResult,
    BulkOperation,
    bulk_create,
    count_documents,
    index_document,
    refresh_index,
)
from es_ingest.exceptions import SchemaMismatch, TransportError
from es_ingest.products import PRODUCT_SCHEMA, SAMPLE_PRODUCTS, Product
from es_ingest.provisioner import ensure_index
from es_ingest.retry import RetryConfig


def _ok_items(n, action="create"):
    return {"took": 2, "errors": False, "items": [
        {action: {"_id": f"id-{i}", "status": 201, "result": "created"}} for i in range(n)
    ]}


def _provisioned(engine_conn):
    asyncio.run(ensure_index(engine_conn, "products", PRODUCT_SCHEMA))


def test_wire_format_pairs_action_and_document(conn, client):
    client.bulk.return_value = _ok_items(2)
    docs = [{"name": "Pen", "price": 1.5}, {"name": "Ink", "price": 3.0}]
    asyncio.run(bulk_create(conn, "products", docs))

    kwargs = client.bulk.call_args.kwargs
    assert kwargs["index"] == "products"
    assert kwargs["operations"] == [
        {"create": {}}, {"name": "Pen", "price": 1.5},
        {"create": {}}, {"name": "Ink", "price": 3.0},
    ]
    assert "refresh" not in kwargs


def test_operation_lines_per_action():
    doc = {"name": "Pen"}
    assert BulkOperation(BulkAction.CREATE, doc).to_lines() == [{"create": {}}, doc]
    assert BulkOperation("index", doc, doc_id="p1").to_lines() == [{"index": {"_id": "p1"}}, doc]
    assert BulkOperation("update", doc, doc_id="p1").to_lines() == [{"update": {"_id": "p1"}}, {"doc": doc}]
    assert BulkOperation("delete", doc_id="p1").to_lines() == [{"delete": {"_id": "p1"}}]


@pytest.mark.parametrize("kwargs", [
    {"action": "delete"},
    {"action": "update", "document": {"name": "Pen"}},
    {"action": "create"},
])
def test_operation_requires_id_or_document(kwargs):
    with pytest.raises(ValueError):
        BulkOperation(**kwargs)


def test_result_has_same_length_and_order(engine_conn, engine):
    _provisioned(engine_conn)
    result = asyncio.run(bulk_create(engine_conn, "products", SAMPLE_PRODUCTS))

    assert len(result) == len(SAMPLE_PRODUCTS)
    assert all(item.ok for item in result)
    assert not result.errors
    stored = [doc["name"] for _, doc in engine.indices["products"]["docs"]]
    assert stored == [p.name for p in SAMPLE_PRODUCTS]
    assert [item.doc_id for item in result] == [doc_id for doc_id, _ in engine.indices["products"]["docs"]]


def test_single_type_mismatch_fails_only_that_item(engine_conn):
    _provisioned(engine_conn)
    docs = [
        {"name": "Pen", "price": 1.5},
        {"name": "Ink", "price": "cheap"},
        {"name": "Pad", "price": 2.0},
    ]
    result = asyncio.run(bulk_create(engine_conn, "products", docs))

    assert len(result) == 3
    assert result.errors
    assert [position for position, _ in result.failed] == [1]
    assert [position for position, _ in result.succeeded] == [0, 2]
    failure = result[1].error
    assert failure.status == 400
    assert failure.error_type == "document_parsing_exception"
    assert "price" in failure.reason


def test_max_batch_size_splits_requests_and_keeps_order(engine_conn, engine):
    _provisioned(engine_conn)
    docs = [{"name": f"item-{i}", "price": float(i)} for i in range(7)]
    result = asyncio.run(
        BulkIngestor(engine_conn, max_batch_size=3).bulk_create("products", docs)
    )

    assert [len(req) // 2 for req in engine.bulk_requests] == [3, 3, 1]
    assert len(result) == 7
    assert len(result.raw) == 3
    assert result.took_ms == 9
    assert [doc["name"] for _, doc in engine.indices["products"]["docs"]] == [d["name"] for d in docs]


def test_empty_input_skips_round_trip(conn, client):
    result = asyncio.run(bulk_create(conn, "products", []))
    assert len(result) == 0
    client.bulk.assert_not_awaited()


def test_index_action_and_refresh(conn, client):
    client.bulk.return_value = _ok_items(1, action="index")
    ingestor = BulkIngestor(conn, action="index", refresh="wait_for")
    result = asyncio.run(ingestor.bulk_create("products", [Product(name="Pen", price=1.5)]))

    kwargs = client.bulk.call_args.kwargs
    assert kwargs["operations"][0] == {"index": {}}
    assert kwargs["operations"][1]["name"] == "Pen"
    assert kwargs["refresh"] == "wait_for"
    assert result[0].action == "index"


def test_invalid_ingestor_options(conn):
    with pytest.raises(ValueError):
        BulkIngestor(conn, max_batch_size=0)
    with pytest.raises(ValueError):
        BulkIngestor(conn, action="delete")


def test_schema_precheck_fails_before_request(conn, client):
    ingestor = BulkIngestor(conn, schema=PRODUCT_SCHEMA)
    docs = [{"name": "Pen", "price": 1.5}, {"name": "Ink", "price": "cheap"}]
    with pytest.raises(SchemaMismatch) as exc_info:
        asyncio.run(ingestor.bulk_create("products", docs))
    assert exc_info.value.position == 1
    assert "price" in exc_info.value.fields
    client.bulk.assert_not_awaited()


def test_item_count_mismatch_is_transport_error(conn, client):
    client.bulk.return_value = _ok_items(1)
    with pytest.raises(TransportError) as exc_info:
        asyncio.run(bulk_create(conn, "products", [{"name": "a"}, {"name": "b"}]))
    assert "expected 2" in str(exc_info.value)


def test_network_loss_is_transport_error(conn, client):
    client.bulk.side_effect = ESConnectionError("Connection reset by peer")
    with pytest.raises(TransportError) as exc_info:
        asyncio.run(bulk_create(conn, "products", [{"name": "Pen"}]))
    assert exc_info.value.stage == "bulk"


def test_whole_request_rejection_is_transport_error(conn, client, api_error):
    client.bulk.side_effect = api_error(413, "request_entity_too_large")
    with pytest.raises(TransportError) as exc_info:
        asyncio.run(bulk_create(conn, "products", [{"name": "Pen"}]))
    assert exc_info.value.status == 413


def test_retry_on_connection_error(conn, client):
    client.bulk.side_effect = [ESConnectionError("refused"), _ok_items(1)]
    ingestor = BulkIngestor(conn, retry=RetryConfig(max_retries=2, initial_backoff=0.0))
    result = asyncio.run(ingestor.bulk_create("products", [{"name": "Pen"}]))
    assert len(result) == 1
    assert client.bulk.await_count == 2


def test_item_result_decoding():
    ok = BulkItemResult.from_item({"create": {"_id": "a", "status": 201}})
    assert ok.ok and ok.error is None
    conflict = BulkItemResult.from_item({"create": {
        "_id": "a", "status": 409,
        "error": {"type": "version_conflict_engine_exception", "reason": "document already exists"},
    }})
    assert not conflict.ok
    assert conflict.error.error_type == "version_conflict_engine_exception"


def test_index_document_count_and_refresh(conn, client):
    doc_id = asyncio.run(index_document(conn, "products", {"name": "Pen"}, refresh="true"))
    assert doc_id == "generated-1"
    assert client.index.call_args.kwargs == {
        "index": "products", "document": {"name": "Pen"}, "refresh": "true",
    }

    client.count = AsyncMock(return_value={"count": 7})
    assert asyncio.run(count_documents(conn, "products")) == 7

    asyncio.run(refresh_index(conn, "products"))
    client.indices.refresh.assert_awaited_once_with(index="products")


def test_index_document_rejection(conn, client, api_error):
    client.index.side_effect = api_error(400, "document_parsing_exception")
    with pytest.raises(TransportError) as exc_info:
        asyncio.run(index_document(conn, "products", {"price": "cheap"}))
    assert exc_info.value.status == 400
    assert exc_info.value.stage == "index"


def test_negative_retry_count_rejected(conn, client):
    with pytest.raises(ValueError):
        BulkIngestor(conn, retry=RetryConfig(max_retries=-1))
    client.bulk.assert_not_awaited()


def test_backoff_capped_at_max():
    retry = RetryConfig(max_retries=10, initial_backoff=1.0, max_backoff=5.0)
    assert [retry.backoff(n) for n in (1, 2, 3, 4, 10)] == [1.0, 2.0, 4.0, 5.0, 5.0]
    assert RetryConfig(initial_backoff=2.0, exponential=False).backoff(7) == 2.0
