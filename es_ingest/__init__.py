"""
es_ingest — Elasticsearch 인덱스 프로비저닝 + 벌크 적재 + 검색 클라이언트

연결 (한 번 생성해서 각 컴포넌트에 명시적으로 전달):
    from es_ingest import Config, connect
    conn = await connect(Config.from_env())   # CLOUD_ID / API_KEY_ID / API_KEY

인덱스 확인/생성 (idempotent):
    from es_ingest import ensure_index, PRODUCT_SCHEMA
    state = await ensure_index(conn, "products", PRODUCT_SCHEMA)   # CREATED / ALREADY_EXISTS

벌크 적재 (항목별 결과, 입력 순서 유지):
    from es_ingest import BulkIngestor
    result = await BulkIngestor(conn, max_batch_size=500).bulk_create("products", docs)
    result.failed   # [(position, BulkItemResult), ...]

검색 (Product로 디코딩):
    from es_ingest import search, multi_match, Product
    for score, product in await search(conn, "products", multi_match("Pen", ["name"]), Product):
        ...
"""

from .bulk import (
    BulkAction,
    BulkIngestor,
    BulkItemResult,
    BulkOperation,
    BulkResult,
    ItemFailure,
    bulk_create,
    count_documents,
    index_document,
    refresh_index,
)
from .config import Config, load_env
from .connection import Connection, build_es_client, connect
from .dead_letter import DeadLetterWriter
from .exceptions import (
    ConfigError,
    EngineConnectionError,
    IngestError,
    ProvisioningError,
    QueryError,
    SchemaMismatch,
    TransportError,
)
from .log import get_logger, setup_logging
from .products import PRODUCT_SCHEMA, SAMPLE_PRODUCTS, Product
from .provisioner import IndexProvisioner, IndexState, delete_index, ensure_index
from .query import QueryClient, SearchHit, SearchResult, multi_match, search
from .retry import RetryConfig, async_with_retry
from .schema import FieldSpec, IndexSchema, validate

__all__ = [
    # Config
    "Config", "load_env",
    # Transport
    "Connection", "build_es_client", "connect",
    # Schema
    "FieldSpec", "IndexSchema", "validate",
    # Provisioner
    "IndexProvisioner", "IndexState", "ensure_index", "delete_index",
    # Bulk
    "BulkAction", "BulkIngestor", "BulkItemResult", "BulkOperation", "BulkResult",
    "ItemFailure", "bulk_create", "index_document", "refresh_index", "count_documents",
    "DeadLetterWriter",
    # Query
    "QueryClient", "SearchHit", "SearchResult", "multi_match", "search",
    # Retry
    "RetryConfig", "async_with_retry",
    # Errors
    "IngestError", "ConfigError", "EngineConnectionError", "ProvisioningError",
    "TransportError", "QueryError", "SchemaMismatch",
    # Logging
    "setup_logging", "get_logger",
    # products 샘플
    "PRODUCT_SCHEMA", "SAMPLE_PRODUCTS", "Product",
]
