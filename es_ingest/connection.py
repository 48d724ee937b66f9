"""Elasticsearch 접속 핸들 (Transport Binding)

Connection은 한 번 생성해서 provisioner / ingestor / query client에
명시적으로 넘겨 쓴다. 생성 후 불변이며 여러 코루틴이 동시에 써도 된다.

    conn = await connect(Config.from_env())
    async with conn:
        await ensure_index(conn, "products", PRODUCT_SCHEMA)
"""

from __future__ import annotations

from dataclasses import dataclass

from elasticsearch import (
    ApiError,
    AsyncElasticsearch,
    ConnectionError as ESConnectionError,
    TransportError as ESTransportError,
)

from .config import Config
from .exceptions import EngineConnectionError
from .log import get_logger

logger = get_logger("connection")


def response_body(response):
    """ObjectApiResponse → dict (mock/dict 응답은 그대로)"""
    return getattr(response, "body", response)


def build_es_client(config: Config) -> AsyncElasticsearch:
    """Config 기반으로 AsyncElasticsearch 클라이언트를 생성.

    - Cloud: cloud_id 사용 — es_url / es_nodes 무시
    - 단일 노드: es_url
    - 클러스터: es_nodes (+ es_fingerprint 로 TLS 고정)

    인증은 API Key 우선, 없으면 Basic Auth.
    locator 형식이 잘못되면 클라이언트 생성자가 ValueError를 낸다.

    Examples:
        # Elastic Cloud
        config = Config(cloud_id="deploy:ZXUt...", api_key_id="id", api_key="secret")

        # 로컬 개발
        config = Config(es_url="http://localhost:9200")
    """
    kwargs: dict = {"request_timeout": config.request_timeout}

    if config.cloud_id:
        kwargs["cloud_id"] = config.cloud_id
    else:
        kwargs["hosts"] = config.es_nodes or [config.es_url]

    if config.api_key_id and config.api_key:
        kwargs["api_key"] = (config.api_key_id, config.api_key)
    elif config.api_key:
        kwargs["api_key"] = config.api_key
    elif config.es_username and config.es_password:
        kwargs["basic_auth"] = (config.es_username, config.es_password)

    if config.es_fingerprint:
        kwargs["ssl_assert_fingerprint"] = config.es_fingerprint
        kwargs["verify_certs"] = False

    return AsyncElasticsearch(**kwargs)


@dataclass(frozen=True)
class Connection:
    """해석된 접속 대상 + 인증 정보가 담긴 클라이언트 핸들."""

    client: AsyncElasticsearch
    endpoint: str
    cluster_name: str | None = None
    version: str | None = None

    async def close(self):
        await self.client.close()

    async def __aenter__(self) -> Connection:
        return self

    async def __aexit__(self, *exc_info):
        await self.close()


async def connect(config: Config, verify: bool | None = None) -> Connection:
    """Config → Connection.

    verify=True (기본: config.verify_connection)이면 info() 왕복으로
    주소/인증을 즉시 확인한다. 실패는 미루지 않고 EngineConnectionError로 보고.
    재시도는 하지 않는다.
    """
    if verify is None:
        verify = config.verify_connection

    if not config.cloud_id and not (config.es_nodes or config.es_url):
        raise EngineConnectionError("no cloud id or endpoint URL configured")

    try:
        client = build_es_client(config)
    except ValueError as e:
        raise EngineConnectionError(f"malformed locator: {e}") from e

    if not verify:
        return Connection(client=client, endpoint=config.endpoint)

    try:
        info = await client.info()
    except ApiError as e:
        await client.close()
        raise EngineConnectionError(
            f"engine rejected connection: {e.message}",
            status=e.meta.status,
            body=e.body,
        ) from e
    except ESConnectionError as e:
        await client.close()
        raise EngineConnectionError(f"engine unreachable: {e}") from e
    except ESTransportError as e:
        await client.close()
        raise EngineConnectionError(f"transport failure: {e}") from e

    info = response_body(info)
    cluster_name = info.get("cluster_name")
    version = info.get("version", {}).get("number")
    logger.info(f"연결 완료: {config.endpoint} (cluster={cluster_name}, version={version})")
    return Connection(
        client=client,
        endpoint=config.endpoint,
        cluster_name=cluster_name,
        version=version,
    )
