"""end-to-end 흐름 — provision / load / search + Rich 요약

provision: 연결 → 인덱스 확인/생성
load:      연결 → 인덱스 확인/생성 → 벌크 적재 → 실패 항목 Dead Letter
search:    연결 → multi_match 검색 → hit 디코딩

각 run_* 함수는 asyncio.run 동기 래퍼이며, 실패는 IngestError로 그대로 전파된다.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Sequence

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .bulk import BulkIngestor, BulkResult, to_source
from .config import Config
from .connection import connect
from .dead_letter import DeadLetterWriter
from .log import get_logger
from .products import PRODUCT_SCHEMA, PRODUCT_SEARCH_FIELDS, SAMPLE_PRODUCTS, Product
from .provisioner import IndexState, ensure_index
from .query import SearchResult, multi_match, search
from .retry import RetryConfig
from .schema import IndexSchema

console = Console()
logger = get_logger("pipeline")


def load_documents(path: Path | None) -> list[dict]:
    """JSON 배열 또는 JSONL 파일 → 문서 목록. None이면 샘플 상품."""
    if path is None:
        return [p.to_source() for p in SAMPLE_PRODUCTS]

    text = path.read_text(encoding="utf-8").strip()
    if text.startswith("["):
        documents = json.loads(text)
    else:
        documents = [json.loads(line) for line in text.splitlines() if line.strip()]
    if not all(isinstance(doc, dict) for doc in documents):
        raise ValueError(f"{path}: every document must be a JSON object")
    return documents


def _summary_table(title: str, rows: list[tuple[str, str]]) -> Table:
    """결과 요약 Rich Table"""
    table = Table(title=title, show_header=False, border_style="dim")
    table.add_column("항목", style="bold")
    table.add_column("값", justify="right", style="cyan")
    for label, value in rows:
        table.add_row(label, value)
    return table


def _bulk_rows(config: Config, state: IndexState, result: BulkResult, dead_letter: DeadLetterWriter | None):
    rows = [
        ("대상", config.endpoint),
        ("인덱스", f"{config.index_name} ({state.value})"),
        ("action", config.bulk_action),
        ("문서 수", f"{len(result):,}"),
        ("성공", f"{len(result.succeeded):,}"),
        ("took", f"{result.took_ms}ms"),
    ]
    if result.errors:
        rows.append(("실패", f"[red]{len(result.failed):,}건[/]"))
        if dead_letter is not None:
            rows.append(("Dead Letter", str(dead_letter.path)))
    return rows


def _hits_table(title: str, result: SearchResult) -> Table:
    table = Table(title=title, border_style="dim")
    table.add_column("#", justify="right")
    table.add_column("score", justify="right", style="cyan")
    table.add_column("document")
    for rank, hit in enumerate(result.hits, start=1):
        score = "-" if hit.score is None else f"{hit.score:.4f}"
        table.add_row(str(rank), score, repr(hit.document))
    return table


# ============================================================
# async 흐름
# ============================================================

async def _run_provision(config: Config, schema: IndexSchema) -> IndexState:
    async with await connect(config) as conn:
        return await ensure_index(conn, config.index_name, schema)


async def _run_load(
    config: Config,
    documents: Sequence[Any],
    schema: IndexSchema,
    validate_first: bool = False,
) -> tuple[IndexState, BulkResult, DeadLetterWriter | None]:
    sources = [to_source(doc) for doc in documents]

    async with await connect(config) as conn:
        logger.info(f"[1/2] 인덱스 확인: {config.index_name}")
        state = await ensure_index(conn, config.index_name, schema)

        logger.info(
            f"[2/2] 벌크 적재 {len(sources):,}건 "
            f"(action={config.bulk_action}, max_batch_size={config.max_batch_size})"
        )
        ingestor = BulkIngestor(
            conn,
            max_batch_size=config.max_batch_size,
            action=config.bulk_action,
            refresh=config.refresh,
            schema=schema if validate_first else None,
            retry=RetryConfig(
                max_retries=config.max_retries,
                initial_backoff=config.retry_backoff,
                max_backoff=config.retry_max_backoff,
            ),
        )
        result = await ingestor.bulk_create(config.index_name, sources)

    dead_letter = None
    if result.errors and config.failure_log_path is not None:
        dead_letter = DeadLetterWriter(config.failure_log_path)
        await dead_letter.write(config.index_name, result, sources)
    return state, result, dead_letter


async def _run_search(
    config: Config,
    text: str,
    fields: Sequence[str],
    size: int | None,
    raw: bool,
) -> SearchResult:
    async with await connect(config) as conn:
        return await search(
            conn,
            config.index_name,
            multi_match(text, fields),
            document_type=None if raw else Product,
            size=size,
        )


# ============================================================
# Public API — 동기 래퍼
# ============================================================

def run_provision(config: Config, schema: IndexSchema = PRODUCT_SCHEMA) -> IndexState:
    """인덱스가 없으면 생성"""
    state = asyncio.run(_run_provision(config, schema))
    if state is IndexState.CREATED:
        console.print(f"[green]Index {config.index_name} created.[/]")
    else:
        console.print(f"Index {config.index_name} already exists.")
    return state


def run_load(
    config: Config,
    documents: Sequence[Any],
    schema: IndexSchema = PRODUCT_SCHEMA,
    validate_first: bool = False,
) -> BulkResult:
    """인덱스 확인/생성 후 벌크 적재. 일부 실패는 요약에 표시하고 반환."""
    console.print(
        Panel.fit(
            f"[bold]Load[/] — {config.index_name} ← {len(documents):,} documents",
            border_style="green",
        )
    )
    state, result, dead_letter = asyncio.run(_run_load(config, documents, schema, validate_first))
    rows = _bulk_rows(config, state, result, dead_letter)
    console.print(_summary_table("결과 요약", rows))
    for label, value in rows:
        logger.info(f"{label}: {value}")
    return result


def run_search(
    config: Config,
    text: str,
    fields: Sequence[str] = PRODUCT_SEARCH_FIELDS,
    size: int | None = None,
    raw: bool = False,
) -> SearchResult:
    """multi_match 검색 후 hit 표 출력"""
    result = asyncio.run(_run_search(config, text, fields, size, raw))
    console.print(_hits_table(f"'{text}' — {len(result)} hits (total={result.total})", result))
    return result
