"""
es-ingest CLI 엔트리포인트

사전 조건 (.env 또는 환경변수):
  CLOUD_ID, API_KEY_ID, API_KEY     — Elastic Cloud
  ES_URL                            — 로컬/자체 클러스터 (설정 시 위 3개 생략 가능)

실행:
  # 인덱스만 확인/생성
  python -m es_ingest --mode provision

  # 샘플 상품 적재 (인덱스 없으면 생성)
  python -m es_ingest --mode load

  # JSONL 적재 + 500건씩 분할 + 중복 안전 upsert + 실패 기록
  python -m es_ingest --mode load --documents data/products.jsonl \\
      --max_batch_size 500 --action index --failure_log logs/failed.jsonl

  # 검색
  python -m es_ingest --mode search --query toothbrush
  python -m es_ingest --mode search --query Pen --fields name --raw

종료 코드: 성공 0, 연결/프로비저닝/적재/검색 단계 실패 1
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from .config import BULK_ACTIONS, Config, load_env
from .exceptions import IngestError
from .log import get_logger, setup_logging
from .pipeline import load_documents, run_load, run_provision, run_search
from .products import PRODUCT_SCHEMA, PRODUCT_SEARCH_FIELDS
from .schema import IndexSchema

logger = get_logger("cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="es-ingest",
        description="Elasticsearch 인덱스 프로비저닝 + 벌크 적재 + 검색",
    )
    parser.add_argument(
        "--mode", choices=["provision", "load", "search"], default="load",
        help="provision=인덱스 확인/생성, load=생성+벌크 적재, search=검색",
    )
    parser.add_argument("--index", default=None, help="인덱스 이름 (default: ES_INDEX 또는 products)")
    parser.add_argument(
        "--schema", type=Path, default=None,
        help="create-index body JSON 파일 (미지정 시 products 매핑)",
    )

    # ── 연결 ──
    conn = parser.add_argument_group("연결")
    conn.add_argument("--env_file", type=Path, default=None, help=".env 파일 경로")
    conn.add_argument("--es_url", default=None, help="자체 클러스터 URL (설정 시 CLOUD_ID 무시)")
    conn.add_argument(
        "--no_verify", action="store_true",
        help="기동 시 info() 연결 확인 생략",
    )

    # ── 적재 ──
    load = parser.add_argument_group("적재 (--mode load)")
    load.add_argument(
        "--documents", type=Path, default=None,
        help="JSON 배열 또는 JSONL 파일 (미지정 시 샘플 상품)",
    )
    load.add_argument("--max_batch_size", type=int, default=None, help="요청 1회당 최대 문서 수")
    load.add_argument(
        "--action", choices=BULK_ACTIONS, default=None,
        help="create=중복 _id 실패 (default), index=중복 안전 upsert",
    )
    load.add_argument(
        "--refresh", choices=["true", "false", "wait_for"], default=None,
        help="bulk refresh 파라미터",
    )
    load.add_argument("--validate", action="store_true", help="요청 전에 스키마 검증")
    load.add_argument("--max_retries", type=int, default=None, help="연결 오류 재시도 횟수")
    load.add_argument("--failure_log", type=Path, default=None, help="실패 문서 JSONL 경로")

    # ── 검색 ──
    query = parser.add_argument_group("검색 (--mode search)")
    query.add_argument("--query", default=None, help="검색어")
    query.add_argument(
        "--fields", nargs="+", default=list(PRODUCT_SEARCH_FIELDS),
        help="multi_match 대상 필드",
    )
    query.add_argument("--size", type=int, default=None)
    query.add_argument("--raw", action="store_true", help="Product 변환 없이 _source 출력")

    # ── 로그 ──
    parser.add_argument("--log_file", type=Path, default=None)
    parser.add_argument("--verbose", action="store_true")
    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.mode == "search" and not args.query:
        parser.error("--mode search requires --query")

    setup_logging(args.log_file, logging.DEBUG if args.verbose else logging.INFO)
    load_env(args.env_file)

    try:
        config = Config.from_env(
            es_url=args.es_url,
            index_name=args.index,
            max_batch_size=args.max_batch_size,
            bulk_action=args.action,
            refresh=args.refresh,
            max_retries=args.max_retries,
            log_file=args.log_file,
            failure_log_path=args.failure_log,
            verify_connection=False if args.no_verify else None,
        )
        schema = PRODUCT_SCHEMA
        if args.schema:
            schema = IndexSchema.from_body(json.loads(args.schema.read_text(encoding="utf-8")))

        if args.mode == "provision":
            run_provision(config, schema)
        elif args.mode == "load":
            run_load(config, load_documents(args.documents), schema, validate_first=args.validate)
        else:
            run_search(config, args.query, args.fields, size=args.size, raw=args.raw)
    except IngestError as e:
        logger.error(f"[bold red]{e.stage} 단계 실패[/bold red]: {e}")
        if e.body is not None:
            logger.error(f"응답 body: {e.body}")
        return 1
    except (OSError, ValueError) as e:
        logger.error(f"[bold red]입력 오류[/bold red]: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
