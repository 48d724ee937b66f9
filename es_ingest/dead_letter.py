"""Dead Letter Writer — 벌크 실패 문서를 JSONL로 기록 (수동 재처리용)

파일 형식 (1줄 = 실패 문서 1건):
    {"index": "products", "position": 3, "status": 400,
     "error_type": "document_parsing_exception", "reason": "...",
     "ts": "...", "document": {...}}
"""

from __future__ import annotations

import asyncio
import json
import time
from pathlib import Path
from typing import Any, Sequence

from .bulk import BulkResult
from .log import get_logger

logger = get_logger("dead_letter")


class DeadLetterWriter:
    """실패 항목을 JSONL 파일에 비동기 안전하게 기록."""

    def __init__(self, path: Path):
        self.path = path
        self._lock = asyncio.Lock()
        self._count = 0

    async def write(self, index: str, result: BulkResult, documents: Sequence[Any]) -> int:
        """result의 실패 항목을 원본 문서와 함께 기록. 기록한 건수 반환."""
        failed = result.failed
        if not failed:
            return 0

        ts = time.strftime("%Y-%m-%dT%H:%M:%S")
        lines = [
            json.dumps({
                "index": index,
                "position": position,
                "status": item.status,
                "error_type": item.error.error_type if item.error else None,
                "reason": item.error.reason if item.error else None,
                "ts": ts,
                "document": documents[position],
            }, ensure_ascii=False)
            for position, item in failed
        ]
        async with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "a", encoding="utf-8") as f:
                f.write("\n".join(lines) + "\n")
            self._count += len(lines)

        logger.warning(f"[red]실패 {len(lines)}건 기록[/red] → {self.path}")
        return len(lines)

    @property
    def count(self) -> int:
        return self._count
