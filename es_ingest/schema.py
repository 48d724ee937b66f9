"""인덱스 스키마 선언 + 클라이언트 측 문서 검증

IndexSchema는 필드명 → FieldSpec 매핑이며 생성 후 변경하지 않는다.
validate()는 왕복 전에 타입 불일치를 미리 잡기 위한 선택적 검사로,
엔진의 per-item 에러보다 싸고 읽기 쉽다.

    schema = IndexSchema({
        "name": FieldSpec("text", analyzer="standard"),
        "price": FieldSpec("float"),
    })
    validate({"name": "Pen", "price": "cheap"}, schema)
    # → SchemaMismatch: price: expected float, got str
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from types import MappingProxyType
from typing import Any, Iterable, Mapping

from .exceptions import SchemaMismatch

_STRING_TYPES = {"text", "keyword", "wildcard", "constant_keyword", "match_only_text"}
_FLOAT_TYPES = {"float", "double", "half_float", "scaled_float"}
_INT_TYPES = {"integer", "long", "short", "byte", "unsigned_long"}
_OBJECT_TYPES = {"object", "nested", "flattened"}


@dataclass(frozen=True)
class FieldSpec:
    """필드 타입 선언 1건 (mapping의 properties 항목)."""

    type: str
    analyzer: str | None = None
    fields: Mapping[str, Mapping[str, Any]] | None = None  # multi-field (예: raw keyword)

    def to_mapping(self) -> dict:
        body: dict = {"type": self.type}
        if self.analyzer:
            body["analyzer"] = self.analyzer
        if self.fields:
            body["fields"] = {name: dict(spec) for name, spec in self.fields.items()}
        return body

    @classmethod
    def from_mapping(cls, body: Mapping[str, Any]) -> FieldSpec:
        # properties만 있고 type이 없으면 object 필드
        return cls(
            type=body.get("type", "object"),
            analyzer=body.get("analyzer"),
            fields=body.get("fields"),
        )


@dataclass(frozen=True)
class IndexSchema:
    """필드명 → FieldSpec (+ 인덱스 settings)."""

    fields: Mapping[str, FieldSpec]
    settings: Mapping[str, Any] = field(default_factory=dict)
    dynamic: str | None = None  # "strict"이면 미선언 필드도 검증 실패

    def __post_init__(self):
        # 원본 dict가 바뀌어도 스키마는 그대로
        object.__setattr__(self, "fields", MappingProxyType(dict(self.fields)))
        object.__setattr__(self, "settings", MappingProxyType(dict(self.settings)))

    @classmethod
    def from_pairs(
        cls,
        pairs: Iterable[tuple[str, FieldSpec]],
        **kwargs,
    ) -> IndexSchema:
        """(필드명, FieldSpec) 목록 → IndexSchema. 필드명 중복이면 ValueError."""
        fields: dict[str, FieldSpec] = {}
        for name, spec in pairs:
            if name in fields:
                raise ValueError(f"duplicate field name in schema: {name!r}")
            fields[name] = spec
        return cls(fields, **kwargs)

    @classmethod
    def from_body(cls, body: Mapping[str, Any]) -> IndexSchema:
        """create-index 요청 body(JSON) → IndexSchema."""
        mappings = body.get("mappings", {})
        properties = mappings.get("properties", {})
        return cls(
            {name: FieldSpec.from_mapping(spec) for name, spec in properties.items()},
            settings=body.get("settings", {}),
            dynamic=mappings.get("dynamic"),
        )

    def to_body(self) -> dict:
        """indices.create 에 넘길 body: {"settings": ..., "mappings": ...}"""
        mappings: dict = {
            "properties": {name: spec.to_mapping() for name, spec in self.fields.items()},
        }
        if self.dynamic is not None:
            mappings["dynamic"] = self.dynamic
        body: dict = {"mappings": mappings}
        if self.settings:
            body["settings"] = dict(self.settings)
        return body


def _type_name(value: Any) -> str:
    return type(value).__name__


def _check_scalar(field_type: str, value: Any) -> bool:
    if field_type in _STRING_TYPES:
        return isinstance(value, str)
    if field_type in _FLOAT_TYPES:
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if field_type in _INT_TYPES:
        return isinstance(value, int) and not isinstance(value, bool)
    if field_type == "boolean":
        return isinstance(value, bool)
    if field_type == "date":
        return isinstance(value, (str, date, datetime)) or (
            isinstance(value, int) and not isinstance(value, bool)
        )
    if field_type in _OBJECT_TYPES:
        return isinstance(value, Mapping)
    return True  # geo_point, dense_vector 등은 엔진에 맡김


def _check_value(spec: FieldSpec, value: Any) -> str | None:
    """불일치 사유 문자열, 문제 없으면 None"""
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        for item in value:
            if item is not None and not _check_scalar(spec.type, item):
                return f"expected list of {spec.type}, got element {_type_name(item)}"
        return None
    if not _check_scalar(spec.type, value):
        return f"expected {spec.type}, got {_type_name(value)}"
    return None


def find_mismatches(document: Mapping[str, Any], schema: IndexSchema) -> dict[str, str]:
    """문서 ↔ 스키마 불일치 목록 {필드명: 사유}. 없으면 빈 dict."""
    problems: dict[str, str] = {}
    for name, value in document.items():
        spec = schema.fields.get(name)
        if spec is None:
            if schema.dynamic == "strict":
                problems[name] = "field not declared in schema"
            continue
        reason = _check_value(spec, value)
        if reason:
            problems[name] = reason
    return problems


def validate(
    document: Mapping[str, Any],
    schema: IndexSchema,
    position: int | None = None,
) -> None:
    """문서가 스키마 선언 타입을 따르는지 검사. 어긋나면 SchemaMismatch."""
    if not isinstance(document, Mapping):
        raise SchemaMismatch({"<document>": f"expected mapping, got {_type_name(document)}"}, position)
    problems = find_mismatches(document, schema)
    if problems:
        raise SchemaMismatch(problems, position)
