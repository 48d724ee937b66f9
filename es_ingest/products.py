"""products 샘플 도메인 — Product 문서 타입 + 매핑 + 샘플 데이터"""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from typing import Any, Mapping

from .schema import FieldSpec, IndexSchema

PRODUCT_INDEX = "products"

PRODUCT_SCHEMA = IndexSchema.from_pairs([
    ("name", FieldSpec("text", analyzer="standard")),
    ("description", FieldSpec("text", analyzer="standard")),
    ("category", FieldSpec("keyword")),
    ("brand", FieldSpec("keyword")),
    ("price", FieldSpec("float")),
    ("rating", FieldSpec("float")),
])

# multi_match 기본 대상 필드
PRODUCT_SEARCH_FIELDS = ("name", "description")


@dataclass(frozen=True)
class Product:
    name: str
    price: float
    description: str | None = None
    category: str | None = None
    brand: str | None = None
    rating: float | None = None     # None = 평점 없음 (0점과 구분)

    def to_source(self) -> dict:
        """설정되지 않은(None) 선택 필드는 _source에서 뺀다"""
        return {k: v for k, v in asdict(self).items() if v is not None}

    @classmethod
    def from_source(cls, source: Mapping[str, Any]) -> Product:
        """_source → Product. 필수 필드 누락/타입 불일치는 ValueError.

        엔진이 붙인 필드(_id 등)나 모르는 필드는 무시한다.
        """
        if not isinstance(source, Mapping):
            raise ValueError(f"source must be an object, got {type(source).__name__}")

        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in source.items() if k in known and v is not None}

        for required in ("name", "price"):
            if required not in values:
                raise ValueError(f"missing field: {required}")

        for key in ("name", "description", "category", "brand"):
            if key in values and not isinstance(values[key], str):
                raise ValueError(f"{key} must be a string, got {type(values[key]).__name__}")
        for key in ("price", "rating"):
            if key in values:
                value = values[key]
                if isinstance(value, bool) or not isinstance(value, (int, float)):
                    raise ValueError(f"{key} must be a number, got {type(value).__name__}")
                values[key] = float(value)

        return cls(**values)


SAMPLE_PRODUCTS: list[Product] = [
    Product(
        name="Smartphone",
        description="A smartphone with a high-resolution screen.",
        category="Electronics",
        brand="TechBrand",
        price=699.99,
        rating=4.5,
    ),
    Product(
        name="Laptop",
        description="A powerful laptop for professionals.",
        category="Computers",
        brand="CompTech",
        price=1299.99,
        rating=4.7,
    ),
    Product(
        name="Headphones",
        description="Noise-cancelling over-ear headphones.",
        category="Audio",
        brand="SoundMax",
        price=199.99,
        rating=4.3,
    ),
    Product(
        name="Smartwatch",
        description="A stylish smartwatch with fitness tracking.",
        category="Wearables",
        brand="WristTech",
        price=299.99,
        rating=4.2,
    ),
    Product(
        name="Tablet",
        description="A lightweight tablet with a 10-inch display.",
        category="Tablets",
        brand="TabBrand",
        price=499.99,
        rating=4.4,
    ),
    Product(
        name="Gaming Console",
        description="A next-gen gaming console with 4K resolution.",
        category="Gaming",
        brand="GameBox",
        price=499.99,
        rating=4.8,
    ),
    Product(
        name="Wireless Speaker",
        description="A portable wireless speaker with deep bass.",
        category="Audio",
        brand="SoundWave",
        price=149.99,
        rating=4.6,
    ),
]
