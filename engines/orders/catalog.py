"""
Bazaar Orders Engine — Catalog Boundary
==========================================
Product catalog CRUD lives outside the order core. The core only
reads prices, seller ownership and return policy flags through this
protocol. InMemoryCatalog backs tests and local wiring.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Dict, Optional, Protocol


@dataclass(frozen=True)
class ProductInfo:
    product_id: str
    seller_id: Optional[str]
    price: int
    category_id: Optional[str] = None
    title: str = ""
    is_active: bool = True
    is_returnable: bool = True


@dataclass(frozen=True)
class VariantInfo:
    variant_id: str
    product_id: str
    price: Optional[int] = None
    is_active: bool = True


@dataclass(frozen=True)
class CategoryInfo:
    category_id: str
    is_refundable: bool = True
    is_replaceable: bool = True


class Catalog(Protocol):

    def get_product(self, product_id: str) -> Optional[ProductInfo]:
        ...  # pragma: no cover

    def get_variant(self, variant_id: str) -> Optional[VariantInfo]:
        ...  # pragma: no cover

    def get_category(self, category_id: str) -> Optional[CategoryInfo]:
        ...  # pragma: no cover


class InMemoryCatalog:

    def __init__(self) -> None:
        self._products: Dict[str, ProductInfo] = {}
        self._variants: Dict[str, VariantInfo] = {}
        self._categories: Dict[str, CategoryInfo] = {}
        self._lock = threading.Lock()

    def add_product(self, product: ProductInfo) -> ProductInfo:
        with self._lock:
            self._products[product.product_id] = product
        return product

    def add_variant(self, variant: VariantInfo) -> VariantInfo:
        with self._lock:
            self._variants[variant.variant_id] = variant
        return variant

    def add_category(self, category: CategoryInfo) -> CategoryInfo:
        with self._lock:
            self._categories[category.category_id] = category
        return category

    def get_product(self, product_id: str) -> Optional[ProductInfo]:
        with self._lock:
            return self._products.get(product_id)

    def get_variant(self, variant_id: str) -> Optional[VariantInfo]:
        with self._lock:
            return self._variants.get(variant_id)

    def get_category(self, category_id: str) -> Optional[CategoryInfo]:
        with self._lock:
            return self._categories.get(category_id)
