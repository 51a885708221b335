from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional, Union


@dataclass(frozen=True)
class Flat:
    price: float


@dataclass(frozen=True)
class Variants:
    base: float
    prices: Mapping[str, float] = field(default_factory=dict)


Pricing = Union[Flat, Variants]


def pricing_for(product: Mapping[str, Any]) -> Pricing:
    base = float(product.get("price", 0))
    variants = product.get("variants")
    if variants:
        return Variants(base=base, prices={k: float(v) for k, v in variants.items()})
    return Flat(price=base)


def resolve_unit_price(pricing: Pricing, label: Optional[str] = None) -> float:
    if isinstance(pricing, Variants):
        if label is not None and label in pricing.prices:
            return pricing.prices[label]
        return pricing.base
    return pricing.price


def line_subtotal(price: float, quantity: int) -> float:
    return round(price * quantity, 2)


def order_total(items: Iterable[Mapping[str, Any]]) -> float:
    return round(sum(float(i.get("subtotal", 0)) for i in items), 2)
