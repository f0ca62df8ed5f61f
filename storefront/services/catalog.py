"""Read model of a product's purchasable (flavor x weight) combinations.

A ``VariantCatalog`` is built fresh from a product every time it is read; it
holds no state beyond the variants it was given and never touches the
database.
"""
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from storefront.core.errors import ValidationError


@dataclass(frozen=True)
class AvailableCombination:
    flavor_id: Optional[int]
    weight_id: Optional[int]
    variant: Any


def _first_seen(ids: Iterable[Optional[int]]) -> tuple:
    seen = []
    for i in ids:
        if i is not None and i not in seen:
            seen.append(i)
    return tuple(seen)


class VariantCatalog:
    """Active, in-stock variants of one product plus its declared axis order.

    ``flavor_order`` / ``weight_order`` are the product's declared option ids in
    display order. When a product declares no options for an axis, the order
    falls back to first appearance among its variants.
    """

    def __init__(self, variants: Iterable[Any], flavor_order: Iterable[int] = (),
                 weight_order: Iterable[int] = ()):
        self.variants = list(variants)
        self.flavor_order = tuple(flavor_order) or _first_seen(v.flavor_id for v in self.variants)
        self.weight_order = tuple(weight_order) or _first_seen(v.weight_id for v in self.variants)
        self._combinations = tuple(
            AvailableCombination(v.flavor_id, v.weight_id, v)
            for v in self.variants
            if v.is_active and (v.quantity or 0) > 0
        )

    @classmethod
    def from_product(cls, product) -> "VariantCatalog":
        flavors = [o.flavor_id for o in sorted(product.flavor_options, key=lambda o: o.position)]
        weights = [
            o.weight_id
            for o in sorted(
                product.weight_options,
                key=lambda o: (o.position, o.weight.value if o.weight is not None else 0),
            )
        ]
        return cls(product.variants, flavors, weights)

    @property
    def has_flavor_axis(self) -> bool:
        return bool(self.flavor_order)

    @property
    def has_weight_axis(self) -> bool:
        return bool(self.weight_order)

    @property
    def is_purchasable(self) -> bool:
        return bool(self._combinations)

    def available_variants(self) -> list:
        return [c.variant for c in self._combinations]

    def combinations(self) -> tuple:
        return self._combinations

    def flavor_ids(self) -> frozenset:
        return frozenset(c.flavor_id for c in self._combinations if c.flavor_id is not None)

    def weight_ids(self) -> frozenset:
        return frozenset(c.weight_id for c in self._combinations if c.weight_id is not None)

    def variant_by_id(self, variant_id: int):
        # any variant, including inactive or sold out ones referenced by old orders
        for v in self.variants:
            if v.id == variant_id:
                return v
        return None

    def validate_axes(self) -> None:
        """Every available variant must bind one declared flavor and one declared weight."""
        if not (self.has_flavor_axis and self.has_weight_axis):
            return
        flavors, weights = set(self.flavor_order), set(self.weight_order)
        for c in self._combinations:
            if c.flavor_id not in flavors or c.weight_id not in weights:
                raise ValidationError(
                    f"Variant {c.variant.id} must bind one declared flavor and one declared weight"
                )
