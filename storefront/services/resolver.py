"""Variant selection over a ``VariantCatalog``.

Everything here is a pure function of the catalog and the incoming selection:
the storefront calls ``resolve`` (or ``select_flavor`` / ``select_weight``) on
every input change and renders whatever comes back.
"""
from dataclasses import dataclass
from typing import Any, Optional

from storefront.core.errors import NotFound
from storefront.services.catalog import VariantCatalog


@dataclass(frozen=True)
class Selection:
    flavor_id: Optional[int] = None
    weight_id: Optional[int] = None
    variant: Any = None

    @property
    def variant_id(self) -> Optional[int]:
        return self.variant.id if self.variant is not None else None


@dataclass(frozen=True)
class ResolveResult:
    variant: Any = None
    error: Optional[NotFound] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class VariantResolver:
    def __init__(self, catalog: VariantCatalog):
        self.catalog = catalog

    def available_weights(self, flavor_id: Optional[int]) -> frozenset:
        return frozenset(
            c.weight_id for c in self.catalog.combinations()
            if c.flavor_id == flavor_id and c.weight_id is not None
        )

    def available_flavors(self, weight_id: Optional[int]) -> frozenset:
        return frozenset(
            c.flavor_id for c in self.catalog.combinations()
            if c.weight_id == weight_id and c.flavor_id is not None
        )

    def resolve_variant(self, flavor_id: Optional[int] = None,
                        weight_id: Optional[int] = None) -> ResolveResult:
        # None means the product does not expose that axis
        for c in self.catalog.combinations():
            if c.flavor_id == flavor_id and c.weight_id == weight_id:
                return ResolveResult(variant=c.variant)
        return ResolveResult(error=NotFound("Product variant", f"flavor={flavor_id}, weight={weight_id}"))

    def select_flavor(self, flavor_id: int, current_weight_id: Optional[int] = None) -> Selection:
        if not self.catalog.has_weight_axis:
            return Selection(flavor_id, None, self.resolve_variant(flavor_id, None).variant)
        weight_id = _keep_or_first(current_weight_id, self.available_weights(flavor_id),
                                   self.catalog.weight_order)
        if weight_id is None:
            return Selection(flavor_id, None, None)
        return Selection(flavor_id, weight_id, self.resolve_variant(flavor_id, weight_id).variant)

    def select_weight(self, weight_id: int, current_flavor_id: Optional[int] = None) -> Selection:
        if not self.catalog.has_flavor_axis:
            return Selection(None, weight_id, self.resolve_variant(None, weight_id).variant)
        flavor_id = _keep_or_first(current_flavor_id, self.available_flavors(weight_id),
                                   self.catalog.flavor_order)
        if flavor_id is None:
            return Selection(None, weight_id, None)
        return Selection(flavor_id, weight_id, self.resolve_variant(flavor_id, weight_id).variant)

    def default_selection(self) -> Selection:
        """Initial selection shown when a product page loads."""
        catalog = self.catalog
        if catalog.has_flavor_axis:
            for flavor_id in catalog.flavor_order:
                if flavor_id in catalog.flavor_ids():
                    return self.select_flavor(flavor_id)
            return Selection()
        if catalog.has_weight_axis:
            for weight_id in catalog.weight_order:
                if weight_id in catalog.weight_ids():
                    return self.select_weight(weight_id)
            return Selection()
        result = self.resolve_variant(None, None)
        return Selection(variant=result.variant)


def _keep_or_first(current, compatible: frozenset, declared_order: tuple):
    if current is not None and current in compatible:
        return current
    for option in declared_order:
        if option in compatible:
            return option
    return None


def resolve(selection: Selection, catalog: VariantCatalog, changed: Optional[str] = None) -> Selection:
    """Compute the next legal selection from an arbitrary incoming one.

    ``changed`` names the axis the user just touched ("flavor" or "weight");
    the other axis is kept when still compatible, else moved to the first
    compatible declared option.
    """
    resolver = VariantResolver(catalog)
    if changed == "weight" and selection.weight_id is not None:
        return resolver.select_weight(selection.weight_id, selection.flavor_id)
    if selection.flavor_id is not None:
        return resolver.select_flavor(selection.flavor_id, selection.weight_id)
    if selection.weight_id is not None:
        return resolver.select_weight(selection.weight_id, None)
    return resolver.default_selection()
