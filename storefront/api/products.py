from fastapi import APIRouter, Depends, Query
from typing import List, Literal, Optional
from sqlalchemy.orm import Session, selectinload
from sqlalchemy import select, exists, func
from storefront.api.deps import get_db
from storefront.core.errors import NotFound
from storefront.db import models
from storefront.schemas import (
    ProductDetail, ProductSummary, VariantRead, FlavorRead, WeightRead,
    CombinationRead, SelectionRead, SelectionRequest,
)
from storefront.services.catalog import VariantCatalog
from storefront.services.resolver import Selection, VariantResolver, resolve

router = APIRouter()

def _load_product(db: Session, **where) -> models.Product:
    stmt = (
        select(models.Product)
        .options(
            selectinload(models.Product.variants).selectinload(models.ProductVariant.images),
            selectinload(models.Product.flavor_options).selectinload(models.ProductFlavorOption.flavor),
            selectinload(models.Product.weight_options).selectinload(models.ProductWeightOption.weight),
        )
        .where(models.Product.is_active.is_(True))
        .filter_by(**where)
    )
    product = db.execute(stmt).scalar_one_or_none()
    if product is None:
        raise NotFound("Product", next(iter(where.values())))
    return product

def _selection_read(sel: Selection) -> SelectionRead:
    return SelectionRead(
        flavor_id=sel.flavor_id,
        weight_id=sel.weight_id,
        variant=VariantRead.model_validate(sel.variant) if sel.variant is not None else None,
    )

def _min_price_cents(catalog: VariantCatalog) -> Optional[int]:
    prices = [v.effective_price_cents for v in catalog.variants if v.is_active]
    return min(prices) if prices else None

@router.get("/products", response_model=List[ProductSummary])
def list_products(
    db: Session = Depends(get_db),
    flavor_id: Optional[int] = Query(default=None, alias="flavorId"),
    weight_id: Optional[int] = Query(default=None, alias="weightId"),
    sort: Literal["createdAt", "price"] = "createdAt",
    order: Literal["asc", "desc"] = "desc",
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
):
    stmt = select(models.Product).where(models.Product.is_active.is_(True))
    if flavor_id is not None or weight_id is not None:
        # one query: the product must have an in-stock variant binding both axes
        V = models.ProductVariant
        conds = [V.product_id == models.Product.id, V.is_active.is_(True), V.quantity > 0]
        if flavor_id is not None: conds.append(V.flavor_id == flavor_id)
        if weight_id is not None: conds.append(V.weight_id == weight_id)
        stmt = stmt.where(exists().where(*conds))
    if sort == "price":
        V = models.ProductVariant
        min_price = (
            select(func.min(func.coalesce(V.sale_price_cents, V.price_cents)))
            .where(V.product_id == models.Product.id, V.is_active.is_(True))
            .correlate(models.Product)
            .scalar_subquery()
        )
        # products without an active variant have no price and always come last
        key = min_price.asc().nulls_last() if order == "asc" else min_price.desc().nulls_last()
    else:
        key = models.Product.created_at.asc() if order == "asc" else models.Product.created_at.desc()
    stmt = stmt.options(selectinload(models.Product.variants)).order_by(key, models.Product.id).offset(offset).limit(limit)
    out = []
    for p in db.execute(stmt).scalars().unique().all():
        catalog = VariantCatalog(p.variants)
        out.append(ProductSummary(
            id=p.id, name=p.name, slug=p.slug, created_at=p.created_at,
            min_price_cents=_min_price_cents(catalog), is_purchasable=catalog.is_purchasable,
        ))
    return out

@router.get("/products/{slug}", response_model=ProductDetail)
def get_product(slug: str, db: Session = Depends(get_db)):
    product = _load_product(db, slug=slug)
    catalog = VariantCatalog.from_product(product)
    resolver = VariantResolver(catalog)
    flavors = sorted(product.flavor_options, key=lambda o: o.position)
    weight_by_id = {o.weight_id: o.weight for o in product.weight_options}
    return ProductDetail(
        id=product.id,
        name=product.name,
        slug=product.slug,
        description=product.description or "",
        is_purchasable=catalog.is_purchasable,
        variants=[VariantRead.model_validate(v) for v in product.variants if v.is_active],
        flavor_options=[FlavorRead.model_validate(o.flavor) for o in flavors],
        weight_options=[WeightRead.model_validate(weight_by_id[w]) for w in catalog.weight_order if w in weight_by_id],
        available_combinations=[
            CombinationRead(flavor_id=c.flavor_id, weight_id=c.weight_id, variant_id=c.variant.id)
            for c in catalog.combinations()
        ],
        default_selection=_selection_read(resolver.default_selection()),
    )

@router.get("/products/{product_id}/variants", response_model=List[VariantRead])
def list_variants(product_id: int, db: Session = Depends(get_db)):
    product = db.get(models.Product, product_id)
    if not product or not product.is_active:
        raise NotFound("Product", product_id)
    return product.variants

@router.post("/products/{product_id}/selection", response_model=SelectionRead)
def next_selection(product_id: int, payload: SelectionRequest, db: Session = Depends(get_db)):
    product = _load_product(db, id=product_id)
    catalog = VariantCatalog.from_product(product)
    sel = resolve(Selection(payload.flavor_id, payload.weight_id), catalog, changed=payload.changed)
    return _selection_read(sel)

@router.get("/product-variant", response_model=VariantRead)
def get_product_variant(
    product_id: int = Query(alias="productId"),
    flavor_id: Optional[int] = Query(default=None, alias="flavorId"),
    weight_id: Optional[int] = Query(default=None, alias="weightId"),
    db: Session = Depends(get_db),
):
    product = _load_product(db, id=product_id)
    result = VariantResolver(VariantCatalog.from_product(product)).resolve_variant(flavor_id, weight_id)
    if not result.ok:
        raise result.error
    return result.variant
