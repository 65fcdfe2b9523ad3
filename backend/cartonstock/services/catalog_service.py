# backend/cartonstock/services/catalog_service.py
"""
Catalog of products sold by the carton.

Prices live here and are read at the moment of each sale or order; lines
copy the price so catalog edits never rewrite history.
"""
from __future__ import annotations

from ..errors import NotFound, ValidationError
from ..extensions import db
from ..models import (
    Product,
    StockEntry,
    DailySnapshot,
    SaleLine,
    OrderLine,
    StockAdjustment,
)
from ..permissions import ActorContext, require
from ..time_utils import utcnow
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product,
)
from .concurrency import lock_for_update, run_with_retry

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={"name", "price_per_carton_cents", "is_active"},
    required_on_create={"name", "price_per_carton_cents"},
)

# Tables whose rows keep a product alive (soft delete instead of hard delete)
PRODUCT_REFERENCES = (StockEntry, DailySnapshot, SaleLine, OrderLine, StockAdjustment)


def load_product(product_id: int, *, active_only: bool = False) -> Product:
    """Fetch a product or raise NotFound. Internal lookup, no authorization."""
    product = db.session.get(Product, product_id)
    if product is None or product.deleted_at is not None:
        raise NotFound(f"Product {product_id} not found", details={"product_id": product_id})
    if active_only and not product.is_active:
        raise NotFound(f"Product {product_id} is not available", details={"product_id": product_id})
    return product


def active_products() -> list[Product]:
    return (
        db.session.query(Product)
        .filter(Product.is_active.is_(True), Product.deleted_at.is_(None))
        .order_by(Product.name.asc(), Product.id.asc())
        .all()
    )


def create_product(actor: ActorContext, payload: dict) -> Product:
    require(actor, "MANAGE_CATALOG")
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
    enforce_rules_product(patch)

    def _op():
        product = Product(**patch)
        db.session.add(product)
        db.session.commit()
        return product

    return run_with_retry(_op)


def update_product(actor: ActorContext, product_id: int, payload: dict) -> Product:
    """Patch name, price and/or active flag."""
    require(actor, "MANAGE_CATALOG")
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
    enforce_rules_product(patch)
    if not patch:
        raise ValidationError("Nothing to update")

    def _op():
        product = lock_for_update(
            db.session.query(Product).filter(Product.id == product_id, Product.deleted_at.is_(None))
        ).first()
        if product is None:
            raise NotFound(f"Product {product_id} not found", details={"product_id": product_id})
        for key, value in patch.items():
            setattr(product, key, value)
        db.session.commit()
        return product

    return run_with_retry(_op)


def get_product(actor: ActorContext, product_id: int) -> Product:
    require(actor, "VIEW_CATALOG")
    product = load_product(product_id)
    if not product.is_active and actor.is_customer:
        raise NotFound(f"Product {product_id} not found", details={"product_id": product_id})
    return product


def list_products(actor: ActorContext, include_inactive: bool = False) -> list[Product]:
    """Active products by name; inactive ones only for catalog managers."""
    require(actor, "VIEW_CATALOG")
    if not include_inactive or actor.is_customer:
        return active_products()
    return (
        db.session.query(Product)
        .filter(Product.deleted_at.is_(None))
        .order_by(Product.name.asc(), Product.id.asc())
        .all()
    )


def _is_referenced(product_id: int) -> bool:
    for model in PRODUCT_REFERENCES:
        hit = db.session.query(model.id).filter(model.product_id == product_id).first()
        if hit is not None:
            return True
    return False


def delete_product(actor: ActorContext, product_id: int) -> dict:
    """
    Remove a product from the catalog.

    Never-referenced products are deleted outright. Anything with stock,
    snapshot, sale, order or adjustment history is soft-deleted so that
    history keeps resolving names and prices.
    """
    require(actor, "MANAGE_CATALOG")

    def _op():
        product = lock_for_update(
            db.session.query(Product).filter(Product.id == product_id, Product.deleted_at.is_(None))
        ).first()
        if product is None:
            raise NotFound(f"Product {product_id} not found", details={"product_id": product_id})

        if _is_referenced(product_id):
            product.is_active = False
            product.deleted_at = utcnow()
            mode = "soft"
        else:
            db.session.delete(product)
            mode = "hard"
        db.session.commit()
        return {"product_id": product_id, "deleted": mode}

    return run_with_retry(_op)
