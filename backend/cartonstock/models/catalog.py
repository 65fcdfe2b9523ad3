from __future__ import annotations

from ..extensions import db
from cartonstock.time_utils import to_utc_z

LOCATION_TYPE_STORE = "store"
LOCATION_TYPE_SHOP = "shop"
LOCATION_TYPES = {LOCATION_TYPE_STORE, LOCATION_TYPE_SHOP}


class Location(db.Model):
    """
    A physical place that holds cartons: the central store or a retail shop.

    The designated store (STORE_LOCATION_ID) is the only location wholesale
    orders are fulfilled from.
    """
    __tablename__ = "locations"
    __table_args__ = (
        db.UniqueConstraint("name", name="uq_locations_name"),
        db.CheckConstraint("type IN ('store', 'shop')", name="ck_locations_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    type = db.Column(db.String(16), nullable=False, default=LOCATION_TYPE_SHOP, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Location id={self.id} name={self.name!r} type={self.type}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "created_at": to_utc_z(self.created_at),
        }


class Product(db.Model):
    """
    Catalog entry, sold by the carton.

    Price is authoritative here at the moment of sale; sale and order lines
    copy it so later price changes never rewrite history.

    Soft-deleted products keep their row (deleted_at set, is_active false)
    because sales, snapshots or adjustments still reference them.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_active_name", "is_active", "name"),
        db.CheckConstraint("price_per_carton_cents >= 0", name="ck_products_price_nonnegative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)

    # Authoritative storage in minor units (kobo)
    price_per_carton_cents = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} price={self.price_per_carton_cents}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "price_per_carton_cents": self.price_per_carton_cents,
            "is_active": self.is_active,
            "deleted_at": to_utc_z(self.deleted_at),
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
