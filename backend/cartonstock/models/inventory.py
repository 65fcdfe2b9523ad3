from __future__ import annotations

from ..extensions import db
from cartonstock.time_utils import to_utc_z, to_iso_date


class StockEntry(db.Model):
    """
    Live carton count for one product at one location.

    The only authority for "available to sell". Rows are written exclusively
    through single-statement UPDATE/INSERT in services.stock_ledger; the
    check constraint is the last line against negative stock.
    """
    __tablename__ = "stock_entries"
    __table_args__ = (
        db.UniqueConstraint("product_id", "location_id", name="uq_stock_product_location"),
        db.CheckConstraint("cartons >= 0", name="ck_stock_cartons_nonnegative"),
        db.Index("ix_stock_location", "location_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False)

    cartons = db.Column(db.Integer, nullable=False, default=0)

    # Bumped by every ledger write
    version_id = db.Column(db.Integer, nullable=False, default=1)

    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product", backref=db.backref("stock_entries", lazy=True))
    location = db.relationship("Location", backref=db.backref("stock_entries", lazy=True))

    def __repr__(self) -> str:
        return f"<StockEntry product_id={self.product_id} location_id={self.location_id} cartons={self.cartons}>"

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "location_id": self.location_id,
            "cartons": self.cartons,
            "version_id": self.version_id,
            "updated_at": to_utc_z(self.updated_at),
        }


class DailySnapshot(db.Model):
    """
    One reconciliation row per (product, location, business day).

    Identity: closing = opening + added - sold, unless a manual edit
    overrode closing, in which case is_overridden is true.
    """
    __tablename__ = "daily_snapshots"
    __table_args__ = (
        db.UniqueConstraint("product_id", "location_id", "snapshot_date", name="uq_snapshot_product_location_date"),
        db.Index("ix_snapshot_location_date", "location_id", "snapshot_date"),
        db.CheckConstraint(
            "opening >= 0 AND added >= 0 AND sold >= 0 AND closing >= 0",
            name="ck_snapshot_nonnegative",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False)
    snapshot_date = db.Column(db.Date, nullable=False, index=True)

    opening = db.Column(db.Integer, nullable=False, default=0)
    added = db.Column(db.Integer, nullable=False, default=0)
    sold = db.Column(db.Integer, nullable=False, default=0)
    closing = db.Column(db.Integer, nullable=False, default=0)

    is_overridden = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product")
    location = db.relationship("Location")

    def __repr__(self) -> str:
        return (
            f"<DailySnapshot product_id={self.product_id} location_id={self.location_id} "
            f"date={self.snapshot_date} o={self.opening} a={self.added} s={self.sold} c={self.closing}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "location_id": self.location_id,
            "snapshot_date": to_iso_date(self.snapshot_date),
            "opening": self.opening,
            "added": self.added,
            "sold": self.sold,
            "closing": self.closing,
            "is_overridden": self.is_overridden,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockAdjustment(db.Model):
    """
    Append-only audit row for a manual stock correction.

    Never updated or deleted; the reason is mandatory.
    """
    __tablename__ = "stock_adjustments"
    __table_args__ = (
        db.Index("ix_adjustments_location_created", "location_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False)

    previous_cartons = db.Column(db.Integer, nullable=False)
    new_cartons = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.Text, nullable=False)

    adjusted_by = db.Column(db.String(128), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    product = db.relationship("Product")
    location = db.relationship("Location")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "location_id": self.location_id,
            "previous_cartons": self.previous_cartons,
            "new_cartons": self.new_cartons,
            "delta": self.new_cartons - self.previous_cartons,
            "reason": self.reason,
            "adjusted_by": self.adjusted_by,
            "created_at": to_utc_z(self.created_at),
        }
