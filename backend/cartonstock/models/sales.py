from __future__ import annotations

from ..extensions import db
from cartonstock.time_utils import to_utc_z, to_iso_date


class Sale(db.Model):
    """
    A completed sale at one location: a walk-in sale, or the sale created
    when a wholesale order is fulfilled (order_id set).

    Immutable once created. total_amount_cents always equals the sum of its
    line totals, and line prices are the catalog prices at the time of sale.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.UniqueConstraint("location_id", "receipt_number", name="uq_sales_location_receipt"),
        db.Index("ix_sales_location_business_date", "location_id", "business_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)

    # Human-readable receipt number (e.g., "S-0001" or "ORD-000012")
    receipt_number = db.Column(db.String(64), nullable=False)

    customer_name = db.Column(db.String(255), nullable=False)
    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    # Business-timezone calendar day the sale counts toward
    business_date = db.Column(db.Date, nullable=False, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    created_by = db.Column(db.String(128), nullable=False)

    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, unique=True)

    location = db.relationship("Location", backref=db.backref("sales", lazy=True))
    lines = db.relationship(
        "SaleLine",
        backref="sale",
        lazy=True,
        order_by="SaleLine.id",
        cascade="all, delete-orphan",
    )
    order = db.relationship("Order", backref=db.backref("sale", uselist=False))

    def __repr__(self) -> str:
        return f"<Sale id={self.id} receipt={self.receipt_number!r} total={self.total_amount_cents}>"

    def to_dict(self, include_lines: bool = False) -> dict:
        data = {
            "id": self.id,
            "location_id": self.location_id,
            "receipt_number": self.receipt_number,
            "customer_name": self.customer_name,
            "total_amount_cents": self.total_amount_cents,
            "business_date": to_iso_date(self.business_date),
            "created_at": to_utc_z(self.created_at),
            "created_by": self.created_by,
            "order_id": self.order_id,
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class SaleLine(db.Model):
    __tablename__ = "sale_lines"
    __table_args__ = (
        db.CheckConstraint("cartons > 0", name="ck_sale_lines_cartons_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    cartons = db.Column(db.Integer, nullable=False)

    # Price frozen at time of sale
    price_per_carton_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "cartons": self.cartons,
            "price_per_carton_cents": self.price_per_carton_cents,
            "line_total_cents": self.line_total_cents,
        }
