from __future__ import annotations

from ..extensions import db
from cartonstock.time_utils import to_utc_z

ORDER_PENDING = "pending"
ORDER_APPROVED = "approved"
ORDER_REJECTED = "rejected"
ORDER_FULFILLED = "fulfilled"
ORDER_STATUSES = (ORDER_PENDING, ORDER_APPROVED, ORDER_REJECTED, ORDER_FULFILLED)


class Customer(db.Model):
    """
    External wholesale customer.

    user_id links the record to an identity from the upstream provider.
    Only approved customers may place orders.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.UniqueConstraint("user_id", name="uq_customers_user_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(32), nullable=True)
    user_id = db.Column(db.String(128), nullable=True)

    approved = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Customer id={self.id} name={self.name!r} approved={self.approved}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "user_id": self.user_id,
            "approved": self.approved,
            "created_at": to_utc_z(self.created_at),
        }


class Order(db.Model):
    """
    Wholesale order placed by a customer against the designated store.

    LIFECYCLE:
    1. pending: placed, stock untouched
    2. approved: accepted by admin/store staff
    3. fulfilled: stock decremented, sale created (terminal)
    4. rejected: from pending or approved (terminal)

    Lines and total are fixed at creation; only lifecycle fields change.
    version_id guards concurrent status changes.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("order_number", name="uq_orders_order_number"),
        db.CheckConstraint(
            "status IN ('pending', 'approved', 'rejected', 'fulfilled')",
            name="ck_orders_status",
        ),
        db.Index("ix_orders_customer_status", "customer_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # "ORD-000123", assigned once the id is known
    order_number = db.Column(db.String(64), nullable=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False, default=ORDER_PENDING, index=True)
    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    created_by = db.Column(db.String(128), nullable=False)

    approved_by = db.Column(db.String(128), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejected_by = db.Column(db.String(128), nullable=True)
    rejected_at = db.Column(db.DateTime(timezone=True), nullable=True)
    fulfilled_by = db.Column(db.String(128), nullable=True)
    fulfilled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", backref=db.backref("orders", lazy=True))
    lines = db.relationship(
        "OrderLine",
        backref="order",
        lazy=True,
        order_by="OrderLine.id",
        cascade="all, delete-orphan",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Order id={self.id} number={self.order_number!r} status={self.status}>"

    def to_dict(self, include_lines: bool = False) -> dict:
        data = {
            "id": self.id,
            "order_number": self.order_number,
            "customer_id": self.customer_id,
            "customer_name": self.customer.name if self.customer else None,
            "status": self.status,
            "total_amount_cents": self.total_amount_cents,
            "created_at": to_utc_z(self.created_at),
            "created_by": self.created_by,
            "approved_by": self.approved_by,
            "approved_at": to_utc_z(self.approved_at),
            "rejected_by": self.rejected_by,
            "rejected_at": to_utc_z(self.rejected_at),
            "fulfilled_by": self.fulfilled_by,
            "fulfilled_at": to_utc_z(self.fulfilled_at),
            "sale_id": self.sale.id if self.sale else None,
            "version_id": self.version_id,
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class OrderLine(db.Model):
    __tablename__ = "order_lines"
    __table_args__ = (
        db.CheckConstraint("cartons > 0", name="ck_order_lines_cartons_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    cartons = db.Column(db.Integer, nullable=False)
    price_per_carton_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "cartons": self.cartons,
            "price_per_carton_cents": self.price_per_carton_cents,
            "line_total_cents": self.line_total_cents,
        }
