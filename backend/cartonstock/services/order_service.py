# Overview: Wholesale order lifecycle (pending -> approved -> fulfilled, or rejected) and fulfillment.

"""
Order state machine.

    pending  --approve-->  approved  --fulfill-->  fulfilled
    pending  --reject--->  rejected
    approved --reject--->  rejected

fulfilled and rejected are terminal. Stock is untouched until fulfillment,
which draws from the designated store only. Status changes lock the order
row and the Order.version_id column rejects lost updates.
"""
from __future__ import annotations

from ..errors import InsufficientStock, InvalidTransition, NotFound, PermissionDenied, ValidationError
from ..extensions import db
from ..models import Order, OrderLine, Sale, SaleLine
from ..models.orders import (
    ORDER_APPROVED,
    ORDER_FULFILLED,
    ORDER_PENDING,
    ORDER_REJECTED,
    ORDER_STATUSES,
)
from ..permissions import ActorContext, require
from ..time_utils import business_today, utcnow
from ..validation import coerce_int
from . import notification_service, snapshot_service, stock_ledger
from .concurrency import lock_for_update, run_with_retry
from .customer_service import get_customer_for_user, load_customer
from .document_service import order_number_for
from .location_service import get_store_location
from .sales_service import price_lines, receipt_projection

ALLOWED_TRANSITIONS = {
    ORDER_PENDING: {ORDER_APPROVED, ORDER_REJECTED},
    ORDER_APPROVED: {ORDER_FULFILLED, ORDER_REJECTED},
    ORDER_FULFILLED: set(),
    ORDER_REJECTED: set(),
}


def _check_transition(order: Order, target: str) -> None:
    if target not in ALLOWED_TRANSITIONS.get(order.status, set()):
        raise InvalidTransition(
            f"Cannot move order {order.order_number or order.id} from {order.status} to {target}",
            details={"order_id": order.id, "status": order.status, "target": target},
        )


def _locked_order(order_id: int) -> Order:
    order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
    if order is None:
        raise NotFound(f"Order {order_id} not found", details={"order_id": order_id})
    return order


def _resolve_customer(actor: ActorContext, customer_id):
    if actor.is_customer:
        customer = get_customer_for_user(actor.user_id)
        if customer is None:
            raise NotFound("No customer account for this user", details={"user_id": actor.user_id})
        if customer_id is not None and coerce_int(customer_id, "customer_id") != customer.id:
            raise PermissionDenied("Customers may only order for themselves")
        return customer
    if customer_id is None:
        raise ValidationError("customer_id is required")
    return load_customer(coerce_int(customer_id, "customer_id"))


def create_order(actor: ActorContext, items, customer_id: int | None = None) -> Order:
    """
    Place a pending order priced from the catalog.

    Prices and the total are frozen on the order; stock is not checked or
    reserved here.
    """
    require(actor, "CREATE_ORDER")
    customer = _resolve_customer(actor, customer_id)
    if not customer.approved:
        raise PermissionDenied(
            "Customer account is awaiting approval",
            details={"customer_id": customer.id},
        )

    lines = price_lines(items)
    total = sum(line["line_total_cents"] for line in lines)
    customer_pk = customer.id

    def _op():
        order = Order(
            customer_id=customer_pk,
            status=ORDER_PENDING,
            total_amount_cents=total,
            created_by=actor.user_id,
        )
        for line in lines:
            order.lines.append(OrderLine(
                product_id=line["product_id"],
                cartons=line["cartons"],
                price_per_carton_cents=line["price_per_carton_cents"],
                line_total_cents=line["line_total_cents"],
            ))
        db.session.add(order)
        db.session.flush()
        order.order_number = order_number_for(order.id)
        db.session.commit()
        return order

    order = run_with_retry(_op)
    notification_service.notify_order_created(order)
    return order


def approve_order(actor: ActorContext, order_id: int) -> Order:
    require(actor, "APPROVE_ORDER")

    def _op():
        order = _locked_order(order_id)
        _check_transition(order, ORDER_APPROVED)
        order.status = ORDER_APPROVED
        order.approved_by = actor.user_id
        order.approved_at = utcnow()
        db.session.commit()
        return order

    order = run_with_retry(_op)
    notification_service.notify_order_status(order)
    return order


def reject_order(actor: ActorContext, order_id: int) -> Order:
    require(actor, "REJECT_ORDER")

    def _op():
        order = _locked_order(order_id)
        _check_transition(order, ORDER_REJECTED)
        order.status = ORDER_REJECTED
        order.rejected_by = actor.user_id
        order.rejected_at = utcnow()
        db.session.commit()
        return order

    order = run_with_retry(_op)
    notification_service.notify_order_status(order)
    return order


def fulfill_order(actor: ActorContext, order_id: int) -> Order:
    """
    Ship an approved order from the designated store.

    Every line is checked against store stock first; any shortfall aborts
    with InsufficientStock and the order stays approved. Otherwise stock,
    today's store snapshot, the sale record and the status change commit
    together.
    """
    require(actor, "FULFILL_ORDER")
    store = get_store_location()
    store_id = store.id

    def _op():
        order = _locked_order(order_id)
        _check_transition(order, ORDER_FULFILLED)

        for line in order.lines:
            available = stock_ledger.get_stock(line.product_id, store_id)
            if available < line.cartons:
                raise InsufficientStock(
                    line.product_id,
                    available,
                    requested=line.cartons,
                    product_name=line.product.name if line.product else None,
                )

        day = business_today()
        sale = Sale(
            location_id=store_id,
            receipt_number=order.order_number,
            customer_name=order.customer.name,
            total_amount_cents=order.total_amount_cents,
            business_date=day,
            created_by=actor.user_id,
            order_id=order.id,
        )
        for line in order.lines:
            remaining = stock_ledger.decrement_available(line.product_id, store_id, line.cartons)
            snapshot_service.apply_sale(
                line.product_id,
                store_id,
                line.cartons,
                day,
                live_before=remaining + line.cartons,
            )
            sale.lines.append(SaleLine(
                product_id=line.product_id,
                cartons=line.cartons,
                price_per_carton_cents=line.price_per_carton_cents,
                line_total_cents=line.line_total_cents,
            ))
        db.session.add(sale)

        order.status = ORDER_FULFILLED
        order.fulfilled_by = actor.user_id
        order.fulfilled_at = utcnow()
        db.session.commit()
        return order

    order = run_with_retry(_op)
    notification_service.notify_order_status(order)
    return order


def get_order(actor: ActorContext, order_id: int) -> Order:
    """Customers only ever see their own orders; others read as missing."""
    require(actor, "VIEW_ORDERS")
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFound(f"Order {order_id} not found", details={"order_id": order_id})
    if actor.is_customer:
        customer = get_customer_for_user(actor.user_id)
        if customer is None or order.customer_id != customer.id:
            raise NotFound(f"Order {order_id} not found", details={"order_id": order_id})
    return order


def list_orders(actor: ActorContext, status: str | None = None) -> list[Order]:
    require(actor, "VIEW_ORDERS")
    if status is not None and status not in ORDER_STATUSES:
        raise ValidationError(
            f"status must be one of {', '.join(ORDER_STATUSES)}",
            details={"status": status},
        )

    q = db.session.query(Order)
    if actor.is_customer:
        customer = get_customer_for_user(actor.user_id)
        if customer is None:
            return []
        q = q.filter(Order.customer_id == customer.id)
    if status is not None:
        q = q.filter(Order.status == status)
    return q.order_by(Order.created_at.desc(), Order.id.desc()).all()


def order_receipt(actor: ActorContext, order_id: int) -> dict:
    order = get_order(actor, order_id)
    return receipt_projection(
        type="order",
        receipt_number=order.order_number,
        created_at=order.created_at,
        customer_name=order.customer.name,
        lines=order.lines,
        total_cents=order.total_amount_cents,
    )
