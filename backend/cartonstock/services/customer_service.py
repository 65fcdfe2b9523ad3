# Overview: Wholesale customer accounts and their approval flag.

from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..errors import NotFound, ValidationError
from ..extensions import db
from ..models import Customer
from ..permissions import ActorContext, require
from ..validation import require_text
from .concurrency import lock_for_update, run_with_retry


def load_customer(customer_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        raise NotFound(f"Customer {customer_id} not found", details={"customer_id": customer_id})
    return customer


def create_customer(
    actor: ActorContext,
    name: str,
    phone: str | None = None,
    user_id: str | None = None,
    approved: bool = False,
) -> Customer:
    """
    Create a customer record.

    Customers may only register themselves (linked to their own user id,
    unapproved). Admins may create any record, pre-approved or not.
    """
    if actor.is_customer:
        require(actor, "REGISTER_CUSTOMER")
        user_id = actor.user_id
        approved = False
    else:
        require(actor, "MANAGE_CUSTOMERS")

    name = require_text(name, "name")
    phone = phone.strip() if isinstance(phone, str) and phone.strip() else None
    if phone is not None and len(phone) > 32:
        raise ValidationError("phone exceeds max length 32")

    def _op():
        customer = Customer(name=name, phone=phone, user_id=user_id, approved=bool(approved))
        db.session.add(customer)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise ValidationError(
                "A customer record already exists for this user",
                details={"user_id": user_id},
            )
        return customer

    return run_with_retry(_op)


def approve_customer(actor: ActorContext, customer_id: int, approved: bool = True) -> Customer:
    require(actor, "MANAGE_CUSTOMERS")

    def _op():
        customer = lock_for_update(db.session.query(Customer).filter_by(id=customer_id)).first()
        if customer is None:
            raise NotFound(f"Customer {customer_id} not found", details={"customer_id": customer_id})
        customer.approved = bool(approved)
        db.session.commit()
        return customer

    return run_with_retry(_op)


def get_customer(actor: ActorContext, customer_id: int) -> Customer:
    if actor.is_customer:
        customer = get_customer_for_user(actor.user_id)
        if customer is None or customer.id != customer_id:
            raise NotFound(f"Customer {customer_id} not found", details={"customer_id": customer_id})
        return customer
    require(actor, "VIEW_CUSTOMERS")
    return load_customer(customer_id)


def list_customers(actor: ActorContext, approved: bool | None = None) -> list[Customer]:
    require(actor, "VIEW_CUSTOMERS")
    q = db.session.query(Customer)
    if approved is not None:
        q = q.filter(Customer.approved.is_(approved))
    return q.order_by(Customer.name.asc(), Customer.id.asc()).all()


def get_customer_for_user(user_id: str | None) -> Customer | None:
    """Customer record linked to an identity, if any."""
    if not user_id:
        return None
    return db.session.query(Customer).filter_by(user_id=str(user_id)).first()
