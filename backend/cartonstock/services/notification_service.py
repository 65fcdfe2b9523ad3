# Overview: Fire-and-forget notifications for order lifecycle events.

from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError

from ..errors import NotFound
from ..extensions import db
from ..models import Notification, Order
from ..permissions import ActorContext, CUSTOMER_ROLE_NAME, ROLE_ADMIN, ROLE_STORE_STAFF

logger = logging.getLogger(__name__)

STAFF_TARGETS = [ROLE_ADMIN, ROLE_STORE_STAFF]
CUSTOMER_TARGETS = [CUSTOMER_ROLE_NAME]

# How many recent notifications a feed shows
FEED_LIMIT = 20


def notify(*, type: str, title: str, message: str, target_roles: list[str],
           reference_id: str | None = None, target_user_id: str | None = None) -> Notification | None:
    """
    Write a notification in its own transaction.

    Must be called after the business transaction committed. Failures are
    logged and swallowed: a lost notification never undoes an order.
    """
    try:
        notification = Notification(
            type=type,
            title=title,
            message=message,
            target_roles=list(target_roles),
            target_user_id=target_user_id,
            reference_id=reference_id,
            read_by=[],
        )
        db.session.add(notification)
        db.session.commit()
        return notification
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to write %s notification for %s", type, reference_id)
        return None


def _naira(cents: int) -> str:
    return f"N{cents / 100:,.2f}"


def notify_order_created(order: Order) -> Notification | None:
    return notify(
        type="order_created",
        title="New order",
        message=f"{order.customer.name} placed order {order.order_number} ({_naira(order.total_amount_cents)})",
        target_roles=STAFF_TARGETS,
        reference_id=str(order.id),
    )


def notify_order_status(order: Order) -> Notification | None:
    """Tell the ordering customer that their order changed status."""
    user_id = order.customer.user_id
    if user_id is None:
        logger.info("Order %s status %s not announced: customer has no login", order.order_number, order.status)
        return None
    return notify(
        type=f"order_{order.status}",
        title=f"Order {order.status}",
        message=f"Your order {order.order_number} is {order.status}",
        target_roles=CUSTOMER_TARGETS,
        reference_id=str(order.id),
        target_user_id=user_id,
    )


def _addressed_to(notification: Notification, actor: ActorContext) -> bool:
    if actor.role_name not in (notification.target_roles or []):
        return False
    return notification.target_user_id is None or notification.target_user_id == actor.user_id


def list_notifications(actor: ActorContext, unread_only: bool = False) -> list[dict]:
    """Recent notifications addressed to the actor's role or to the actor."""
    recent = (
        db.session.query(Notification)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .limit(FEED_LIMIT * 5)
        .all()
    )
    feed = []
    for n in recent:
        if not _addressed_to(n, actor):
            continue
        data = n.to_dict()
        data["is_read"] = actor.user_id in data["read_by"]
        if unread_only and data["is_read"]:
            continue
        feed.append(data)
        if len(feed) >= FEED_LIMIT:
            break
    return feed


def mark_read(actor: ActorContext, notification_id: int) -> Notification:
    notification = db.session.get(Notification, notification_id)
    if notification is None or not _addressed_to(notification, actor):
        raise NotFound(
            f"Notification {notification_id} not found",
            details={"notification_id": notification_id},
        )
    read_by = list(notification.read_by or [])
    if actor.user_id not in read_by:
        # Reassign so the JSON column registers the change
        notification.read_by = read_by + [actor.user_id]
        db.session.commit()
    return notification
