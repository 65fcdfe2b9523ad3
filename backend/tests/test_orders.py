"""
Wholesale order lifecycle tests.

pending -> approved -> fulfilled, with rejection from pending or approved.
Fulfillment draws from the designated store and records a sale.
"""

import pytest

from cartonstock.errors import InsufficientStock, InvalidTransition, NotFound, PermissionDenied, ValidationError
from cartonstock.models import Customer, DailySnapshot, Notification, Order, Sale
from cartonstock.permissions import ActorContext
from cartonstock.services import customer_service, notification_service, order_service, stock_ledger
from cartonstock.time_utils import business_today


@pytest.fixture
def placed_order(db_session, customer_actor, customer, crackers):
    return order_service.create_order(customer_actor, [{"product_id": crackers.id, "cartons": 4}])


class TestCreateOrder:
    def test_customer_places_pending_order(self, db_session, customer_actor, customer, crackers, store, set_stock):
        set_stock(crackers, store, 1)
        order = order_service.create_order(customer_actor, [{"product_id": crackers.id, "cartons": 4}])

        assert order.status == "pending"
        assert order.customer_id == customer.id
        assert order.total_amount_cents == 4 * 450000
        assert order.order_number == f"ORD-{order.id:06d}"
        # Stock is neither checked nor reserved until fulfillment
        assert stock_ledger.get_stock(crackers.id, store.id) == 1

    def test_staff_places_order_for_customer(self, db_session, admin, customer, crackers):
        order = order_service.create_order(admin, [{"product_id": crackers.id, "cartons": 1}], customer_id=customer.id)
        assert order.customer_id == customer.id
        assert order.created_by == "admin-1"

    def test_staff_must_name_customer(self, db_session, admin, crackers):
        with pytest.raises(ValidationError):
            order_service.create_order(admin, [{"product_id": crackers.id, "cartons": 1}])

    def test_unapproved_customer_is_refused(self, db_session, crackers):
        actor = ActorContext(user_id="new-user")
        customer_service.create_customer(actor, "Fresh Traders")

        with pytest.raises(PermissionDenied):
            order_service.create_order(actor, [{"product_id": crackers.id, "cartons": 1}])
        assert db_session.query(Order).count() == 0

    def test_user_without_customer_record(self, db_session, crackers):
        with pytest.raises(NotFound):
            order_service.create_order(ActorContext(user_id="ghost"), [{"product_id": crackers.id, "cartons": 1}])

    def test_customer_cannot_order_for_someone_else(self, db_session, customer_actor, customer, crackers):
        other = Customer(name="Other", user_id="other-user", approved=True)
        db_session.add(other)
        db_session.commit()
        with pytest.raises(PermissionDenied):
            order_service.create_order(
                customer_actor, [{"product_id": crackers.id, "cartons": 1}], customer_id=other.id,
            )

    def test_shop_staff_cannot_create_orders(self, db_session, shop_staff, customer, crackers):
        with pytest.raises(PermissionDenied):
            order_service.create_order(shop_staff, [{"product_id": crackers.id, "cartons": 1}], customer_id=customer.id)

    def test_creation_notifies_staff(self, db_session, admin, store_staff, customer_actor, placed_order):
        feed = notification_service.list_notifications(store_staff)
        assert [n["type"] for n in feed] == ["order_created"]
        assert placed_order.order_number in feed[0]["message"]
        assert notification_service.list_notifications(customer_actor) == []


class TestTransitions:
    def test_approve_then_fulfill(self, db_session, store_staff, placed_order, crackers, store, set_stock):
        set_stock(crackers, store, 10)

        order = order_service.approve_order(store_staff, placed_order.id)
        assert order.status == "approved"
        assert order.approved_by == "store-1"
        assert order.approved_at is not None

        order = order_service.fulfill_order(store_staff, placed_order.id)
        assert order.status == "fulfilled"
        assert order.fulfilled_by == "store-1"
        assert stock_ledger.get_stock(crackers.id, store.id) == 6

        sale = db_session.query(Sale).filter_by(order_id=order.id).one()
        assert sale.location_id == store.id
        assert sale.receipt_number == order.order_number
        assert sale.customer_name == "Ada Wholesale"
        assert sale.total_amount_cents == 4 * 450000

        row = (
            db_session.query(DailySnapshot)
            .filter_by(product_id=crackers.id, location_id=store.id, snapshot_date=business_today())
            .one()
        )
        assert (row.opening, row.sold, row.closing) == (10, 4, 6)
        assert order.to_dict()["sale_id"] == sale.id

    def test_insufficient_store_stock_keeps_order_approved(self, db_session, admin, placed_order, crackers, store, set_stock):
        set_stock(crackers, store, 3)
        order_service.approve_order(admin, placed_order.id)

        with pytest.raises(InsufficientStock) as exc:
            order_service.fulfill_order(admin, placed_order.id)
        assert exc.value.available == 3

        db_session.expire_all()
        assert db_session.get(Order, placed_order.id).status == "approved"
        assert stock_ledger.get_stock(crackers.id, store.id) == 3
        assert db_session.query(Sale).count() == 0

    def test_fulfill_ignores_shop_stock(self, db_session, admin, placed_order, crackers, store, shop, set_stock):
        set_stock(crackers, shop, 50)
        set_stock(crackers, store, 0)
        order_service.approve_order(admin, placed_order.id)
        with pytest.raises(InsufficientStock):
            order_service.fulfill_order(admin, placed_order.id)
        assert stock_ledger.get_stock(crackers.id, shop.id) == 50

    def test_fulfill_needs_a_store(self, db_session, admin, placed_order):
        order_service.approve_order(admin, placed_order.id)
        with pytest.raises(NotFound):
            order_service.fulfill_order(admin, placed_order.id)

    def test_reject_from_pending_and_approved(self, db_session, admin, customer_actor, customer, crackers):
        first = order_service.create_order(customer_actor, [{"product_id": crackers.id, "cartons": 1}])
        second = order_service.create_order(customer_actor, [{"product_id": crackers.id, "cartons": 1}])
        order_service.approve_order(admin, second.id)

        assert order_service.reject_order(admin, first.id).status == "rejected"
        rejected = order_service.reject_order(admin, second.id)
        assert rejected.status == "rejected"
        assert rejected.rejected_by == "admin-1"

    def test_cannot_fulfill_pending(self, db_session, admin, placed_order, crackers, store, set_stock):
        set_stock(crackers, store, 10)
        with pytest.raises(InvalidTransition):
            order_service.fulfill_order(admin, placed_order.id)
        assert stock_ledger.get_stock(crackers.id, store.id) == 10

    def test_terminal_states_are_final(self, db_session, admin, placed_order, crackers, store, set_stock):
        set_stock(crackers, store, 10)
        order_service.approve_order(admin, placed_order.id)
        order_service.fulfill_order(admin, placed_order.id)

        for action in (order_service.approve_order, order_service.reject_order, order_service.fulfill_order):
            with pytest.raises(InvalidTransition):
                action(admin, placed_order.id)
        assert stock_ledger.get_stock(crackers.id, store.id) == 6

    def test_rejected_cannot_be_approved(self, db_session, admin, placed_order):
        order_service.reject_order(admin, placed_order.id)
        with pytest.raises(InvalidTransition):
            order_service.approve_order(admin, placed_order.id)

    def test_customers_cannot_approve(self, db_session, customer_actor, placed_order):
        with pytest.raises(PermissionDenied):
            order_service.approve_order(customer_actor, placed_order.id)

    def test_unknown_order(self, db_session, admin, store):
        with pytest.raises(NotFound):
            order_service.approve_order(admin, 987654)

    def test_status_changes_notify_customer(self, db_session, admin, customer_actor, placed_order, crackers, store, set_stock):
        set_stock(crackers, store, 10)
        order_service.approve_order(admin, placed_order.id)
        order_service.fulfill_order(admin, placed_order.id)

        types = [n["type"] for n in notification_service.list_notifications(customer_actor)]
        assert types == ["order_fulfilled", "order_approved"]


class TestOrderReads:
    def test_customer_sees_only_own_orders(self, db_session, admin, customer_actor, customer, placed_order, crackers):
        stranger = ActorContext(user_id="stranger")
        db_session.add(Customer(name="Stranger Ltd", user_id="stranger", approved=True))
        db_session.commit()
        theirs = order_service.create_order(stranger, [{"product_id": crackers.id, "cartons": 1}])

        assert [o.id for o in order_service.list_orders(customer_actor)] == [placed_order.id]
        with pytest.raises(NotFound):
            order_service.get_order(customer_actor, theirs.id)
        assert len(order_service.list_orders(admin)) == 2

    def test_filter_by_status(self, db_session, admin, placed_order):
        assert [o.id for o in order_service.list_orders(admin, "pending")] == [placed_order.id]
        assert order_service.list_orders(admin, "fulfilled") == []
        with pytest.raises(ValidationError):
            order_service.list_orders(admin, "shipped")

    def test_order_receipt(self, db_session, customer_actor, placed_order):
        receipt = order_service.order_receipt(customer_actor, placed_order.id)
        assert receipt["type"] == "order"
        assert receipt["receipt_number"] == placed_order.order_number
        assert receipt["items"] == [{"name": "Cream Crackers", "cartons": 4, "price_per_carton_cents": 450000}]
        assert receipt["total_cents"] == 1800000


class TestNotifications:
    def test_mark_read(self, db_session, store_staff, admin, placed_order):
        feed = notification_service.list_notifications(store_staff, unread_only=True)
        assert len(feed) == 1

        notification_service.mark_read(store_staff, feed[0]["id"])
        assert notification_service.list_notifications(store_staff, unread_only=True) == []
        # Read state is per user
        assert len(notification_service.list_notifications(admin, unread_only=True)) == 1

    def test_mark_read_outside_audience(self, db_session, customer_actor, placed_order):
        notification = db_session.query(Notification).one()
        with pytest.raises(NotFound):
            notification_service.mark_read(customer_actor, notification.id)

    def test_status_updates_reach_only_the_ordering_customer(self, db_session, admin, customer_actor, placed_order):
        stranger = ActorContext(user_id="stranger")
        db_session.add(Customer(name="Stranger Ltd", user_id="stranger", approved=True))
        db_session.commit()

        order_service.approve_order(admin, placed_order.id)

        feed = notification_service.list_notifications(customer_actor)
        assert [n["type"] for n in feed] == ["order_approved"]
        assert feed[0]["target_user_id"] == customer_actor.user_id
        assert notification_service.list_notifications(stranger) == []
        with pytest.raises(NotFound):
            notification_service.mark_read(stranger, feed[0]["id"])

    def test_customer_without_login_gets_no_status_notification(self, db_session, admin, crackers):
        walk_in = Customer(name="Phone Orders Ltd", approved=True)
        db_session.add(walk_in)
        db_session.commit()
        order = order_service.create_order(admin, [{"product_id": crackers.id, "cartons": 1}], customer_id=walk_in.id)

        order_service.reject_order(admin, order.id)

        assert db_session.query(Notification).filter(Notification.type == "order_rejected").count() == 0
