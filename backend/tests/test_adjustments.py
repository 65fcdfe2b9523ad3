"""
Manual stock corrections and receipts.
"""

from datetime import timedelta

import pytest

from cartonstock.errors import InvalidQuantity, NotFound, PermissionDenied, ValidationError
from cartonstock.models import DailySnapshot, StockAdjustment
from cartonstock.services import adjustment_service, sales_service, snapshot_service, stock_ledger
from cartonstock.time_utils import business_today


def _today_row(db_session, product, location):
    return (
        db_session.query(DailySnapshot)
        .filter_by(product_id=product.id, location_id=location.id, snapshot_date=business_today())
        .one()
    )


class TestAdjustStock:
    def test_new_shipment_correction(self, db_session, store_staff, crackers, store, set_stock):
        set_stock(crackers, store, 50)
        snapshot_service.run_daily_rollover()

        adjustment = adjustment_service.adjust_stock(store_staff, crackers.id, store.id, 80, "New shipment")

        assert adjustment.previous_cartons == 50
        assert adjustment.new_cartons == 80
        assert adjustment.adjusted_by == "store-1"
        assert adjustment.to_dict()["delta"] == 30
        assert stock_ledger.get_stock(crackers.id, store.id) == 80
        assert db_session.query(StockAdjustment).count() == 1

        row = _today_row(db_session, crackers, store)
        assert row.closing == 80
        assert row.sold == 0
        assert row.is_overridden is True

    def test_without_todays_row_opens_from_previous_count(self, db_session, admin, crackers, shop, set_stock):
        set_stock(crackers, shop, 5)
        adjustment_service.adjust_stock(admin, crackers.id, shop.id, 2, "Damaged in transit")

        row = _today_row(db_session, crackers, shop)
        assert (row.opening, row.added, row.sold, row.closing) == (5, 0, 0, 2)
        assert row.is_overridden is True
        assert snapshot_service.get_row(crackers.id, shop.id)["closing"] == 2

    def test_correction_before_first_sale_survives_bootstrap(self, db_session, admin, crackers, shop, set_stock):
        yesterday = business_today() - timedelta(days=1)
        set_stock(crackers, shop, 50)
        snapshot_service.run_daily_rollover(yesterday)

        adjustment_service.adjust_stock(admin, crackers.id, shop.id, 80, "New shipment")
        sales_service.record_sale(admin, shop.id, "Walk-in", [{"product_id": crackers.id, "cartons": 2}])

        db_session.expire_all()
        assert stock_ledger.get_stock(crackers.id, shop.id) == 78
        row = snapshot_service.get_row(crackers.id, shop.id)
        assert (row["opening"], row["sold"], row["closing"]) == (50, 2, 78)
        assert row["is_overridden"] is True

    def test_first_adjustment_creates_entry(self, db_session, admin, crackers, shop):
        adjustment = adjustment_service.adjust_stock(admin, crackers.id, shop.id, 12, "Opening count")
        assert adjustment.previous_cartons == 0
        assert stock_ledger.get_stock(crackers.id, shop.id) == 12

    @pytest.mark.parametrize("reason", [None, "", "   "])
    def test_reason_required(self, db_session, admin, crackers, shop, set_stock, reason):
        set_stock(crackers, shop, 5)
        with pytest.raises(ValidationError):
            adjustment_service.adjust_stock(admin, crackers.id, shop.id, 9, reason)
        assert stock_ledger.get_stock(crackers.id, shop.id) == 5
        assert db_session.query(StockAdjustment).count() == 0

    def test_negative_count_rejected(self, db_session, admin, crackers, shop):
        with pytest.raises(InvalidQuantity):
            adjustment_service.adjust_stock(admin, crackers.id, shop.id, -4, "Oops")

    def test_shop_staff_cannot_adjust(self, db_session, shop_staff, crackers, shop, set_stock):
        set_stock(crackers, shop, 5)
        with pytest.raises(PermissionDenied):
            adjustment_service.adjust_stock(shop_staff, crackers.id, shop.id, 9, "Recount")
        assert stock_ledger.get_stock(crackers.id, shop.id) == 5

    def test_unknown_product(self, db_session, admin, shop):
        with pytest.raises(NotFound):
            adjustment_service.adjust_stock(admin, 31337, shop.id, 1, "Recount")


class TestReceiveStock:
    def test_receipt_increments_live_and_added(self, db_session, store_staff, crackers, store, set_stock):
        set_stock(crackers, store, 20)
        result = adjustment_service.receive_stock(store_staff, crackers.id, store.id, 15)

        assert result == {"product_id": crackers.id, "location_id": store.id, "received": 15, "cartons": 35}
        row = _today_row(db_session, crackers, store)
        assert (row.opening, row.added, row.closing) == (20, 15, 35)

    def test_zero_receipt_rejected(self, db_session, admin, crackers, store):
        with pytest.raises(InvalidQuantity):
            adjustment_service.receive_stock(admin, crackers.id, store.id, 0)

    def test_customers_cannot_receive(self, db_session, customer_actor, crackers, store):
        with pytest.raises(PermissionDenied):
            adjustment_service.receive_stock(customer_actor, crackers.id, store.id, 3)


class TestAdjustmentHistory:
    def test_newest_first(self, db_session, admin, crackers, shop):
        adjustment_service.adjust_stock(admin, crackers.id, shop.id, 10, "First count")
        adjustment_service.adjust_stock(admin, crackers.id, shop.id, 7, "Breakage")

        history = adjustment_service.list_adjustments(admin, shop.id)
        assert [a.reason for a in history] == ["Breakage", "First count"]
        assert history[0].previous_cartons == 10

    def test_shop_staff_reads_own_location_only(self, db_session, shop_staff, shop, other_shop):
        assert adjustment_service.list_adjustments(shop_staff, shop.id) == []
        with pytest.raises(PermissionDenied):
            adjustment_service.list_adjustments(shop_staff, other_shop.id)

    @pytest.mark.parametrize("limit", [0, 501])
    def test_limit_bounds(self, db_session, admin, shop, limit):
        with pytest.raises(ValidationError):
            adjustment_service.list_adjustments(admin, shop.id, limit=limit)
