"""
Stock ledger tests.

Live counts never go negative and every write is a single server-side
statement; the ledger itself never commits.
"""

import pytest

from cartonstock.errors import InsufficientStock, InvalidQuantity, NotFound
from cartonstock.models import StockEntry
from cartonstock.services import stock_ledger


class TestReadsAndSets:
    def test_missing_entry_reads_as_zero(self, db_session, crackers, shop):
        assert stock_ledger.get_stock(crackers.id, shop.id) == 0

    def test_set_stock_creates_then_overwrites(self, db_session, crackers, shop):
        previous = stock_ledger.set_stock(crackers.id, shop.id, 12)
        db_session.commit()
        assert previous == 0
        assert stock_ledger.get_stock(crackers.id, shop.id) == 12

        previous = stock_ledger.set_stock(crackers.id, shop.id, 7)
        db_session.commit()
        assert previous == 12
        assert stock_ledger.get_stock(crackers.id, shop.id) == 7

        entries = db_session.query(StockEntry).filter_by(product_id=crackers.id, location_id=shop.id).all()
        assert len(entries) == 1

    def test_set_stock_rejects_negative(self, db_session, crackers, shop, set_stock):
        set_stock(crackers, shop, 4)
        with pytest.raises(InvalidQuantity):
            stock_ledger.set_stock(crackers.id, shop.id, -1)
        db_session.rollback()
        assert stock_ledger.get_stock(crackers.id, shop.id) == 4

    @pytest.mark.parametrize("bad", [2.5, "3.0", "abc", True, None, "1e3"])
    def test_set_stock_rejects_non_integers(self, db_session, crackers, shop, bad):
        with pytest.raises(InvalidQuantity):
            stock_ledger.set_stock(crackers.id, shop.id, bad)

    def test_set_stock_accepts_integer_strings(self, db_session, crackers, shop):
        stock_ledger.set_stock(crackers.id, shop.id, "9")
        db_session.commit()
        assert stock_ledger.get_stock(crackers.id, shop.id) == 9

    def test_set_stock_unknown_product(self, db_session, shop):
        with pytest.raises(NotFound):
            stock_ledger.set_stock(99999, shop.id, 5)

    def test_set_stock_unknown_location(self, db_session, crackers):
        with pytest.raises(NotFound):
            stock_ledger.set_stock(crackers.id, 99999, 5)

    def test_version_bumps_on_every_write(self, db_session, crackers, shop, set_stock):
        set_stock(crackers, shop, 10)
        first = db_session.query(StockEntry.version_id).filter_by(product_id=crackers.id).scalar()
        stock_ledger.decrement(crackers.id, shop.id, 1)
        db_session.commit()
        second = db_session.query(StockEntry.version_id).filter_by(product_id=crackers.id).scalar()
        assert second == first + 1


class TestDecrement:
    def test_decrement_subtracts(self, db_session, crackers, shop, set_stock):
        set_stock(crackers, shop, 10)
        assert stock_ledger.decrement(crackers.id, shop.id, 4) == 6

    def test_decrement_clamps_at_zero(self, db_session, crackers, shop, set_stock):
        set_stock(crackers, shop, 3)
        assert stock_ledger.decrement(crackers.id, shop.id, 5) == 0
        db_session.commit()
        assert stock_ledger.get_stock(crackers.id, shop.id) == 0

    def test_decrement_missing_entry_stays_zero(self, db_session, crackers, shop):
        assert stock_ledger.decrement(crackers.id, shop.id, 2) == 0

    def test_decrement_available_subtracts_exact(self, db_session, crackers, shop, set_stock):
        set_stock(crackers, shop, 5)
        assert stock_ledger.decrement_available(crackers.id, shop.id, 5) == 0

    def test_decrement_available_refuses_oversell(self, db_session, crackers, shop, set_stock):
        set_stock(crackers, shop, 3)
        with pytest.raises(InsufficientStock) as exc:
            stock_ledger.decrement_available(crackers.id, shop.id, 5)
        assert exc.value.available == 3
        assert exc.value.requested == 5
        assert "Only 3 available" in exc.value.message
        db_session.rollback()
        assert stock_ledger.get_stock(crackers.id, shop.id) == 3

    def test_decrement_available_rejects_zero(self, db_session, crackers, shop, set_stock):
        set_stock(crackers, shop, 3)
        with pytest.raises(InvalidQuantity):
            stock_ledger.decrement_available(crackers.id, shop.id, 0)


class TestIncrement:
    def test_increment_creates_entry(self, db_session, crackers, shop):
        assert stock_ledger.increment(crackers.id, shop.id, 8) == 8
        db_session.commit()
        assert stock_ledger.get_stock(crackers.id, shop.id) == 8

    def test_increment_adds(self, db_session, crackers, shop, set_stock):
        set_stock(crackers, shop, 2)
        assert stock_ledger.increment(crackers.id, shop.id, 3) == 5

    def test_stock_by_product(self, db_session, crackers, digestive, shop, store, set_stock):
        set_stock(crackers, shop, 4)
        set_stock(digestive, shop, 9)
        set_stock(crackers, store, 100)
        assert stock_ledger.stock_by_product(shop.id) == {crackers.id: 4, digestive.id: 9}
