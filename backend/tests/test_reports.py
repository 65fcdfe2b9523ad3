"""
Read-only reporting: sales per day, stock overview and low stock.
"""

from datetime import timedelta

import pytest

from cartonstock.errors import PermissionDenied, ValidationError
from cartonstock.models import Sale
from cartonstock.services import reporting_service, sales_service
from cartonstock.time_utils import business_today


class TestSalesReport:
    def test_totals_per_day(self, db_session, admin, crackers, digestive, shop, set_stock):
        set_stock(crackers, shop, 20)
        set_stock(digestive, shop, 20)
        sales_service.record_sale(admin, shop.id, "A", [{"product_id": crackers.id, "cartons": 2}])
        sales_service.record_sale(admin, shop.id, "B", [
            {"product_id": crackers.id, "cartons": 1},
            {"product_id": digestive.id, "cartons": 3},
        ])

        report = reporting_service.sales_report(admin, shop.id)
        today = business_today().isoformat()
        assert report["start"] == report["end"] == today
        assert report["days"] == [{
            "date": today,
            "sale_count": 2,
            "cartons_sold": 6,
            "revenue_cents": 3 * 450000 + 3 * 520000,
        }]
        assert report["totals"]["revenue_cents"] == 2910000

    def test_revenue_matches_line_totals(self, db_session, admin, crackers, shop, set_stock):
        set_stock(crackers, shop, 20)
        sale = sales_service.record_sale(admin, shop.id, "A", [{"product_id": crackers.id, "cartons": 7}])
        assert sale.total_amount_cents == sum(line.line_total_cents for line in sale.lines)

    def test_days_without_sales_are_omitted(self, db_session, admin, crackers, shop, set_stock):
        set_stock(crackers, shop, 20)
        sale = sales_service.record_sale(admin, shop.id, "A", [{"product_id": crackers.id, "cartons": 1}])
        # Backdate to exercise the range filter
        db_session.get(Sale, sale.id).business_date = business_today() - timedelta(days=2)
        db_session.commit()

        today = business_today()
        report = reporting_service.sales_report(admin, shop.id, today - timedelta(days=3), today)
        assert [d["date"] for d in report["days"]] == [(today - timedelta(days=2)).isoformat()]

    def test_inverted_range(self, db_session, admin, shop):
        today = business_today()
        with pytest.raises(ValidationError):
            reporting_service.sales_report(admin, shop.id, today, today - timedelta(days=1))

    def test_shop_staff_has_no_reports(self, db_session, shop_staff, shop):
        with pytest.raises(PermissionDenied):
            reporting_service.sales_report(shop_staff, shop.id)


class TestStockViews:
    def test_overview_matrix(self, db_session, admin, crackers, digestive, store, shop, set_stock):
        set_stock(crackers, store, 100)
        set_stock(crackers, shop, 4)
        set_stock(digestive, shop, 6)

        overview = reporting_service.stock_overview(admin)
        assert [loc["name"] for loc in overview["locations"]] == ["Shop 1", "Main Store"]
        by_name = {p["product_name"]: p for p in overview["products"]}
        assert by_name["Cream Crackers"]["by_location"] == {str(shop.id): 4, str(store.id): 100}
        assert by_name["Cream Crackers"]["total"] == 104
        assert overview["location_totals"] == {str(shop.id): 10, str(store.id): 100}
        assert overview["grand_total"] == 110

    def test_overview_scoped_for_shop_staff(self, db_session, shop_staff, crackers, shop, other_shop, set_stock):
        set_stock(crackers, shop, 4)
        set_stock(crackers, other_shop, 9)

        overview = reporting_service.stock_overview(shop_staff)
        assert [loc["id"] for loc in overview["locations"]] == [shop.id]
        assert overview["grand_total"] == 4
        with pytest.raises(PermissionDenied):
            reporting_service.stock_overview(shop_staff, other_shop.id)

    def test_low_stock_counts_missing_entries(self, db_session, admin, crackers, digestive, shop, set_stock):
        set_stock(crackers, shop, 3)

        low = reporting_service.low_stock(admin, shop.id)
        assert [(r["product_name"], r["cartons"], r["out_of_stock"]) for r in low] == [
            ("Digestive Biscuits", 0, True),
            ("Cream Crackers", 3, False),
        ]
        assert reporting_service.low_stock(admin, shop.id, threshold=3) == [
            {"product_id": digestive.id, "product_name": "Digestive Biscuits", "cartons": 0, "out_of_stock": True},
        ]

    def test_location_stock(self, db_session, shop_staff, crackers, digestive, shop, set_stock):
        set_stock(crackers, shop, 2)
        rows = reporting_service.location_stock(shop_staff, shop.id)
        assert [(r["product_name"], r["cartons"]) for r in rows] == [
            ("Cream Crackers", 2),
            ("Digestive Biscuits", 0),
        ]
