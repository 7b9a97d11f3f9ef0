# Overview: Pytest coverage for the sales summary report.

from datetime import timedelta

import pytest
from dinepos.extensions import db
from dinepos.services import order_service, reporting_service
from dinepos.services.reporting_service import ReportError
from dinepos.time_utils import utcnow


def _sell(restaurant, lines, payment="cash", status="completed"):
    items = [
        {"product_id": n + 1, "name": name, "unit_price_cents": price, "quantity": qty}
        for n, (name, price, qty) in enumerate(lines)
    ]
    return order_service.place_order(restaurant.id, items, payment, status=status)


class TestSalesSummary:

    def test_empty(self, db_session, restaurant_a):
        report = reporting_service.sales_summary(restaurant_a.id)
        assert report["order_count"] == 0
        assert report["total_sales_cents"] == 0
        assert report["average_order_value_cents"] == 0
        assert report["top_items"] == []
        assert report["payment_methods"] == {"cash": 0, "card": 0, "wallet": 0}

    def test_only_completed_orders_count(self, db_session, restaurant_a):
        _sell(restaurant_a, [("Curry", 1000, 2)])                    # 2200
        _sell(restaurant_a, [("Naan", 500, 1)], payment="card")      # 550
        _sell(restaurant_a, [("Curry", 1000, 9)], status="pending")
        refunded = _sell(restaurant_a, [("Curry", 1000, 5)])
        order_service.transition_status(restaurant_a.id, refunded.id, "refunded")

        report = reporting_service.sales_summary(restaurant_a.id)

        assert report["order_count"] == 2
        assert report["total_sales_cents"] == 2750
        assert report["average_order_value_cents"] == 1375
        assert report["payment_methods"] == {"cash": 1, "card": 1, "wallet": 0}

    def test_average_rounds_half_up(self, db_session, restaurant_a):
        _sell(restaurant_a, [("A", 10, 1)])   # 11
        _sell(restaurant_a, [("B", 20, 1)])   # 22

        report = reporting_service.sales_summary(restaurant_a.id)
        assert report["total_sales_cents"] == 33
        assert report["average_order_value_cents"] == 17

    def test_top_items_by_quantity(self, db_session, restaurant_a):
        _sell(restaurant_a, [("Curry", 1000, 2), ("Naan", 200, 5)])
        _sell(restaurant_a, [("Rice", 300, 3), ("Naan", 200, 1)])
        for n in range(4):
            _sell(restaurant_a, [(f"Side {n}", 100, 1)])

        top = reporting_service.sales_summary(restaurant_a.id)["top_items"]

        assert len(top) == 5
        assert top[0] == {"name": "Naan", "quantity": 6, "revenue_cents": 1200}
        assert top[1] == {"name": "Rice", "quantity": 3, "revenue_cents": 900}
        assert top[2]["name"] == "Curry"

    def test_date_range(self, db_session, restaurant_a):
        old = _sell(restaurant_a, [("Curry", 1000, 1)])
        old.created_at = utcnow() - timedelta(days=10)
        db.session.commit()
        _sell(restaurant_a, [("Naan", 500, 1)])

        start = (utcnow() - timedelta(days=1)).isoformat()
        report = reporting_service.sales_summary(restaurant_a.id, start=start)
        assert report["order_count"] == 1
        assert report["top_items"][0]["name"] == "Naan"

    def test_invalid_range(self, db_session, restaurant_a):
        with pytest.raises(ReportError):
            reporting_service.sales_summary(restaurant_a.id, start="2025-02-01", end="2025-01-01")
        with pytest.raises(ReportError):
            reporting_service.sales_summary(restaurant_a.id, start="yesterday")

    def test_route(self, client, pos_headers_a, restaurant_a):
        _sell(restaurant_a, [("Curry", 1000, 2), ("Naan", 500, 1)])

        resp = client.get("/api/pos/reports/sales", headers=pos_headers_a)
        assert resp.status_code == 200
        assert resp.get_json()["total_sales_cents"] == 2750

        bad = client.get("/api/pos/reports/sales?start=nope", headers=pos_headers_a)
        assert bad.status_code == 400
