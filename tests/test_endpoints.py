"""
Endpoint tests: response shape and the wiring between routers and services.
"""
from datetime import timedelta

from factories import seed_appointment, seed_order, utc

TUESDAY_2PM = utc(2025, 10, 7, 14)


def _seed_october(db):
    for i in range(3):
        seed_appointment(db, TUESDAY_2PM + timedelta(days=i), "medicion", store="Madrid")
    seed_appointment(db, TUESDAY_2PM, "fitting", store="Sevilla")
    seed_appointment(db, TUESDAY_2PM, "fitting", store="Sevilla", cancelled=True)


class TestHealth:
    def test_health_ok(self, client):
        r = client.get("/health")
        assert r.status_code == 200
        assert r.json()["status"] == "ok"


class TestHistorical:
    def test_month_metrics(self, client, db):
        _seed_october(db)
        r = client.get("/citas/historical", params={"year": 2025, "month": 10})
        assert r.status_code == 200
        body = r.json()
        m = body["metrics"]
        assert m["period"] == "2025-10"
        assert (m["total"], m["medicion"], m["fitting"], m["cancelled"]) == (5, 3, 1, 1)
        assert m["cancellation_rate"] == 20.0
        assert [s["store_city"] for s in m["by_store"]] == ["Madrid", "Sevilla"]
        assert "patterns" not in body
        assert body["filters"] == {"year": 2025, "month": 10}

    def test_include_patterns(self, client, db):
        _seed_october(db)
        r = client.get("/citas/historical", params={"year": 2025, "include_patterns": True})
        patterns = r.json()["patterns"]
        assert patterns["heatmap"][2][14] == 3
        assert len(patterns["by_hour"]) == 24

    def test_aggregate_by_month(self, client, db):
        _seed_october(db)
        r = client.get("/citas/historical", params={"year": 2025, "aggregate_by": "month"})
        assert r.json()["by_month"] == [
            {"year": 2025, "month": 10, "total": 5, "medicion": 3, "fitting": 1, "cancelled": 1},
        ]

    def test_type_and_store_filters(self, client, db):
        _seed_october(db)
        r = client.get("/citas/historical", params={
            "year": 2025, "store_city": "Sevilla", "appointment_type": "fitting",
        })
        m = r.json()["metrics"]
        assert m["total"] == 2
        assert m["cancelled"] == 1

    def test_empty(self, client):
        r = client.get("/citas/historical", params={"year": 2030})
        m = r.json()["metrics"]
        assert m["total"] == 0
        assert m["cancellation_rate"] == 0
        assert m["avg_per_day"] == 0


class TestComparisons:
    def test_compare(self, client, db):
        seed_appointment(db, utc(2024, 10, 1, 10))
        _seed_october(db)
        r = client.get("/citas/historical/compare", params={"years": "2024,2025", "month": 10})
        body = r.json()
        assert body["years"] == [2025, 2024]
        assert body["metrics"]["2025"]["total"] == 5
        assert body["metrics"]["2024"]["total"] == 1
        assert body["failed_years"] == []

    def test_compare_periods(self, client, db):
        seed_appointment(db, utc(2024, 10, 1, 10))
        _seed_october(db)
        r = client.get("/citas/historical/compare-periods", params={
            "current_start": "2025-10-01", "current_end": "2025-10-31",
            "comparative_start": "2024-10-01", "comparative_end": "2024-10-31",
        })
        body = r.json()
        assert body["change"]["total"]["value"] == 4
        assert body["change"]["total"]["percent"] == 400.0
        assert body["change"]["cancelled"]["is_better"] is False

    def test_annual_totals(self, client, db):
        _seed_october(db)
        r = client.get("/citas/historical/annual-totals", params={"years": "2025"})
        body = r.json()
        assert body["month"] is None
        assert body["metrics"]["2025"]["period"] == "2025"

    def test_by_store(self, client, db):
        _seed_october(db)
        r = client.get("/citas/historical/by-store", params={"years": "2025", "grouping": "annual"})
        body = r.json()
        assert list(body["stores"]) == ["Madrid", "Sevilla"]
        assert body["stores"]["Sevilla"]["2025"]["cancelled_fitting"] == 1


class TestAnalysis:
    def test_patterns(self, client, db):
        _seed_october(db)
        r = client.get("/citas/historical/patterns", params={"years": "2025", "pattern_type": "store"})
        body = r.json()
        assert body["pattern_type"] == "store"
        assert body["store_patterns"][0]["store"] == "Madrid"
        assert "seasonal" not in body

    def test_patterns_all(self, client, db):
        _seed_october(db)
        r = client.get("/citas/historical/patterns", params={"years": "2025", "stores": "Madrid"})
        body = r.json()
        assert body["stores"] == ["Madrid"]
        assert len(body["day_hour_heatmap"]) == 7 * 16
        assert body["growth_trends"] == []

    def test_unknown_pattern_type(self, client):
        r = client.get("/citas/historical/patterns", params={"years": "2025", "pattern_type": "lunar"})
        assert r.status_code == 422

    def test_insights(self, client, db):
        _seed_october(db)
        r = client.get("/citas/historical/insights", params={"years": "2025", "insight_types": "hour"})
        body = r.json()
        assert body["categories"] == ["hour"]
        assert body["total"] == len(body["insights"])
        assert body["insights"][0]["message"].startswith("Peak hours: 14:00")


class TestOrders:
    def test_breakdown(self, client, db):
        seed_appointment(db, utc(2025, 2, 20, 10), "fitting", email="ana@example.com")
        seed_order(db, "#1", utc(2025, 3, 5, 12), tags=None, total="50.00")
        seed_order(db, "#2", utc(2025, 3, 6, 12), tags=["Recurrent"], email="ana@example.com", total="300.00")
        seed_order(db, "#3", utc(2025, 3, 7, 12), tags=["New Customer"], email="new@example.com")

        r = client.get("/orders/breakdown", params={"start_date": "2025-03-01", "end_date": "2025-03-31"})
        assert r.status_code == 200
        body = r.json()
        assert (body["total_orders"], body["online_orders"], body["store_orders"]) == (3, 1, 2)
        assert (body["from_fitting"], body["from_measurement"]) == (1, 1)
        assert (body["matched"], body["inferred"]) == (1, 1)
        assert "matches" not in body

    def test_breakdown_with_matches(self, client, db):
        seed_appointment(db, utc(2025, 2, 20, 10), "fitting", email="ana@example.com")
        seed_order(db, "#2", utc(2025, 3, 6, 12), tags=["Recurrent"], email="ana@example.com")
        seed_order(db, "#3", utc(2025, 3, 7, 12), tags=["New Customer"], email="new@example.com")

        r = client.get("/orders/breakdown", params={
            "start_date": "2025-03-01", "end_date": "2025-03-31", "include_matches": True,
        })
        matches = r.json()["matches"]
        assert [m["order_number"] for m in matches] == ["#2", "#3"]
        assert matches[0]["provenance"] == "matched-appointment"
        assert matches[0]["category"] == "fitting"
        assert matches[1]["provenance"] == "inferred-from-tags"
        assert matches[1]["rule_name"] == "new_customer"
        assert "appointment_id" not in matches[1]
