"""
Tests for order ↔ appointment reconciliation: lookback window, tie-breaks,
fallback to the tag classifier, and the period breakdown service.
"""
from datetime import date, timedelta
from decimal import Decimal

import pytest

from citas.models import Order
from citas.repositories.records import AppointmentCategory
from citas.services.reconciler import (
    MatchProvenance,
    appointment_search_window,
    build_orders_breakdown,
    reconcile_orders,
    split_online,
)
from factories import make_appt, make_order, seed_appointment, seed_order, utc

M = AppointmentCategory.measurement
F = AppointmentCategory.fitting


# ---------------------------------------------------------------------------
# Pure matching
# ---------------------------------------------------------------------------

class TestMatching:
    def test_most_recent_appointment_in_window_wins(self):
        order = make_order(utc(2025, 3, 10, 12), email="a@x.com")
        appts = [
            make_appt(utc(2025, 1, 5, 10), M, email="a@x.com"),
            make_appt(utc(2025, 3, 1, 10), F, email="a@x.com"),
        ]
        match = reconcile_orders([order], appts).matches[0]
        assert match.category is F
        assert match.provenance is MatchProvenance.matched_appointment
        assert match.appointment_id == appts[1].id

    def test_appointment_after_order_is_ignored(self):
        order = make_order(utc(2025, 3, 10, 12), tags=["Recurrent"], email="a@x.com")
        appts = [make_appt(utc(2025, 3, 10, 13), M, email="a@x.com")]
        match = reconcile_orders([order], appts).matches[0]
        assert match.provenance is MatchProvenance.inferred_from_tags
        assert match.category is F

    def test_appointment_at_order_time_qualifies(self):
        at = utc(2025, 3, 10, 12)
        match = reconcile_orders([make_order(at, email="a@x.com")], [make_appt(at, F, email="a@x.com")]).matches[0]
        assert match.category is F

    def test_lookback_boundary_is_inclusive(self):
        order_at = utc(2025, 6, 1, 12)
        order = make_order(order_at, tags=["Recurrent"], email="a@x.com")
        on_edge = make_appt(order_at - timedelta(days=90), M, email="a@x.com")
        assert reconcile_orders([order], [on_edge]).matches[0].provenance is MatchProvenance.matched_appointment

        too_old = make_appt(order_at - timedelta(days=90, seconds=1), M, email="a@x.com")
        assert reconcile_orders([order], [too_old]).matches[0].provenance is MatchProvenance.inferred_from_tags

    def test_custom_lookback(self):
        order_at = utc(2025, 6, 1, 12)
        order = make_order(order_at, email="a@x.com")
        appt = make_appt(order_at - timedelta(days=20), F, email="a@x.com")
        assert reconcile_orders([order], [appt], lookback_days=10).matches[0].provenance is MatchProvenance.inferred_from_tags

    def test_cancelled_appointments_never_match(self):
        order = make_order(utc(2025, 3, 10, 12), email="a@x.com")
        appts = [
            make_appt(utc(2025, 3, 1, 10), M, email="a@x.com"),
            make_appt(utc(2025, 3, 9, 10), F, cancelled=True, email="a@x.com"),
        ]
        match = reconcile_orders([order], appts).matches[0]
        assert match.category is M
        assert match.appointment_id == appts[0].id

    def test_other_customers_do_not_match(self):
        order = make_order(utc(2025, 3, 10, 12), email="a@x.com")
        appts = [make_appt(utc(2025, 3, 9, 10), F, email="b@x.com")]
        assert reconcile_orders([order], appts).matches[0].provenance is MatchProvenance.inferred_from_tags

    def test_order_without_email_is_inferred(self):
        order = make_order(utc(2025, 3, 10, 12), tags=["Recurrent"], email="")
        appts = [make_appt(utc(2025, 3, 9, 10), M, email="")]
        match = reconcile_orders([order], appts).matches[0]
        assert match.provenance is MatchProvenance.inferred_from_tags
        assert match.rule_name == "recurrent"

    def test_unrecognized_category_falls_back_to_tags_but_keeps_appointment(self):
        order = make_order(utc(2025, 3, 10, 12), tags=["Recurrent"], email="a@x.com")
        appt = make_appt(utc(2025, 3, 9, 10), None, email="a@x.com")
        match = reconcile_orders([order], [appt]).matches[0]
        assert match.provenance is MatchProvenance.inferred_from_tags
        assert match.category is F
        assert match.appointment_id == appt.id

    def test_online_order_is_rejected(self):
        with pytest.raises(ValueError):
            reconcile_orders([make_order(utc(2025, 3, 10), tags=())], [])


class TestTieBreak:
    def test_exact_tie_picks_greater_id(self):
        at = utc(2025, 3, 5, 11)
        order = make_order(utc(2025, 3, 10), email="a@x.com")
        low = make_appt(at, F, email="a@x.com", id=5)
        high = make_appt(at, M, email="a@x.com", id=9)
        assert reconcile_orders([order], [low, high]).matches[0].appointment_id == 9
        assert reconcile_orders([order], [high, low]).matches[0].appointment_id == 9

    def test_tie_choice_is_stable(self):
        at = utc(2025, 3, 5, 11)
        order = make_order(utc(2025, 3, 10), email="a@x.com")
        appts = [make_appt(at, F, email="a@x.com", id=i) for i in (3, 1, 2)]
        chosen = {reconcile_orders([order], appts).matches[0].appointment_id for _ in range(10)}
        assert chosen == {3}


class TestScenario:
    def test_hundred_march_orders(self):
        orders, appts = [], []
        for i in range(60):
            email = f"matched{i}@x.com"
            category = M if i < 40 else F
            appts.append(make_appt(utc(2025, 2, 1, 10) + timedelta(days=i % 28), category, email=email))
            orders.append(make_order(utc(2025, 3, 1 + i % 28, 17), tags=["Recurrent"], email=email))
        for i in range(40):
            tags = ["New Customer"] if i < 25 else ["Recurrent"]
            orders.append(make_order(utc(2025, 3, 1 + i % 28, 17), tags=tags, email=f"walkin{i}@x.com"))

        result = reconcile_orders(orders, appts)

        assert len(result.matches) == 100
        assert result.matched_count == 60
        assert result.inferred_count == 40
        assert result.count_for(M) == 40 + 25
        assert result.count_for(F) == 20 + 15
        assert [m.order.id for m in result.matches] == [o.id for o in orders]


class TestHelpers:
    def test_split_online(self):
        online = make_order(utc(2025, 3, 1), tags=())
        store = make_order(utc(2025, 3, 1), tags=["Tienda"])
        assert split_online([online, store]) == ([online], [store])

    def test_search_window(self):
        start, end = appointment_search_window(date(2025, 3, 1), date(2025, 3, 31), 90, 7)
        assert start == utc(2024, 12, 1)
        assert end.date() == date(2025, 4, 7)


# ---------------------------------------------------------------------------
# Period service (DB)
# ---------------------------------------------------------------------------

class TestOrdersBreakdown:
    def test_breakdown(self, db):
        seed_appointment(db, utc(2025, 2, 20, 10), "fitting", email="Ana@Example.com")
        seed_appointment(db, utc(2025, 3, 2, 10), "medicion", email="luis@example.com", cancelled=True)
        seed_order(db, "#1", utc(2025, 3, 5, 12), tags=None, total="50.00")
        seed_order(db, "#2", utc(2025, 3, 6, 12), tags=["Recurrent"], email="ana@example.com", total="300.00")
        seed_order(db, "#3", utc(2025, 3, 7, 12), tags=["New Customer"], email="luis@example.com", total="200.00")
        seed_order(db, "#4", utc(2025, 4, 1, 12), tags=["Recurrent"], email="ana@example.com")

        b = build_orders_breakdown(db, date(2025, 3, 1), date(2025, 3, 31))

        assert b.total_orders == 3
        assert b.online_orders == 1
        assert b.store_orders == 2
        assert b.matched == 1
        assert b.inferred == 1
        assert b.from_fitting == 1
        assert b.from_measurement == 1
        assert b.online_revenue == Decimal("50.00")
        assert b.fitting_revenue == Decimal("300.00")
        assert b.measurement_revenue == Decimal("200.00")
        assert b.matched + b.inferred == b.store_orders

    def test_comma_separated_tags_are_store_orders(self, db):
        db.add(Order(
            order_number="#1", created_at=utc(2025, 3, 5, 12),
            tags="Recurrent, Daily for pleasure", total_price=0,
        ))
        db.commit()
        b = build_orders_breakdown(db, date(2025, 3, 1), date(2025, 3, 31))
        assert b.store_orders == 1
        assert b.from_fitting == 1

    def test_blank_tags_are_store_orders(self, db):
        seed_order(db, "#1", utc(2025, 3, 5, 12), tags=[" "], total="80.00")
        seed_order(db, "#2", utc(2025, 3, 6, 12), tags=[""])
        b = build_orders_breakdown(db, date(2025, 3, 1), date(2025, 3, 31))
        assert b.online_orders == 0
        assert b.store_orders == 2
        assert b.inferred == 2
        assert b.online_revenue == Decimal("0")

    def test_empty_period(self, db):
        b = build_orders_breakdown(db, date(2025, 3, 1), date(2025, 3, 31))
        assert b.total_orders == 0
        assert b.matches == []
