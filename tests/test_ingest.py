"""
Tests for the ingestion helpers: derived time fields, event-name parsing,
row builders and batch ingestion.
"""
from datetime import datetime, timedelta, timezone

import pytest

from citas.models import Appointment
from citas.repositories.records import AppointmentCategory
from citas.services.ingest import (
    RawAppointment,
    build_appointment,
    build_order,
    derive_time_fields,
    ingest_appointments,
    parse_event_type_name,
)
from factories import utc


class TestTimeFields:
    def test_sunday_is_zero(self):
        f = derive_time_fields(utc(2025, 10, 5, 18, 30))
        assert (f.year, f.month, f.day_of_week, f.hour) == (2025, 10, 0, 18)

    def test_saturday_is_six(self):
        assert derive_time_fields(utc(2025, 10, 11, 9)).day_of_week == 6

    def test_converted_to_utc(self):
        madrid = timezone(timedelta(hours=2))
        f = derive_time_fields(datetime(2025, 1, 1, 1, 0, tzinfo=madrid))
        assert (f.year, f.month, f.day_of_week, f.hour) == (2024, 12, 2, 23)

    def test_naive_treated_as_utc(self):
        assert derive_time_fields(datetime(2025, 10, 6, 14)).hour == 14


class TestEventTypeName:
    @pytest.mark.parametrize("name,city,category,event", [
        ("[Madrid] Medición", "Madrid", AppointmentCategory.measurement, "regular"),
        ("[Sevilla] Fitting", "Sevilla", AppointmentCategory.fitting, "regular"),
        ("Bundtour Málaga - Medición", "Málaga", AppointmentCategory.measurement, "tour"),
        ("Videoconsulta Barcelona", "Barcelona", AppointmentCategory.measurement, "videoconsulta"),
        ("Ponte Traje CDMX Polanco", "CDMX", AppointmentCategory.measurement, "ponte_traje"),
        ("Viste a medida - A Coruña", "A Coruña", AppointmentCategory.measurement, "ponte_traje"),
        ("[El Puerto de Sta. María] Fitting", "El Puerto de Santa María", AppointmentCategory.fitting, "regular"),
        ("Seville fitting", "Sevilla", AppointmentCategory.fitting, "regular"),
    ])
    def test_parse(self, name, city, category, event):
        info = parse_event_type_name(name)
        assert info.store_city == city
        assert info.category is category
        assert info.event_category == event

    def test_unknown_city(self):
        assert parse_event_type_name("[Lisboa] Fitting").store_city is None

    @pytest.mark.parametrize("name", [None, ""])
    def test_missing_name(self, name):
        info = parse_event_type_name(name)
        assert info.store_city is None
        assert info.category is AppointmentCategory.measurement


class TestBuilders:
    def test_build_appointment_derives_fields(self):
        row = build_appointment(utc(2025, 10, 7, 14), "Madrid", "fitting", "  Ana@Example.COM ")
        assert row.customer_email == "ana@example.com"
        assert (row.year, row.month, row.day_of_week, row.hour) == (2025, 10, 2, 14)
        assert row.appointment_type == "fitting"

    def test_build_order_without_tags_is_online(self):
        row = build_order("#1", utc(2025, 10, 7), tags=[])
        assert row.tags is None
        assert row.customer_email is None


class TestBatch:
    def test_ingest_skips_unknown_city(self, db):
        rows = [
            RawAppointment("[Madrid] Medición", "a@x.com", utc(2025, 10, 6, 10)),
            RawAppointment("[Lisboa] Fitting", "b@x.com", utc(2025, 10, 6, 11)),
            RawAppointment("[Sevilla] Fitting", "c@x.com", utc(2025, 10, 6, 12), is_cancelled=True),
        ]
        stats = ingest_appointments(rows, db)
        assert (stats.processed, stats.inserted, stats.skipped) == (3, 2, 1)
        assert stats.by_city == {"Madrid": 1, "Sevilla": 1}
        assert db.query(Appointment).count() == 2

    def test_duplicate_external_id_does_not_abort_batch(self, db):
        rows = [
            RawAppointment("[Madrid] Medición", "a@x.com", utc(2025, 10, 6, 10), external_id="ev-1"),
            RawAppointment("[Madrid] Fitting", "a@x.com", utc(2025, 10, 7, 10), external_id="ev-1"),
            RawAppointment("[Madrid] Fitting", "a@x.com", utc(2025, 10, 8, 10), external_id="ev-2"),
        ]
        stats = ingest_appointments(rows, db)
        assert stats.inserted == 2
        assert stats.skipped == 1
        assert stats.errors[0]["index"] == 1
