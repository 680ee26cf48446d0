from datetime import datetime, timedelta

import pytest

from aiforhealth.models.appointment import Appointment, AppointmentStatus
from aiforhealth.models.notification import Notification, NotificationType
from aiforhealth.services.appointment_service import AppointmentService

from .utils import API, book, future_slot, next_weekday, clinic_payload

def _notification_types(client, headers):
    response = client.get(f"{API}/notifications", params={"limit": 100}, headers=headers)
    assert response.status_code == 200
    return [n["type"] for n in response.json()["notifications"]]

def _past_appointment(db, patient_id, doctor_id, hours_ago=3, status=AppointmentStatus.SCHEDULED):
    appointment = Appointment(
        patient_id=patient_id,
        doctor_id=doctor_id,
        appointment_date=datetime.utcnow() - timedelta(hours=hours_ago),
        duration=30,
        reason="Follow-up on lab results",
        status=status,
    )
    db.add(appointment)
    db.commit()
    db.refresh(appointment)
    return appointment

class TestBooking:

    def test_patient_books_appointment(self, client, patient, doctor):
        start = future_slot()
        response = book(client, patient["headers"], doctor["id"], start)
        assert response.status_code == 201

        data = response.json()
        assert data["status"] == "scheduled"
        assert data["patient_id"] == patient["id"]
        assert data["doctor_id"] == doctor["id"]
        assert data["confirmation_number"].startswith("APT-")
        assert datetime.fromisoformat(data["end_time"]) == start + timedelta(minutes=30)
        assert data["doctor"]["specialization"] == "Cardiology"
        assert data["reminder_sent"] is True

    def test_booking_sends_confirmation(self, client, patient, doctor):
        book(client, patient["headers"], doctor["id"], future_slot())
        types = _notification_types(client, patient["headers"])
        assert types == ["appointment_confirmation"]

    def test_reminder_is_scheduled_before_start(self, client, patient, doctor, db_session):
        start = future_slot()
        appointment_id = book(client, patient["headers"], doctor["id"], start).json()["id"]

        reminder = db_session.query(Notification).filter(
            Notification.related_id == appointment_id,
            Notification.type == NotificationType.APPOINTMENT_REMINDER,
        ).one()
        assert reminder.scheduled_for == start - timedelta(hours=2)

    def test_booking_in_the_past(self, client, patient, doctor):
        start = datetime.utcnow() - timedelta(days=1)
        response = book(client, patient["headers"], doctor["id"], start)
        assert response.status_code == 400

    def test_booking_validation(self, client, patient, doctor):
        response = book(client, patient["headers"], doctor["id"], future_slot(), reason="hi")
        assert response.status_code == 422

        response = book(client, patient["headers"], doctor["id"], future_slot(), duration=10)
        assert response.status_code == 422

    def test_unknown_doctor(self, client, patient):
        response = book(client, patient["headers"], 9999, future_slot())
        assert response.status_code == 404

    def test_patient_cannot_book_for_someone_else(self, client, patient, other_patient, doctor):
        response = book(
            client, patient["headers"], doctor["id"], future_slot(),
            patient_id=other_patient["id"],
        )
        assert response.status_code == 403

    def test_doctor_books_for_patient(self, client, patient, doctor):
        response = book(client, doctor["headers"], doctor["id"], future_slot())
        assert response.status_code == 400

        response = book(
            client, doctor["headers"], doctor["id"], future_slot(), patient_id=patient["id"]
        )
        assert response.status_code == 201
        assert response.json()["patient_id"] == patient["id"]

    def test_unavailable_doctor(self, client, patient, doctor):
        client.patch(
            f"{API}/doctors/availability", json={"is_available": False}, headers=doctor["headers"]
        )
        response = book(client, patient["headers"], doctor["id"], future_slot())
        assert response.status_code == 409

class TestDoubleBooking:

    def test_same_slot_rejected(self, client, patient, other_patient, doctor):
        start = future_slot()
        assert book(client, patient["headers"], doctor["id"], start).status_code == 201

        response = book(client, other_patient["headers"], doctor["id"], start)
        assert response.status_code == 409
        assert response.json()["detail"] == "Time slot already booked"

    def test_partial_overlap_rejected(self, client, patient, other_patient, doctor):
        start = future_slot()
        book(client, patient["headers"], doctor["id"], start, duration=60)

        response = book(client, other_patient["headers"], doctor["id"], start + timedelta(minutes=45))
        assert response.status_code == 409

        response = book(client, other_patient["headers"], doctor["id"], start - timedelta(minutes=15))
        assert response.status_code == 409

    def test_adjacent_slots_allowed(self, client, patient, other_patient, doctor):
        start = future_slot()
        book(client, patient["headers"], doctor["id"], start)

        after = book(client, other_patient["headers"], doctor["id"], start + timedelta(minutes=30))
        assert after.status_code == 201
        before = book(client, other_patient["headers"], doctor["id"], start - timedelta(minutes=30))
        assert before.status_code == 201

    def test_cancelled_slot_is_free_again(self, client, patient, other_patient, doctor):
        start = future_slot()
        appointment_id = book(client, patient["headers"], doctor["id"], start).json()["id"]
        client.post(f"{API}/appointments/{appointment_id}/cancel", headers=patient["headers"])

        response = book(client, other_patient["headers"], doctor["id"], start)
        assert response.status_code == 201

    def test_longer_duration_update_checks_overlap(self, client, patient, other_patient, doctor):
        start = future_slot()
        first = book(client, patient["headers"], doctor["id"], start).json()
        book(client, other_patient["headers"], doctor["id"], start + timedelta(minutes=30))

        response = client.put(
            f"{API}/appointments/{first['id']}", json={"duration": 60}, headers=patient["headers"]
        )
        assert response.status_code == 409

        response = client.put(
            f"{API}/appointments/{first['id']}", json={"notes": "Bring previous results"},
            headers=patient["headers"],
        )
        assert response.status_code == 200
        assert response.json()["notes"] == "Bring previous results"

    def test_every_booking_path_locks_the_doctor(self, client, patient, doctor, monkeypatch):
        locked = []
        original = AppointmentService._lock_doctor

        def recording_lock(self, doctor_id):
            locked.append(doctor_id)
            return original(self, doctor_id)

        monkeypatch.setattr(AppointmentService, "_lock_doctor", recording_lock)
        start = future_slot()

        appointment_id = book(client, patient["headers"], doctor["id"], start).json()["id"]
        response = client.put(
            f"{API}/appointments/{appointment_id}", json={"duration": 60}, headers=patient["headers"]
        )
        assert response.status_code == 200
        response = client.post(
            f"{API}/appointments/{appointment_id}/reschedule",
            json={"new_date": (start + timedelta(days=1)).isoformat()},
            headers=patient["headers"],
        )
        assert response.status_code == 200

        assert locked == [doctor["id"]] * 3

class TestClinicHours:

    @pytest.fixture
    def clinic_doctor(self, client, doctor, admin_headers):
        hours = {
            day: {"open": "08:00", "close": "18:00"}
            for day in ("monday", "tuesday", "wednesday", "thursday", "friday")
        }
        hours["saturday"] = None
        clinic = client.post(
            f"{API}/clinics", json=clinic_payload(opening_hours=hours), headers=admin_headers
        ).json()
        client.put(f"{API}/doctors/me", json={"clinic_id": clinic["id"]}, headers=doctor["headers"])
        return doctor

    def test_booking_inside_opening_hours(self, client, patient, clinic_doctor):
        response = book(client, patient["headers"], clinic_doctor["id"], next_weekday(0, hour=10))
        assert response.status_code == 201
        assert response.json()["clinic_id"] is not None

    def test_booking_on_closed_day(self, client, patient, clinic_doctor):
        response = book(client, patient["headers"], clinic_doctor["id"], next_weekday(5, hour=10))
        assert response.status_code == 409

    def test_booking_past_closing_time(self, client, patient, clinic_doctor):
        response = book(
            client, patient["headers"], clinic_doctor["id"], next_weekday(0, hour=17, minute=45)
        )
        assert response.status_code == 409

    def test_slots_follow_clinic_hours(self, client, patient, clinic_doctor):
        monday = next_weekday(0, hour=0)
        response = client.get(
            f"{API}/appointments/slots",
            params={"doctor_id": clinic_doctor["id"], "date": monday.date().isoformat(), "duration": 60},
            headers=patient["headers"],
        )
        assert response.status_code == 200
        assert len(response.json()["slots"]) == 10

        saturday = next_weekday(5, hour=0)
        response = client.get(
            f"{API}/appointments/slots",
            params={"doctor_id": clinic_doctor["id"], "date": saturday.date().isoformat()},
            headers=patient["headers"],
        )
        assert response.json()["slots"] == []

class TestCancellation:

    def test_cancel_appointment(self, client, patient, doctor):
        appointment_id = book(client, patient["headers"], doctor["id"], future_slot()).json()["id"]

        response = client.post(
            f"{API}/appointments/{appointment_id}/cancel",
            json={"reason": "Feeling better"},
            headers=patient["headers"],
        )
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "cancelled"
        assert data["cancellation_reason"] == "Feeling better"
        assert data["cancelled_at"] is not None

    def test_cancel_twice_conflicts(self, client, patient, doctor):
        appointment_id = book(client, patient["headers"], doctor["id"], future_slot()).json()["id"]
        url = f"{API}/appointments/{appointment_id}/cancel"

        assert client.post(url, headers=patient["headers"]).status_code == 200
        response = client.post(url, headers=patient["headers"])
        assert response.status_code == 409
        assert response.json()["detail"] == "Appointment is already cancelled"

        types = _notification_types(client, patient["headers"])
        assert types.count("appointment_cancellation") == 1

    def test_cancel_drops_pending_reminder(self, client, patient, doctor, db_session):
        appointment_id = book(client, patient["headers"], doctor["id"], future_slot()).json()["id"]
        client.post(f"{API}/appointments/{appointment_id}/cancel", headers=patient["headers"])

        reminders = db_session.query(Notification).filter(
            Notification.related_id == appointment_id,
            Notification.type == NotificationType.APPOINTMENT_REMINDER,
        ).count()
        assert reminders == 0

    def test_patient_needs_cancellation_notice(self, client, patient, doctor):
        start = datetime.utcnow().replace(microsecond=0) + timedelta(hours=1)
        appointment_id = book(client, patient["headers"], doctor["id"], start).json()["id"]

        response = client.post(f"{API}/appointments/{appointment_id}/cancel", headers=patient["headers"])
        assert response.status_code == 400

        # Staff are not bound by the notice period
        response = client.post(f"{API}/appointments/{appointment_id}/cancel", headers=doctor["headers"])
        assert response.status_code == 200

    def test_other_patient_cannot_cancel(self, client, patient, other_patient, doctor):
        appointment_id = book(client, patient["headers"], doctor["id"], future_slot()).json()["id"]
        response = client.post(
            f"{API}/appointments/{appointment_id}/cancel", headers=other_patient["headers"]
        )
        assert response.status_code == 403

class TestReschedule:

    def test_reschedule(self, client, patient, doctor):
        start = future_slot()
        appointment_id = book(client, patient["headers"], doctor["id"], start).json()["id"]
        new_date = start + timedelta(days=1)

        response = client.post(
            f"{API}/appointments/{appointment_id}/reschedule",
            json={"new_date": new_date.isoformat(), "reason": "Work trip"},
            headers=patient["headers"],
        )
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "rescheduled"
        assert datetime.fromisoformat(data["appointment_date"]) == new_date
        assert datetime.fromisoformat(data["end_time"]) == new_date + timedelta(minutes=30)
        assert "appointment_rescheduled" in _notification_types(client, patient["headers"])

    def test_reschedule_overlapping_itself(self, client, patient, doctor):
        start = future_slot()
        appointment_id = book(client, patient["headers"], doctor["id"], start).json()["id"]

        response = client.post(
            f"{API}/appointments/{appointment_id}/reschedule",
            json={"new_date": (start + timedelta(minutes=15)).isoformat()},
            headers=patient["headers"],
        )
        assert response.status_code == 200

    def test_reschedule_into_taken_slot(self, client, patient, other_patient, doctor):
        start = future_slot()
        appointment_id = book(client, patient["headers"], doctor["id"], start).json()["id"]
        taken = start + timedelta(hours=2)
        book(client, other_patient["headers"], doctor["id"], taken)

        response = client.post(
            f"{API}/appointments/{appointment_id}/reschedule",
            json={"new_date": taken.isoformat()},
            headers=patient["headers"],
        )
        assert response.status_code == 409

    def test_patient_needs_reschedule_notice(self, client, patient, doctor):
        start = datetime.utcnow().replace(microsecond=0) + timedelta(hours=3)
        appointment_id = book(client, patient["headers"], doctor["id"], start).json()["id"]

        response = client.post(
            f"{API}/appointments/{appointment_id}/reschedule",
            json={"new_date": future_slot().isoformat()},
            headers=patient["headers"],
        )
        assert response.status_code == 400

    def test_status_endpoint_refuses_rescheduled(self, client, patient, doctor):
        appointment_id = book(client, patient["headers"], doctor["id"], future_slot()).json()["id"]
        response = client.patch(
            f"{API}/appointments/{appointment_id}/status",
            json={"status": "rescheduled"},
            headers=doctor["headers"],
        )
        assert response.status_code == 400

class TestLifecycle:

    def test_confirm_start_complete(self, client, patient, doctor):
        appointment_id = book(client, patient["headers"], doctor["id"], future_slot()).json()["id"]
        base = f"{API}/appointments/{appointment_id}"

        assert client.post(f"{base}/confirm", headers=doctor["headers"]).json()["status"] == "confirmed"
        assert client.post(f"{base}/start", headers=doctor["headers"]).json()["status"] == "in_progress"

        response = client.post(
            f"{base}/complete",
            json={"diagnosis": "Mild hypertension", "prescription": "Lisinopril 10mg"},
            headers=doctor["headers"],
        )
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "completed"
        assert data["diagnosis"] == "Mild hypertension"
        assert data["completed_at"] is not None

        assert "prescription_ready" in _notification_types(client, patient["headers"])

    def test_complete_requires_in_progress(self, client, patient, doctor):
        appointment_id = book(client, patient["headers"], doctor["id"], future_slot()).json()["id"]
        response = client.post(f"{API}/appointments/{appointment_id}/complete", headers=doctor["headers"])
        assert response.status_code == 409

    def test_completed_is_final(self, client, patient, doctor):
        appointment_id = book(client, patient["headers"], doctor["id"], future_slot()).json()["id"]
        base = f"{API}/appointments/{appointment_id}"
        client.post(f"{base}/start", headers=doctor["headers"])
        client.post(f"{base}/complete", headers=doctor["headers"])

        assert client.post(f"{base}/cancel", headers=doctor["headers"]).status_code == 409
        response = client.post(
            f"{base}/reschedule",
            json={"new_date": future_slot(days=5).isoformat()},
            headers=doctor["headers"],
        )
        assert response.status_code == 409

    def test_patient_cannot_confirm(self, client, patient, doctor):
        appointment_id = book(client, patient["headers"], doctor["id"], future_slot()).json()["id"]
        response = client.post(f"{API}/appointments/{appointment_id}/confirm", headers=patient["headers"])
        assert response.status_code == 403

    def test_status_update_to_cancelled(self, client, patient, doctor):
        appointment_id = book(client, patient["headers"], doctor["id"], future_slot()).json()["id"]
        response = client.patch(
            f"{API}/appointments/{appointment_id}/status",
            json={"status": "cancelled"},
            headers=doctor["headers"],
        )
        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"

class TestMissedAppointments:

    def test_reading_marks_missed(self, client, patient, doctor, db_session):
        appointment = _past_appointment(db_session, patient["id"], doctor["id"])

        response = client.get(f"{API}/appointments/{appointment.id}", headers=patient["headers"])
        assert response.status_code == 200
        assert response.json()["status"] == "missed"
        assert "missed_appointment" in _notification_types(client, patient["headers"])

    def test_listing_marks_missed(self, client, patient, doctor, db_session):
        _past_appointment(db_session, patient["id"], doctor["id"])

        response = client.get(f"{API}/appointments", headers=patient["headers"])
        assert [a["status"] for a in response.json()["appointments"]] == ["missed"]

    def test_in_progress_is_not_missed(self, client, patient, doctor, db_session):
        appointment = _past_appointment(
            db_session, patient["id"], doctor["id"], status=AppointmentStatus.IN_PROGRESS
        )
        response = client.get(f"{API}/appointments/{appointment.id}", headers=doctor["headers"])
        assert response.json()["status"] == "in_progress"

    def test_sweep(self, client, patient, doctor, admin_headers, db_session):
        missed = _past_appointment(db_session, patient["id"], doctor["id"])
        _past_appointment(
            db_session, patient["id"], doctor["id"], hours_ago=5, status=AppointmentStatus.COMPLETED
        )
        book(client, patient["headers"], doctor["id"], future_slot())

        response = client.post(f"{API}/appointments/sweep-missed", headers=admin_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["processed"] == 1
        assert data["details"] == [{"appointment_id": missed.id}]

        response = client.post(f"{API}/appointments/sweep-missed", headers=admin_headers)
        assert response.json()["processed"] == 0

    def test_sweep_requires_admin(self, client, doctor):
        response = client.post(f"{API}/appointments/sweep-missed", headers=doctor["headers"])
        assert response.status_code == 403

    def test_missed_can_be_rescheduled(self, client, patient, doctor, db_session):
        appointment = _past_appointment(db_session, patient["id"], doctor["id"])
        client.get(f"{API}/appointments/{appointment.id}", headers=patient["headers"])

        response = client.post(
            f"{API}/appointments/{appointment.id}/reschedule",
            json={"new_date": future_slot().isoformat()},
            headers=patient["headers"],
        )
        assert response.status_code == 200
        assert response.json()["status"] == "rescheduled"

class TestQueries:

    def test_list_pagination(self, client, patient, doctor):
        for day in (3, 4, 5):
            book(client, patient["headers"], doctor["id"], future_slot(days=day))

        response = client.get(f"{API}/appointments", params={"limit": 2}, headers=patient["headers"])
        data = response.json()
        assert len(data["appointments"]) == 2
        assert data["pagination"] == {"page": 1, "limit": 2, "total": 3, "pages": 2}

        dates = [a["appointment_date"] for a in data["appointments"]]
        assert dates == sorted(dates)

    def test_list_status_filter(self, client, patient, doctor):
        first = book(client, patient["headers"], doctor["id"], future_slot(days=3)).json()
        book(client, patient["headers"], doctor["id"], future_slot(days=4))
        client.post(f"{API}/appointments/{first['id']}/cancel", headers=patient["headers"])

        response = client.get(
            f"{API}/appointments", params={"status": "cancelled"}, headers=patient["headers"]
        )
        assert [a["id"] for a in response.json()["appointments"]] == [first["id"]]

    def test_list_is_scoped_to_caller(self, client, patient, other_patient, doctor):
        book(client, patient["headers"], doctor["id"], future_slot())

        response = client.get(f"{API}/appointments", headers=other_patient["headers"])
        assert response.json()["pagination"]["total"] == 0
        response = client.get(f"{API}/appointments", headers=doctor["headers"])
        assert response.json()["pagination"]["total"] == 1

    def test_other_patient_cannot_view(self, client, patient, other_patient, doctor):
        appointment_id = book(client, patient["headers"], doctor["id"], future_slot()).json()["id"]
        response = client.get(f"{API}/appointments/{appointment_id}", headers=other_patient["headers"])
        assert response.status_code == 403

    def test_availability(self, client, patient, doctor):
        start = future_slot()
        appointment_id = book(client, patient["headers"], doctor["id"], start).json()["id"]

        params = {"doctor_id": doctor["id"], "date": start.isoformat(), "duration": 30}
        data = client.get(f"{API}/appointments/availability", params=params, headers=patient["headers"]).json()
        assert data["available"] is False
        assert data["conflicts"] == [appointment_id]

        params["date"] = (start + timedelta(minutes=30)).isoformat()
        data = client.get(f"{API}/appointments/availability", params=params, headers=patient["headers"]).json()
        assert data["available"] is True

    def test_slots_skip_booked_times(self, client, patient, doctor):
        start = future_slot(hour=10)
        params = {"doctor_id": doctor["id"], "date": start.date().isoformat(), "duration": 60}

        slots = client.get(f"{API}/appointments/slots", params=params, headers=patient["headers"]).json()["slots"]
        assert len(slots) == 10

        book(client, patient["headers"], doctor["id"], start)
        slots = client.get(f"{API}/appointments/slots", params=params, headers=patient["headers"]).json()["slots"]
        assert len(slots) == 9
        assert start.isoformat() not in slots

    def test_stats(self, client, patient, doctor):
        first = book(client, patient["headers"], doctor["id"], future_slot(days=3)).json()
        book(client, patient["headers"], doctor["id"], future_slot(days=4))
        client.post(f"{API}/appointments/{first['id']}/cancel", headers=patient["headers"])

        response = client.get(f"{API}/appointments/stats", headers=doctor["headers"])
        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 2
        assert data["by_status"]["cancelled"] == 1
        assert data["by_status"]["scheduled"] == 1

        assert client.get(f"{API}/appointments/stats", headers=patient["headers"]).status_code == 403

    def test_bulk_cancel_reports_failures(self, client, patient, doctor):
        first = book(client, patient["headers"], doctor["id"], future_slot(days=3)).json()
        second = book(client, patient["headers"], doctor["id"], future_slot(days=4)).json()
        client.post(f"{API}/appointments/{second['id']}/cancel", headers=patient["headers"])

        response = client.post(
            f"{API}/appointments/bulk",
            json={"operation": "cancel", "appointments": [{"id": first["id"]}, {"id": second["id"]}]},
            headers=doctor["headers"],
        )
        assert response.status_code == 200
        data = response.json()
        assert [a["id"] for a in data["successful"]] == [first["id"]]
        assert data["failed"] == [{"id": second["id"], "reason": "Appointment is already cancelled"}]

    def test_export_csv(self, client, patient, doctor):
        book(client, patient["headers"], doctor["id"], future_slot())

        response = client.get(f"{API}/appointments/export", params={"format": "csv"}, headers=doctor["headers"])
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert "attachment" in response.headers["content-disposition"]
        lines = response.text.strip().splitlines()
        assert lines[0].startswith("confirmation_number")
        assert len(lines) == 2

    def test_export_json(self, client, patient, doctor):
        book(client, patient["headers"], doctor["id"], future_slot())
        data = client.get(f"{API}/appointments/export", headers=doctor["headers"]).json()
        assert data["count"] == 1
        assert data["appointments"][0]["status"] == "scheduled"
