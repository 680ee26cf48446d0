from datetime import datetime, timedelta

from aiforhealth.models.appointment import Appointment
from aiforhealth.models.notification import (
    Notification, NotificationType, NotificationStatus, NotificationChannel
)

from .utils import API, book, future_slot

def _inbox(client, headers, **params):
    response = client.get(f"{API}/notifications", params=params, headers=headers)
    assert response.status_code == 200
    return response.json()

class TestInbox:

    def test_list_and_unread_count(self, client, patient, doctor):
        book(client, patient["headers"], doctor["id"], future_slot())

        data = _inbox(client, patient["headers"])
        assert data["unread_count"] == 1
        notification = data["notifications"][0]
        assert notification["is_unread"] is True
        assert notification["related_kind"] == "Appointment"
        assert "confirmation_number" in notification["metadata"]

    def test_future_reminders_are_hidden(self, client, patient, doctor, db_session):
        book(client, patient["headers"], doctor["id"], future_slot())

        assert db_session.query(Notification).count() == 2
        assert _inbox(client, patient["headers"])["pagination"]["total"] == 1

    def test_mark_read(self, client, patient, doctor):
        book(client, patient["headers"], doctor["id"], future_slot())
        notification_id = _inbox(client, patient["headers"])["notifications"][0]["id"]

        response = client.patch(f"{API}/notifications/{notification_id}/read", headers=patient["headers"])
        assert response.status_code == 200
        assert response.json()["status"] == "read"
        assert response.json()["is_unread"] is False

        assert _inbox(client, patient["headers"])["unread_count"] == 0
        assert _inbox(client, patient["headers"], unread_only=True)["notifications"] == []

    def test_mark_all_read(self, client, patient, doctor):
        book(client, patient["headers"], doctor["id"], future_slot(days=3))
        book(client, patient["headers"], doctor["id"], future_slot(days=4))

        response = client.patch(f"{API}/notifications/read-all", headers=patient["headers"])
        assert response.status_code == 200
        assert response.json()["message"].startswith("2 ")
        assert _inbox(client, patient["headers"])["unread_count"] == 0

    def test_delete(self, client, patient, doctor):
        book(client, patient["headers"], doctor["id"], future_slot())
        notification_id = _inbox(client, patient["headers"])["notifications"][0]["id"]

        # Only the owner can touch a notification
        response = client.delete(f"{API}/notifications/{notification_id}", headers=doctor["headers"])
        assert response.status_code == 404

        response = client.delete(f"{API}/notifications/{notification_id}", headers=patient["headers"])
        assert response.status_code == 200
        assert _inbox(client, patient["headers"])["notifications"] == []

class TestNotificationJobs:

    def test_process_pending(self, client, patient, doctor, admin_headers):
        book(client, patient["headers"], doctor["id"], future_slot())

        response = client.post(f"{API}/notifications/process", headers=admin_headers)
        assert response.status_code == 200
        assert response.json() == {"processed": 1, "failed": 0}

        notification = _inbox(client, patient["headers"])["notifications"][0]
        assert notification["status"] == "sent"
        assert notification["sent_at"] is not None
        assert notification["is_unread"] is True

    def test_undeliverable_sms_fails(self, client, patient, admin_headers, db_session):
        db_session.add(Notification(
            user_id=patient["user"]["id"],
            title="Lab results",
            message="Your results are ready",
            type=NotificationType.TEST_RESULTS_READY,
            channel=NotificationChannel.SMS,
        ))
        db_session.commit()

        response = client.post(f"{API}/notifications/process", headers=admin_headers)
        assert response.json() == {"processed": 1, "failed": 1}

        db_session.expire_all()
        notification = db_session.query(Notification).one()
        assert notification.status == NotificationStatus.FAILED
        assert "error" in notification.meta

    def test_check_upcoming_creates_missing_reminders(
        self, client, patient, doctor, admin_headers, db_session
    ):
        db_session.add(Appointment(
            patient_id=patient["id"],
            doctor_id=doctor["id"],
            appointment_date=datetime.utcnow() + timedelta(hours=5),
            duration=30,
            reason="Imported from paper records",
            reminder_sent=False,
        ))
        db_session.commit()

        response = client.post(f"{API}/notifications/check-upcoming", headers=admin_headers)
        assert response.json() == {"created": 1}

        response = client.post(f"{API}/notifications/check-upcoming", headers=admin_headers)
        assert response.json() == {"created": 0}

    def test_check_missed(self, client, patient, doctor, admin_headers, db_session):
        db_session.add(Appointment(
            patient_id=patient["id"],
            doctor_id=doctor["id"],
            appointment_date=datetime.utcnow() - timedelta(days=1),
            duration=30,
            reason="Imported from paper records",
        ))
        db_session.commit()

        response = client.post(f"{API}/notifications/check-missed", headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["processed"] == 1

    def test_purge_expired(self, client, patient, admin_headers, db_session):
        db_session.add(Notification(
            user_id=patient["user"]["id"],
            title="Old news",
            message="Expired announcement",
            type=NotificationType.GENERAL_ANNOUNCEMENT,
            scheduled_for=datetime.utcnow() - timedelta(days=40),
            expires_at=datetime.utcnow() - timedelta(days=10),
        ))
        db_session.commit()

        response = client.delete(f"{API}/notifications/expired", headers=admin_headers)
        assert response.json() == {"deleted": 1}

    def test_jobs_require_admin(self, client, patient):
        for path in ("process", "check-upcoming", "check-missed"):
            response = client.post(f"{API}/notifications/{path}", headers=patient["headers"])
            assert response.status_code == 403
