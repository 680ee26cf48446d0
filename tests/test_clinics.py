from .utils import API, book, next_weekday, clinic_payload

class TestClinics:

    def test_create_clinic(self, client, admin_headers):
        response = client.post(f"{API}/clinics", json=clinic_payload(), headers=admin_headers)
        assert response.status_code == 201

        data = response.json()
        assert data["name"] == "Downtown Health Center"
        assert data["is_open"] is True
        assert data["opening_hours"]["monday"] == {"open": "08:00", "close": "18:00"}

    def test_create_requires_admin(self, client, doctor):
        response = client.post(f"{API}/clinics", json=clinic_payload(), headers=doctor["headers"])
        assert response.status_code == 403

    def test_validation(self, client, admin_headers):
        bad_phone = clinic_payload(phone="call-us")
        assert client.post(f"{API}/clinics", json=bad_phone, headers=admin_headers).status_code == 422

        no_specialties = clinic_payload(specialties=[])
        assert client.post(f"{API}/clinics", json=no_specialties, headers=admin_headers).status_code == 422

        bad_hours = clinic_payload(opening_hours={"monday": {"open": "18:00", "close": "08:00"}})
        assert client.post(f"{API}/clinics", json=bad_hours, headers=admin_headers).status_code == 422

        bad_day = clinic_payload(opening_hours={"funday": {"open": "08:00", "close": "18:00"}})
        assert client.post(f"{API}/clinics", json=bad_day, headers=admin_headers).status_code == 422

    def test_list_is_public_and_sorted_by_rating(self, client, admin_headers):
        client.post(f"{API}/clinics", json=clinic_payload(name="Harbor Clinic", rating=3.9), headers=admin_headers)
        client.post(f"{API}/clinics", json=clinic_payload(name="Summit Clinic", rating=4.8), headers=admin_headers)

        response = client.get(f"{API}/clinics")
        assert response.status_code == 200
        names = [c["name"] for c in response.json()["clinics"]]
        assert names == ["Summit Clinic", "Harbor Clinic"]

    def test_search_and_specialty_filter(self, client, admin_headers):
        client.post(
            f"{API}/clinics",
            json=clinic_payload(name="Skin Care Clinic", specialties=["Dermatology"]),
            headers=admin_headers,
        )
        client.post(f"{API}/clinics", json=clinic_payload(name="Heart Center"), headers=admin_headers)

        response = client.get(f"{API}/clinics", params={"specialty": "dermatology"})
        assert [c["name"] for c in response.json()["clinics"]] == ["Skin Care Clinic"]

        response = client.get(f"{API}/clinics", params={"search": "heart"})
        data = response.json()
        assert [c["name"] for c in data["clinics"]] == ["Heart Center"]
        assert data["pagination"]["total"] == 1

    def test_get_missing_clinic(self, client):
        assert client.get(f"{API}/clinics/999").status_code == 404

    def test_update_clinic(self, client, admin_headers):
        clinic = client.post(f"{API}/clinics", json=clinic_payload(), headers=admin_headers).json()

        response = client.put(
            f"{API}/clinics/{clinic['id']}",
            json=clinic_payload(name="Downtown Family Clinic", is_open=False),
            headers=admin_headers,
        )
        assert response.status_code == 200
        assert response.json()["name"] == "Downtown Family Clinic"
        assert response.json()["is_open"] is False

    def test_update_rejects_null_required_fields(self, client, admin_headers):
        clinic = client.post(f"{API}/clinics", json=clinic_payload(), headers=admin_headers).json()

        response = client.put(
            f"{API}/clinics/{clinic['id']}",
            json=clinic_payload(name=None, rating=None),
            headers=admin_headers,
        )
        assert response.status_code == 422
        assert client.get(f"{API}/clinics/{clinic['id']}").json()["name"] == "Downtown Health Center"

    def test_clinic_doctors(self, client, admin_headers, doctor):
        clinic = client.post(f"{API}/clinics", json=clinic_payload(), headers=admin_headers).json()
        client.put(f"{API}/doctors/me", json={"clinic_id": clinic["id"]}, headers=doctor["headers"])

        response = client.get(f"{API}/clinics/{clinic['id']}/doctors")
        assert response.status_code == 200
        assert [d["id"] for d in response.json()] == [doctor["id"]]

    def test_delete_with_active_appointments(self, client, admin_headers, doctor, patient):
        clinic = client.post(f"{API}/clinics", json=clinic_payload(), headers=admin_headers).json()
        client.put(f"{API}/doctors/me", json={"clinic_id": clinic["id"]}, headers=doctor["headers"])
        appointment = book(client, patient["headers"], doctor["id"], next_weekday(1)).json()

        response = client.delete(f"{API}/clinics/{clinic['id']}", headers=admin_headers)
        assert response.status_code == 409

        client.post(f"{API}/appointments/{appointment['id']}/cancel", headers=patient["headers"])
        response = client.delete(f"{API}/clinics/{clinic['id']}", headers=admin_headers)
        assert response.status_code == 200

        assert client.get(f"{API}/doctors/me", headers=doctor["headers"]).json()["clinic_id"] is None
