from .utils import API

class TestPatients:

    def test_own_profile(self, client, patient):
        response = client.get(f"{API}/patients/me", headers=patient["headers"])
        assert response.status_code == 200
        assert response.json()["full_name"] == "Pat Jones"
        assert response.json()["email"] == "patient@example.com"

    def test_update_own_profile(self, client, patient):
        response = client.put(
            f"{API}/patients/me",
            json={"city": "Springfield", "gender": "female", "medical_history": ["asthma"]},
            headers=patient["headers"],
        )
        assert response.status_code == 200
        data = response.json()
        assert data["city"] == "Springfield"
        assert data["medical_history"] == ["asthma"]

    def test_invalid_profile_values(self, client, patient):
        response = client.put(
            f"{API}/patients/me", json={"date_of_birth": "2999-01-01"}, headers=patient["headers"]
        )
        assert response.status_code == 422

        response = client.put(f"{API}/patients/me", json={"gender": "robot"}, headers=patient["headers"])
        assert response.status_code == 422

    def test_doctors_have_no_patient_profile(self, client, doctor):
        assert client.get(f"{API}/patients/me", headers=doctor["headers"]).status_code == 403

    def test_staff_create_and_list(self, client, admin_headers, patient):
        response = client.post(
            f"{API}/patients",
            json={
                "email": "new@example.com",
                "password": "NewPatient123",
                "first_name": "Nora",
                "last_name": "Quinn",
            },
            headers=admin_headers,
        )
        assert response.status_code == 201

        response = client.post(
            f"{API}/patients",
            json={
                "email": "new@example.com",
                "password": "NewPatient123",
                "first_name": "Nora",
                "last_name": "Quinn",
            },
            headers=admin_headers,
        )
        assert response.status_code == 400

        response = client.get(f"{API}/patients", params={"search": "quinn"}, headers=admin_headers)
        assert [p["last_name"] for p in response.json()["patients"]] == ["Quinn"]

        response = client.get(f"{API}/patients", headers=admin_headers)
        assert response.json()["pagination"]["total"] == 2

    def test_patients_cannot_list_patients(self, client, patient):
        assert client.get(f"{API}/patients", headers=patient["headers"]).status_code == 403
