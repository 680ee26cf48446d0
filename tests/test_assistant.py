from aiforhealth.services.assistant_service import triage, DISCLAIMER

from .utils import API

def _start(client, headers, **data):
    response = client.post(f"{API}/ai-assistant/conversations", json=data, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()

class TestTriage:

    def test_emergency_keywords(self):
        result = triage("Sudden chest pain radiating to my arm")
        assert result["urgency"] == "emergency"
        assert result["suggested_specialty"] == "Cardiology"
        assert "chest pain" in result["matched_keywords"]
        assert result["disclaimer"] == DISCLAIMER

    def test_urgent_keywords(self):
        result = triage("I have had a fever since yesterday")
        assert result["urgency"] == "urgent"
        assert result["suggested_specialty"] == "Internal Medicine"

    def test_routine_defaults_to_general_practice(self):
        result = triage("Mild itchy rash on my arm")
        assert result["urgency"] == "routine"
        assert result["suggested_specialty"] == "General Practice"
        assert result["matched_keywords"] == []

class TestConversations:

    def test_initial_message_gets_reply(self, client, patient):
        data = _start(client, patient["headers"], initial_message="I have a fever and a cough")

        assert data["title"] == "I have a fever and a cough"
        assert data["status"] == "active"
        roles = [m["role"] for m in data["messages"]]
        assert roles == ["user", "assistant"]
        reply = data["messages"][1]
        assert reply["metadata"] == {"source": "triage", "urgency": "urgent"}
        assert "Internal Medicine" in reply["content"]

    def test_send_message(self, client, patient):
        conversation = _start(client, patient["headers"])
        assert conversation["title"] == "New Conversation"

        response = client.post(
            f"{API}/ai-assistant/conversations/{conversation['id']}/messages",
            json={"content": "Headache for three days"},
            headers=patient["headers"],
        )
        assert response.status_code == 200
        data = response.json()
        assert data["user_message"]["content"] == "Headache for three days"
        assert data["assistant_message"]["role"] == "assistant"

        response = client.get(
            f"{API}/ai-assistant/conversations/{conversation['id']}", headers=patient["headers"]
        )
        assert response.json()["title"] == "Headache for three days"
        assert len(response.json()["messages"]) == 2

    def test_archived_conversation_rejects_messages(self, client, patient):
        conversation = _start(client, patient["headers"], title="Back pain")

        response = client.patch(
            f"{API}/ai-assistant/conversations/{conversation['id']}/status",
            json={"status": "archived"},
            headers=patient["headers"],
        )
        assert response.status_code == 200
        assert response.json()["status"] == "archived"

        response = client.post(
            f"{API}/ai-assistant/conversations/{conversation['id']}/messages",
            json={"content": "Still hurts"},
            headers=patient["headers"],
        )
        assert response.status_code == 409

    def test_list_filters_by_status(self, client, patient):
        _start(client, patient["headers"], title="First")
        second = _start(client, patient["headers"], title="Second")
        client.patch(
            f"{API}/ai-assistant/conversations/{second['id']}/status",
            json={"status": "completed"},
            headers=patient["headers"],
        )

        response = client.get(
            f"{API}/ai-assistant/conversations", params={"status": "active"}, headers=patient["headers"]
        )
        assert [c["title"] for c in response.json()["conversations"]] == ["First"]

    def test_history_spans_conversations(self, client, patient):
        _start(client, patient["headers"], initial_message="Sore throat")
        _start(client, patient["headers"], initial_message="Stomach pain after meals")

        response = client.get(f"{API}/ai-assistant/history", headers=patient["headers"])
        assert response.status_code == 200
        contents = [m["content"] for m in response.json()]
        assert len(contents) == 4
        assert contents[0] == "Sore throat"

        response = client.get(f"{API}/ai-assistant/history", params={"limit": 1}, headers=patient["headers"])
        assert len(response.json()) == 1

    def test_conversations_are_private(self, client, patient, other_patient):
        conversation = _start(client, patient["headers"], title="Private")
        response = client.get(
            f"{API}/ai-assistant/conversations/{conversation['id']}", headers=other_patient["headers"]
        )
        assert response.status_code == 404

    def test_delete(self, client, patient):
        conversation = _start(client, patient["headers"], initial_message="Dizziness")
        response = client.delete(
            f"{API}/ai-assistant/conversations/{conversation['id']}", headers=patient["headers"]
        )
        assert response.status_code == 200

        response = client.get(f"{API}/ai-assistant/history", headers=patient["headers"])
        assert response.json() == []

class TestSymptomCheck:

    def test_chest_pain_is_emergency(self, client, patient):
        response = client.post(
            f"{API}/ai-assistant/symptom-check",
            json={"symptoms": ["chest pain", "shortness of breath"]},
            headers=patient["headers"],
        )
        assert response.status_code == 200
        data = response.json()
        assert data["urgency"] == "emergency"
        assert data["suggested_specialty"] == "Cardiology"

    def test_severity_raises_urgency(self, client, patient):
        response = client.post(
            f"{API}/ai-assistant/symptom-check",
            json={"symptoms": ["cough"], "severity": "severe"},
            headers=patient["headers"],
        )
        assert response.json()["urgency"] == "emergency"

    def test_symptoms_required(self, client, patient):
        response = client.post(
            f"{API}/ai-assistant/symptom-check", json={"symptoms": []}, headers=patient["headers"]
        )
        assert response.status_code == 422
