from datetime import datetime, timedelta

API = "/api/v1"
PASSWORD = "TestPassword123"

def auth_headers(token):
    return {"Authorization": f"Bearer {token}"}

def register(client, email, role="patient", **extra):
    data = {
        "email": email,
        "password": PASSWORD,
        "role": role,
        "first_name": "Test",
        "last_name": "User",
    }
    data.update(extra)
    response = client.post(f"{API}/auth/register", json=data)
    assert response.status_code == 201, response.text
    return response.json()

def login(client, email, password=PASSWORD):
    response = client.post(f"{API}/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    return auth_headers(response.json()["access_token"])

def future_slot(days=3, hour=10, minute=0):
    """A naive UTC start time some days ahead, clear of every notice window."""
    day = datetime.utcnow() + timedelta(days=days)
    return day.replace(hour=hour, minute=minute, second=0, microsecond=0)

def next_weekday(weekday, hour=10, minute=0, min_days=2):
    """Next date falling on ``weekday`` (0 is Monday) at least ``min_days`` ahead."""
    day = datetime.utcnow() + timedelta(days=min_days)
    while day.weekday() != weekday:
        day += timedelta(days=1)
    return day.replace(hour=hour, minute=minute, second=0, microsecond=0)

def book(client, headers, doctor_id, start, duration=30, **extra):
    data = {
        "doctor_id": doctor_id,
        "appointment_date": start.isoformat(),
        "duration": duration,
        "reason": "Routine check of blood pressure",
    }
    data.update(extra)
    return client.post(f"{API}/appointments", json=data, headers=headers)

def clinic_payload(**overrides):
    data = {
        "name": "Downtown Health Center",
        "address": "12 Market Street",
        "phone": "+15551234567",
        "rating": 4.5,
        "specialties": ["Cardiology", "General Practice"],
    }
    data.update(overrides)
    return data
