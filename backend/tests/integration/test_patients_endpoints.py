"""
Integration tests for patient, child and medical record endpoints.

Tests:
- Patient creation, validation and camelCase wire format
- Patient listing with status and interaction counts
- Child registration under a patient
- Child medical record (medications, allergies, problem list)
"""

import pytest
import sys
import os

# Add backend to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from fixtures.mock_data import child_payload, interaction_payload, patient_payload, review_payload


def create_patient(client, index=0, **overrides):
    response = client.post("/api/patients", json=patient_payload(index, **overrides))
    assert response.status_code == 201
    return response.json()


def create_child(client, patient_id, index=0, **overrides):
    response = client.post("/api/children", json=child_payload(patient_id, index, **overrides))
    assert response.status_code == 201
    return response.json()


class TestCreatePatient:
    """Tests for POST /api/patients."""

    def test_create_patient(self, client):
        response = client.post("/api/patients", json={
            "name": "Sarah Johnson",
            "email": "sarah.johnson@email.com",
            "phone": "(555) 123-4567",
            "preferredPharmacy": "CVS Pharmacy - Main St",
        })

        assert response.status_code == 201
        data = response.json()
        assert data["id"]
        assert data["name"] == "Sarah Johnson"
        assert data["preferredPharmacy"] == "CVS Pharmacy - Main St"
        assert "createdAt" in data
        assert "created_at" not in data

    def test_invalid_email(self, client):
        response = client.post("/api/patients", json=patient_payload(email="not-an-email"))

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid request data"}

    def test_missing_name(self, client):
        response = client.post("/api/patients", json={"email": "a@example.com"})

        assert response.status_code == 400

    def test_duplicate_email(self, client):
        create_patient(client, 1)

        response = client.post("/api/patients", json=patient_payload(2, email="parent1@example.com"))

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid patient data"}

    def test_round_trip(self, client):
        created = create_patient(client, 3)

        response = client.get(f"/api/patients/{created['id']}")

        assert response.status_code == 200
        fetched = response.json()
        for key in ("id", "name", "email", "phone", "createdAt"):
            assert fetched[key] == created[key]
        assert fetched["children"] == []


class TestGetPatient:
    """Tests for GET /api/patients/{id}."""

    def test_unknown_patient(self, client):
        response = client.get("/api/patients/does-not-exist")

        assert response.status_code == 404
        assert response.json() == {"error": "Patient not found"}

    def test_children_included(self, client):
        patient = create_patient(client)
        child = create_child(client, patient["id"])

        data = client.get(f"/api/patients/{patient['id']}").json()

        assert [c["id"] for c in data["children"]] == [child["id"]]
        assert data["children"][0]["medicalRecordNumber"] == "MRN-000000"


class TestListPatients:
    """Tests for GET /api/patients."""

    def test_empty(self, client):
        response = client.get("/api/patients")

        assert response.status_code == 200
        assert response.json() == []

    def test_status_and_counts(self, client):
        patient = create_patient(client)
        child = create_child(client, patient["id"])
        first = client.post("/api/interactions", json=interaction_payload(child["id"], patient["id"], 0)).json()
        client.post("/api/interactions", json=interaction_payload(child["id"], patient["id"], 1))
        idle = create_patient(client, 1)

        listing = {p["id"]: p for p in client.get("/api/patients").json()}

        assert listing[patient["id"]]["interactionCount"] == 2
        assert listing[patient["id"]]["status"] == "review_pending"
        assert listing[patient["id"]]["lastReviewDate"] is None
        assert listing[idle["id"]]["interactionCount"] == 0
        assert listing[idle["id"]]["status"] == "active"

        client.post("/api/reviews", json=review_payload(first["id"], "needs_escalation"))

        listing = {p["id"]: p for p in client.get("/api/patients").json()}
        assert listing[patient["id"]]["status"] == "escalated"
        assert listing[patient["id"]]["lastReviewDate"] is not None

    def test_reads_are_repeatable(self, client):
        patient = create_patient(client)
        create_child(client, patient["id"])

        assert client.get("/api/patients").json() == client.get("/api/patients").json()


class TestChildren:
    """Tests for POST /api/children."""

    def test_create_child(self, client):
        patient = create_patient(client)

        response = client.post("/api/children", json=child_payload(patient["id"], currentWeight=42.5))

        assert response.status_code == 201
        data = response.json()
        assert data["patientId"] == patient["id"]
        assert data["dateOfBirth"] == "2018-05-15"
        assert data["currentWeight"] == 42.5

    def test_unknown_patient(self, client):
        response = client.post("/api/children", json=child_payload("missing"))

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid child data"}

    def test_duplicate_medical_record_number(self, client):
        patient = create_patient(client)
        create_child(client, patient["id"], 0)

        response = client.post("/api/children", json=child_payload(patient["id"], 1,
                                                                   medicalRecordNumber="MRN-000000"))

        assert response.status_code == 400

    def test_invalid_date_of_birth(self, client):
        patient = create_patient(client)

        response = client.post("/api/children", json=child_payload(patient["id"], dateOfBirth="yesterday"))

        assert response.status_code == 400


class TestMedicalRecord:
    """Tests for the child medical record endpoints."""

    @pytest.fixture
    def child(self, client):
        patient = create_patient(client)
        return create_child(client, patient["id"])

    def test_unknown_child(self, client):
        response = client.get("/api/children/missing/medical")

        assert response.status_code == 404
        assert response.json() == {"error": "Child not found"}

    def test_empty_record(self, client, child):
        response = client.get(f"/api/children/{child['id']}/medical")

        assert response.status_code == 200
        assert response.json() == {"medications": [], "allergies": [], "problemList": []}

    def test_add_and_read_back(self, client, child):
        med = client.post(f"/api/children/{child['id']}/medications", json={
            "name": "Albuterol inhaler", "dosage": "2 puffs", "frequency": "as needed", "startDate": "2024-01-10",
        })
        allergy = client.post(f"/api/children/{child['id']}/allergies", json={
            "allergen": "Peanuts", "reaction": "Hives and swelling", "severity": "severe",
        })
        problem = client.post(f"/api/children/{child['id']}/problems", json={
            "condition": "Asthma", "icd10Code": "J45.909", "status": "chronic",
        })

        assert med.status_code == 201
        assert med.json()["active"] is True
        assert allergy.status_code == 201
        assert problem.status_code == 201
        assert problem.json()["icd10Code"] == "J45.909"

        data = client.get(f"/api/children/{child['id']}/medical").json()
        assert [m["name"] for m in data["medications"]] == ["Albuterol inhaler"]
        assert [a["allergen"] for a in data["allergies"]] == ["Peanuts"]
        assert [p["condition"] for p in data["problemList"]] == ["Asthma"]

    def test_medication_for_unknown_child(self, client):
        response = client.post("/api/children/missing/medications", json={
            "name": "Cetirizine", "dosage": "5mg", "frequency": "once daily",
        })

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid medication data"}

    def test_medication_dates_out_of_order(self, client, child):
        response = client.post(f"/api/children/{child['id']}/medications", json={
            "name": "Amoxicillin", "dosage": "250mg", "frequency": "twice daily",
            "startDate": "2024-03-10", "endDate": "2024-03-01",
        })

        assert response.status_code == 400

    def test_problem_with_unknown_status(self, client, child):
        response = client.post(f"/api/children/{child['id']}/problems", json={
            "condition": "Asthma", "status": "dormant",
        })

        assert response.status_code == 400
