"""
Unit tests for the EntityStore.

Tests:
- Create/fetch round trips and server-assigned fields
- Referential checks (missing parents, patient/child ownership)
- Uniqueness rules (patient email, child MRN)
- Ordering of reviews, messages and medical records
- Escalation status transitions and message read tracking
"""

import logging
import pytest
from datetime import date, datetime, timedelta
import sys
import os

# Add backend to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from sqlalchemy.exc import OperationalError

from database import AiInteraction, Base, Message
from exceptions import NotFoundError, PersistenceError, ValidationError
from storage import describe_db_error
from fixtures.mock_data import BASE_TIME, create_family, create_interaction


class TestPatients:
    """Tests for patient rows."""

    def test_create_then_get_returns_same_fields(self, store):
        patient = store.create_patient(
            name="Sarah Johnson",
            email="sarah.johnson@email.com",
            phone="(555) 123-4567",
            preferred_pharmacy="CVS Pharmacy - Main St",
        )

        fetched = store.get_patient(patient.id)

        assert fetched is not None
        assert fetched.id == patient.id
        assert fetched.name == "Sarah Johnson"
        assert fetched.email == "sarah.johnson@email.com"
        assert fetched.phone == "(555) 123-4567"
        assert fetched.preferred_pharmacy == "CVS Pharmacy - Main St"
        assert fetched.created_at is not None

    def test_ids_are_unique(self, store):
        first = store.create_patient(name="A", email="a@example.com")
        second = store.create_patient(name="B", email="b@example.com")

        assert first.id != second.id

    def test_unknown_patient_is_none(self, store):
        assert store.get_patient("does-not-exist") is None

    def test_duplicate_email_rejected(self, store):
        store.create_patient(name="A", email="same@example.com")

        with pytest.raises(ValidationError):
            store.create_patient(name="B", email="same@example.com")

        assert store.count_patients() == 1

    def test_get_all_patients_newest_first(self, store):
        older = store.create_patient(name="Old", email="old@example.com", created_at=BASE_TIME)
        newer = store.create_patient(name="New", email="new@example.com",
                                     created_at=BASE_TIME + timedelta(days=1))

        assert [p.id for p in store.get_all_patients()] == [newer.id, older.id]


class TestChildren:
    """Tests for child rows."""

    def test_child_requires_existing_patient(self, store):
        with pytest.raises(ValidationError):
            store.create_child(
                patient_id="missing",
                name="Emma",
                date_of_birth=date(2018, 5, 15),
                medical_record_number="MRN-1",
            )

    def test_duplicate_medical_record_number_rejected(self, store, sample_patient, sample_child):
        with pytest.raises(ValidationError):
            store.create_child(
                patient_id=sample_patient.id,
                name="Twin",
                date_of_birth=date(2018, 5, 15),
                medical_record_number=sample_child.medical_record_number,
            )

    def test_children_by_patient(self, store, sample_patient, sample_child):
        sibling = store.create_child(
            patient_id=sample_patient.id,
            name="Oliver",
            date_of_birth=date(2020, 9, 22),
            medical_record_number="MRN-SIBLING",
            created_at=sample_child.created_at + timedelta(hours=1),
        )

        children = store.get_children_by_patient(sample_patient.id)

        assert [c.id for c in children] == [sample_child.id, sibling.id]


class TestMedicalRecord:
    """Tests for medications, allergies and the problem list."""

    def test_medication_end_before_start_rejected(self, store, sample_child):
        with pytest.raises(ValidationError):
            store.create_medication(
                child_id=sample_child.id,
                name="Amoxicillin",
                dosage="250mg",
                frequency="twice daily",
                start_date=date(2024, 3, 10),
                end_date=date(2024, 3, 1),
            )

    def test_medication_for_missing_child_rejected(self, store):
        with pytest.raises(ValidationError):
            store.create_medication(child_id="missing", name="Cetirizine", dosage="5mg", frequency="once daily")

    def test_medications_newest_first(self, store, sample_child):
        first = store.create_medication(child_id=sample_child.id, name="Cetirizine", dosage="5mg",
                                        frequency="once daily", created_at=BASE_TIME)
        second = store.create_medication(child_id=sample_child.id, name="Ibuprofen", dosage="100mg",
                                         frequency="every 6 hours as needed",
                                         created_at=BASE_TIME + timedelta(days=1))

        assert [m.id for m in store.get_medications_by_child(sample_child.id)] == [second.id, first.id]

    def test_allergy_round_trip(self, store, sample_child):
        allergy = store.create_allergy(child_id=sample_child.id, allergen="Peanuts",
                                       reaction="Hives and swelling", severity="severe")

        allergies = store.get_allergies_by_child(sample_child.id)

        assert len(allergies) == 1
        assert allergies[0].id == allergy.id
        assert allergies[0].severity == "severe"

    def test_problem_status_defaults_to_active(self, store, sample_child):
        problem = store.create_problem(child_id=sample_child.id, condition="Asthma", icd10_code="J45.909")

        assert problem.status == "active"

    def test_problem_unknown_status_rejected(self, store, sample_child):
        with pytest.raises(ValidationError):
            store.create_problem(child_id=sample_child.id, condition="Asthma", status="dormant")


class TestInteractions:
    """Tests for AI interaction rows."""

    def test_queued_at_defaults_to_created_at(self, store, sample_patient, sample_child):
        interaction = create_interaction(store, sample_patient, sample_child, created_at=BASE_TIME)

        assert interaction.queued_at == BASE_TIME
        assert interaction.urgency_level == "routine"
        assert interaction.reviewed_at is None

    def test_missing_child_rejected(self, store, sample_patient):
        with pytest.raises(ValidationError):
            store.create_interaction(child_id="missing", patient_id=sample_patient.id,
                                     parent_concern="Fever", ai_response="Monitor")

    def test_patient_must_own_child(self, store, test_db, sample_child):
        other_patient, _ = create_family(store, index=2)

        with pytest.raises(ValidationError):
            store.create_interaction(child_id=sample_child.id, patient_id=other_patient.id,
                                     parent_concern="Fever", ai_response="Monitor")

        assert test_db.query(AiInteraction).count() == 0

    def test_unknown_urgency_rejected(self, store, sample_patient, sample_child):
        with pytest.raises(ValidationError):
            create_interaction(store, sample_patient, sample_child, urgency_level="whenever")


class TestReviews:
    """Tests for provider review rows."""

    def test_review_for_missing_interaction_rejected(self, store):
        with pytest.raises(ValidationError):
            store.create_review(interaction_id="missing", provider_name="Dr. House", review_decision="agree")

    def test_unknown_decision_rejected(self, store, sample_interaction):
        with pytest.raises(ValidationError):
            store.create_review(interaction_id=sample_interaction.id, provider_name="Dr. House",
                                review_decision="maybe")

    def test_provider_name_required(self, store, sample_interaction):
        with pytest.raises(ValidationError):
            store.create_review(interaction_id=sample_interaction.id, provider_name="", review_decision="agree")

    def test_reviews_newest_first(self, store, sample_interaction):
        first = store.create_review(interaction_id=sample_interaction.id, provider_name="Dr. A",
                                    review_decision="agree", created_at=BASE_TIME + timedelta(minutes=10))
        second = store.create_review(interaction_id=sample_interaction.id, provider_name="Dr. B",
                                     review_decision="disagree", created_at=BASE_TIME + timedelta(minutes=40))

        reviews = store.get_reviews_by_interaction(sample_interaction.id)

        assert [r.id for r in reviews] == [second.id, first.id]

    def test_first_review_marks_interaction_reviewed(self, store, sample_interaction):
        first = store.create_review(interaction_id=sample_interaction.id, provider_name="Dr. A",
                                    review_decision="agree", created_at=BASE_TIME + timedelta(minutes=10))
        store.create_review(interaction_id=sample_interaction.id, provider_name="Dr. B",
                            review_decision="disagree", created_at=BASE_TIME + timedelta(minutes=40))

        interaction = store.get_interaction(sample_interaction.id)

        assert interaction.reviewed_at == first.created_at


class TestEscalations:
    """Tests for escalation rows and status transitions."""

    def test_defaults(self, sample_escalation):
        assert sample_escalation.status == "pending"
        assert sample_escalation.resolved_at is None

    def test_escalation_for_missing_interaction_rejected(self, store):
        with pytest.raises(ValidationError):
            store.create_escalation(interaction_id="missing", initiated_by="provider")

    def test_partial_update_keeps_other_fields(self, store, sample_escalation):
        updated = store.update_escalation(sample_escalation.id, {"status": "texting"})

        assert updated.status == "texting"
        assert updated.severity == "urgent"
        assert updated.reason == "Breathing difficulty"
        assert updated.resolved_at is None

    def test_resolving_stamps_resolved_at(self, store, sample_escalation):
        resolved_time = BASE_TIME + timedelta(hours=2)

        updated = store.update_escalation(sample_escalation.id, {"status": "resolved"}, now=resolved_time)

        assert updated.status == "resolved"
        assert updated.resolved_at == resolved_time

    def test_resolved_cannot_be_reopened(self, store, sample_escalation):
        store.update_escalation(sample_escalation.id, {"status": "resolved"})

        with pytest.raises(ValidationError):
            store.update_escalation(sample_escalation.id, {"status": "texting"})

        assert store.get_escalation(sample_escalation.id).status == "resolved"

    def test_resolved_escalation_accepts_notes(self, store, sample_escalation):
        store.update_escalation(sample_escalation.id, {"status": "resolved"})

        updated = store.update_escalation(sample_escalation.id, {"reason": "Seen in clinic"})

        assert updated.status == "resolved"
        assert updated.reason == "Seen in clinic"

    def test_unknown_escalation_not_found(self, store):
        with pytest.raises(NotFoundError):
            store.update_escalation("missing", {"status": "texting"})

    def test_non_updatable_field_rejected(self, store, sample_escalation):
        with pytest.raises(ValidationError):
            store.update_escalation(sample_escalation.id, {"interaction_id": "other"})

    def test_unknown_status_rejected(self, store, sample_escalation):
        with pytest.raises(ValidationError):
            store.update_escalation(sample_escalation.id, {"status": "closed"})


class TestMessages:
    """Tests for escalation message threads."""

    def test_thread_is_oldest_first(self, store, sample_patient, sample_escalation):
        later = store.create_message(escalation_id=sample_escalation.id, sender_id="provider-1",
                                     sender_type="provider", content="Please come in",
                                     created_at=BASE_TIME + timedelta(minutes=10))
        earlier = store.create_message(escalation_id=sample_escalation.id, sender_id=sample_patient.id,
                                       sender_type="parent", content="Should I bring her in?",
                                       created_at=BASE_TIME + timedelta(minutes=5))

        thread = store.get_messages_by_escalation(sample_escalation.id)

        assert [m.id for m in thread] == [earlier.id, later.id]

    def test_read_state_by_sender(self, store, sample_patient, sample_escalation):
        parent_msg = store.create_message(escalation_id=sample_escalation.id, sender_id=sample_patient.id,
                                          sender_type="parent", content="Hello")
        provider_msg = store.create_message(escalation_id=sample_escalation.id, sender_id="provider-1",
                                            sender_type="provider", content="Hi")

        assert parent_msg.is_read is False
        assert provider_msg.is_read is True

    def test_message_requires_sender(self, store, sample_escalation):
        with pytest.raises(ValidationError):
            store.create_message(escalation_id=sample_escalation.id, sender_id="", sender_type="parent",
                                 content="Hello")

    def test_message_for_missing_escalation_rejected(self, store):
        with pytest.raises(ValidationError):
            store.create_message(escalation_id="missing", sender_id="p", sender_type="parent", content="Hello")

    def test_mark_read(self, store, test_db, sample_patient, sample_escalation):
        for text in ("First", "Second"):
            store.create_message(escalation_id=sample_escalation.id, sender_id=sample_patient.id,
                                 sender_type="parent", content=text)

        assert store.mark_escalation_messages_read(sample_escalation.id) == 2
        assert store.mark_escalation_messages_read(sample_escalation.id) == 0
        assert test_db.query(Message).filter(Message.is_read.is_(False)).count() == 0

    def test_mark_read_unknown_escalation(self, store):
        with pytest.raises(NotFoundError):
            store.mark_escalation_messages_read("missing")


class TestDatabaseErrors:
    """Tests for driver failures surfacing as PersistenceError."""

    def test_failed_write_keeps_patient_data_out_of_logs(self, store, test_engine, caplog):
        Base.metadata.tables["patients"].drop(bind=test_engine)

        with caplog.at_level(logging.ERROR):
            with pytest.raises(PersistenceError):
                store.create_patient(name="Sarah Secret", email="sarah.secret@example.com")

        db_errors = [record for record in caplog.records if record.name == "db"]
        assert db_errors
        assert all("sarah.secret@example.com" not in str(record.__dict__) for record in caplog.records)

    def test_error_description_has_no_parameters(self):
        orig = Exception("no such table: patients")
        error = OperationalError("INSERT INTO patients (email) VALUES (?)", ("sarah@example.com",), orig)

        described = describe_db_error(error)

        assert described == "OperationalError: Exception: no such table: patients"
        assert "sarah@example.com" not in described
