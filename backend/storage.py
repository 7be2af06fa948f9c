"""
Entity Store

Create and fetch rows for patients, children, the child medical record,
AI interactions, provider reviews, escalations and escalation messages.

The store owns referential checks (a child's patient must exist, an
interaction's patient must own its child, ...) so behaviour does not depend
on whether the underlying database enforces foreign keys. Cross-entity read
views live in details.py; derived numbers live in aggregates.py.
"""

import time
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from database import (
    Patient,
    Child,
    Medication,
    Allergy,
    ProblemListItem,
    AiInteraction,
    ProviderReview,
    Escalation,
    Message,
    REVIEW_DECISIONS,
    URGENCY_LEVELS,
    ESCALATION_STATUSES,
    RESOLVED_STATUS,
    SENDER_TYPES,
    PROBLEM_STATUSES,
    utcnow,
)
from exceptions import ValidationError, NotFoundError, PersistenceError
from structured_logging import get_logger, log_database_query

logger = get_logger(__name__)

# Fields a PATCH may change on an escalation
ESCALATION_UPDATABLE_FIELDS = {"status", "severity", "reason"}


def describe_db_error(e: Exception) -> str:
    """Error type plus the driver's first message line; never the SQL or its bound values."""
    orig = getattr(e, "orig", None)
    if orig is None:
        return type(e).__name__
    detail = str(orig).splitlines()[0] if str(orig) else ""
    return f"{type(e).__name__}: {type(orig).__name__}: {detail}".rstrip(": ")


class EntityStore:
    """CRUD access to every table, bound to one session."""

    def __init__(self, db: Session):
        self.db = db

    # =========================================================================
    # INTERNAL HELPERS
    # =========================================================================

    def _persist(self, row, table: str, operation: str = "insert"):
        """Commit one row and return it refreshed."""
        start_time = time.time()
        try:
            self.db.add(row)
            self.db.commit()
            self.db.refresh(row)
        except IntegrityError as e:
            self.db.rollback()
            log_database_query(operation, table, (time.time() - start_time) * 1000, error=describe_db_error(e))
            raise ValidationError(f"{table} violates a uniqueness or reference constraint",
                                  entity=table, operation=operation) from e
        except SQLAlchemyError as e:
            self.db.rollback()
            log_database_query(operation, table, (time.time() - start_time) * 1000, error=describe_db_error(e))
            raise PersistenceError(f"Failed to {operation} {table}", entity=table, operation=operation) from e

        log_database_query(operation, table, (time.time() - start_time) * 1000, rows_affected=1)
        return row

    def _fetch(self, query, table: str, operation: str = "select"):
        """Run a query, turning driver failures into PersistenceError."""
        try:
            return query()
        except SQLAlchemyError as e:
            self.db.rollback()
            log_database_query(operation, table, 0, error=describe_db_error(e))
            raise PersistenceError(f"Failed to read {table}", entity=table, operation=operation) from e

    def _get(self, model, row_id: str, table: str):
        return self._fetch(lambda: self.db.get(model, row_id), table)

    @staticmethod
    def _check_choice(value: Optional[str], allowed, field: str, entity: str, operation: str):
        if value is not None and value not in allowed:
            raise ValidationError(f"{field} must be one of {', '.join(allowed)}",
                                  entity=entity, operation=operation)

    # =========================================================================
    # PATIENTS
    # =========================================================================

    def create_patient(self, name: str, email: str, phone: str = None,
                       preferred_pharmacy: str = None, created_at: datetime = None) -> Patient:
        existing = self._fetch(
            lambda: self.db.query(Patient.id).filter(Patient.email == email).first(), "patients"
        )
        if existing:
            raise ValidationError("A patient with this email already exists",
                                  entity="patients", operation="create")

        patient = Patient(
            name=name,
            email=email,
            phone=phone,
            preferred_pharmacy=preferred_pharmacy,
            created_at=created_at or utcnow(),
        )
        return self._persist(patient, "patients")

    def get_patient(self, patient_id: str) -> Optional[Patient]:
        return self._get(Patient, patient_id, "patients")

    def get_all_patients(self) -> List[Patient]:
        return self._fetch(
            lambda: self.db.query(Patient).order_by(Patient.created_at.desc()).all(), "patients"
        )

    def count_patients(self) -> int:
        return self._fetch(lambda: self.db.query(func.count(Patient.id)).scalar() or 0, "patients")

    # =========================================================================
    # CHILDREN
    # =========================================================================

    def create_child(self, patient_id: str, name: str, date_of_birth, medical_record_number: str,
                     current_weight: float = None, created_at: datetime = None) -> Child:
        if self.get_patient(patient_id) is None:
            raise ValidationError(f"Patient {patient_id} does not exist",
                                  entity="children", operation="create")

        existing = self._fetch(
            lambda: self.db.query(Child.id).filter(
                Child.medical_record_number == medical_record_number
            ).first(),
            "children",
        )
        if existing:
            raise ValidationError("A child with this medical record number already exists",
                                  entity="children", operation="create")

        child = Child(
            patient_id=patient_id,
            name=name,
            date_of_birth=date_of_birth,
            medical_record_number=medical_record_number,
            current_weight=current_weight,
            created_at=created_at or utcnow(),
        )
        return self._persist(child, "children")

    def get_child(self, child_id: str) -> Optional[Child]:
        return self._get(Child, child_id, "children")

    def get_children_by_patient(self, patient_id: str) -> List[Child]:
        return self._fetch(
            lambda: self.db.query(Child)
            .filter(Child.patient_id == patient_id)
            .order_by(Child.created_at)
            .all(),
            "children",
        )

    # =========================================================================
    # CHILD MEDICAL RECORD
    # =========================================================================

    def _require_child(self, child_id: str, table: str):
        if self.get_child(child_id) is None:
            raise ValidationError(f"Child {child_id} does not exist", entity=table, operation="create")

    def create_medication(self, child_id: str, name: str, dosage: str, frequency: str,
                          start_date=None, end_date=None, active: bool = True,
                          created_at: datetime = None) -> Medication:
        self._require_child(child_id, "medications")
        if start_date and end_date and end_date < start_date:
            raise ValidationError("Medication end date precedes start date",
                                  entity="medications", operation="create")

        medication = Medication(
            child_id=child_id,
            name=name,
            dosage=dosage,
            frequency=frequency,
            start_date=start_date,
            end_date=end_date,
            active=active,
            created_at=created_at or utcnow(),
        )
        return self._persist(medication, "medications")

    def get_medications_by_child(self, child_id: str) -> List[Medication]:
        return self._fetch(
            lambda: self.db.query(Medication)
            .filter(Medication.child_id == child_id)
            .order_by(Medication.created_at.desc())
            .all(),
            "medications",
        )

    def create_allergy(self, child_id: str, allergen: str, reaction: str, severity: str = None,
                       created_at: datetime = None) -> Allergy:
        self._require_child(child_id, "allergies")

        allergy = Allergy(
            child_id=child_id,
            allergen=allergen,
            reaction=reaction,
            severity=severity,
            created_at=created_at or utcnow(),
        )
        return self._persist(allergy, "allergies")

    def get_allergies_by_child(self, child_id: str) -> List[Allergy]:
        return self._fetch(
            lambda: self.db.query(Allergy)
            .filter(Allergy.child_id == child_id)
            .order_by(Allergy.created_at.desc())
            .all(),
            "allergies",
        )

    def create_problem(self, child_id: str, condition: str, icd10_code: str = None,
                       status: str = "active", onset_date=None,
                       created_at: datetime = None) -> ProblemListItem:
        self._require_child(child_id, "problem_list")
        self._check_choice(status, PROBLEM_STATUSES, "status", "problem_list", "create")

        problem = ProblemListItem(
            child_id=child_id,
            condition=condition,
            icd10_code=icd10_code,
            status=status,
            onset_date=onset_date,
            created_at=created_at or utcnow(),
        )
        return self._persist(problem, "problem_list")

    def get_problem_list_by_child(self, child_id: str) -> List[ProblemListItem]:
        return self._fetch(
            lambda: self.db.query(ProblemListItem)
            .filter(ProblemListItem.child_id == child_id)
            .order_by(ProblemListItem.created_at.desc())
            .all(),
            "problem_list",
        )

    # =========================================================================
    # AI INTERACTIONS
    # =========================================================================

    def create_interaction(self, child_id: str, patient_id: str, parent_concern: str, ai_response: str,
                           ai_summary: str = None, urgency_level: str = "routine",
                           clara_recommendations: str = None, conversation_context: str = None,
                           queued_at: datetime = None, reviewed_at: datetime = None,
                           created_at: datetime = None) -> AiInteraction:
        self._check_choice(urgency_level, URGENCY_LEVELS, "urgency_level", "ai_interactions", "create")

        child = self.get_child(child_id)
        if child is None:
            raise ValidationError(f"Child {child_id} does not exist",
                                  entity="ai_interactions", operation="create")
        if self.get_patient(patient_id) is None:
            raise ValidationError(f"Patient {patient_id} does not exist",
                                  entity="ai_interactions", operation="create")
        if child.patient_id != patient_id:
            raise ValidationError("Interaction patient does not own the child",
                                  entity="ai_interactions", operation="create")

        created_at = created_at or utcnow()
        interaction = AiInteraction(
            child_id=child_id,
            patient_id=patient_id,
            parent_concern=parent_concern,
            ai_response=ai_response,
            ai_summary=ai_summary,
            urgency_level=urgency_level,
            clara_recommendations=clara_recommendations,
            conversation_context=conversation_context,
            queued_at=queued_at or created_at,
            reviewed_at=reviewed_at,
            created_at=created_at,
        )
        return self._persist(interaction, "ai_interactions")

    def get_interaction(self, interaction_id: str) -> Optional[AiInteraction]:
        return self._get(AiInteraction, interaction_id, "ai_interactions")

    # =========================================================================
    # PROVIDER REVIEWS
    # =========================================================================

    def create_review(self, interaction_id: str, provider_name: str, review_decision: str,
                      provider_notes: str = None, icd10_code: str = None,
                      created_at: datetime = None) -> ProviderReview:
        """Store a provider's decision. provider_name identifies the reviewing provider."""
        self._check_choice(review_decision, REVIEW_DECISIONS, "review_decision", "provider_reviews", "create")
        if not provider_name:
            raise ValidationError("A provider identity is required to review",
                                  entity="provider_reviews", operation="create")
        interaction = self.get_interaction(interaction_id)
        if interaction is None:
            raise ValidationError(f"Interaction {interaction_id} does not exist",
                                  entity="provider_reviews", operation="create")

        review = ProviderReview(
            interaction_id=interaction_id,
            provider_name=provider_name,
            review_decision=review_decision,
            provider_notes=provider_notes,
            icd10_code=icd10_code,
            created_at=created_at or utcnow(),
        )
        # First review marks the interaction reviewed; committed with the review
        if interaction.reviewed_at is None:
            interaction.reviewed_at = review.created_at
        review = self._persist(review, "provider_reviews")
        logger.info(
            "Provider review stored",
            extra={"interaction_id": interaction_id, "review_decision": review_decision},
        )
        return review

    def get_review(self, review_id: str) -> Optional[ProviderReview]:
        return self._get(ProviderReview, review_id, "provider_reviews")

    def get_reviews_by_interaction(self, interaction_id: str) -> List[ProviderReview]:
        return self._fetch(
            lambda: self.db.query(ProviderReview)
            .filter(ProviderReview.interaction_id == interaction_id)
            .order_by(ProviderReview.created_at.desc())
            .all(),
            "provider_reviews",
        )

    # =========================================================================
    # ESCALATIONS
    # =========================================================================

    def create_escalation(self, interaction_id: str, initiated_by: str, status: str = "pending",
                          severity: str = None, reason: str = None,
                          created_at: datetime = None) -> Escalation:
        self._check_choice(status, ESCALATION_STATUSES, "status", "escalations", "create")
        self._check_choice(severity, URGENCY_LEVELS, "severity", "escalations", "create")
        if self.get_interaction(interaction_id) is None:
            raise ValidationError(f"Interaction {interaction_id} does not exist",
                                  entity="escalations", operation="create")

        created_at = created_at or utcnow()
        escalation = Escalation(
            interaction_id=interaction_id,
            initiated_by=initiated_by,
            status=status,
            severity=severity,
            reason=reason,
            resolved_at=created_at if status == RESOLVED_STATUS else None,
            created_at=created_at,
        )
        escalation = self._persist(escalation, "escalations")
        logger.info(
            "Escalation opened",
            extra={"escalation_id": escalation.id, "interaction_id": interaction_id, "severity": severity},
        )
        return escalation

    def get_escalation(self, escalation_id: str) -> Optional[Escalation]:
        return self._get(Escalation, escalation_id, "escalations")

    def update_escalation(self, escalation_id: str, fields: Dict[str, Any],
                          now: datetime = None) -> Escalation:
        """
        Apply a partial update to an escalation.

        Moving to "resolved" stamps resolved_at. A resolved escalation cannot
        move to any other status.
        """
        escalation = self.get_escalation(escalation_id)
        if escalation is None:
            raise NotFoundError(f"Escalation {escalation_id} not found",
                                entity="escalations", operation="update")

        unknown = set(fields) - ESCALATION_UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"Cannot update fields: {', '.join(sorted(unknown))}",
                                  entity="escalations", operation="update")

        new_status = fields.get("status")
        self._check_choice(new_status, ESCALATION_STATUSES, "status", "escalations", "update")
        self._check_choice(fields.get("severity"), URGENCY_LEVELS, "severity", "escalations", "update")

        if new_status is not None and new_status != escalation.status:
            if escalation.status == RESOLVED_STATUS:
                raise ValidationError("Resolved escalations cannot be reopened",
                                      entity="escalations", operation="update")
            escalation.status = new_status
            if new_status == RESOLVED_STATUS:
                escalation.resolved_at = now or utcnow()

        if "severity" in fields:
            escalation.severity = fields["severity"]
        if "reason" in fields:
            escalation.reason = fields["reason"]

        escalation = self._persist(escalation, "escalations", operation="update")
        logger.info(
            "Escalation updated",
            extra={"escalation_id": escalation_id, "status": escalation.status},
        )
        return escalation

    # =========================================================================
    # MESSAGES
    # =========================================================================

    def create_message(self, escalation_id: str, sender_id: str, sender_type: str, content: str,
                       created_at: datetime = None) -> Message:
        """Append a message to an escalation thread. sender_id identifies the author."""
        self._check_choice(sender_type, SENDER_TYPES, "sender_type", "messages", "create")
        if not sender_id:
            raise ValidationError("A sender identity is required", entity="messages", operation="create")
        if self.get_escalation(escalation_id) is None:
            raise ValidationError(f"Escalation {escalation_id} does not exist",
                                  entity="messages", operation="create")

        message = Message(
            escalation_id=escalation_id,
            sender_id=sender_id,
            sender_type=sender_type,
            content=content,
            # A provider has read what they wrote
            is_read=sender_type == "provider",
            created_at=created_at or utcnow(),
        )
        return self._persist(message, "messages")

    def get_message(self, message_id: str) -> Optional[Message]:
        return self._get(Message, message_id, "messages")

    def get_messages_by_escalation(self, escalation_id: str) -> List[Message]:
        return self._fetch(
            lambda: self.db.query(Message)
            .filter(Message.escalation_id == escalation_id)
            .order_by(Message.created_at)
            .all(),
            "messages",
        )

    def get_all_messages(self) -> List[Message]:
        return self._fetch(lambda: self.db.query(Message).order_by(Message.created_at).all(), "messages")

    def mark_escalation_messages_read(self, escalation_id: str) -> int:
        """Mark every parent message of an escalation as read; returns how many changed."""
        if self.get_escalation(escalation_id) is None:
            raise NotFoundError(f"Escalation {escalation_id} not found",
                                entity="messages", operation="mark_read")

        start_time = time.time()
        try:
            updated = (
                self.db.query(Message)
                .filter(
                    Message.escalation_id == escalation_id,
                    Message.sender_type == "parent",
                    Message.is_read.is_(False),
                )
                .update({Message.is_read: True}, synchronize_session=False)
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            log_database_query("update", "messages", (time.time() - start_time) * 1000, error=describe_db_error(e))
            raise PersistenceError("Failed to mark messages read", entity="messages",
                                   operation="mark_read") from e

        log_database_query("update", "messages", (time.time() - start_time) * 1000, rows_affected=updated)
        return updated
