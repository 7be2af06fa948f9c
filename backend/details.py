"""
Detail Joiner

Builds the denormalized read views served by the API:
- AiInteractionWithDetails: interaction + child + patient + reviews + escalations
- PatientWithChildren
- EscalationWithMessages: escalation + message thread + interaction detail
- ChildMedicalData: medications, allergies and problem list of one child

Related rows are loaded in batches with SQLAlchemy loader options
(one query per relationship, not one per parent row). A missing root
entity yields None; an interaction whose child or patient row is gone
raises DataIntegrityError.
"""

from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from database import AiInteraction, Escalation, Patient, RESOLVED_STATUS
from exceptions import DataIntegrityError, PersistenceError
from models import (
    AiInteractionWithDetails,
    AllergyResponse,
    ChildMedicalData,
    EscalationWithMessages,
    MedicationResponse,
    PatientWithChildren,
    ProblemResponse,
)
from storage import EntityStore
from structured_logging import get_logger

logger = get_logger(__name__)


def _interaction_loader():
    return (
        selectinload(AiInteraction.child),
        selectinload(AiInteraction.patient),
        selectinload(AiInteraction.reviews),
        selectinload(AiInteraction.escalations),
    )


def _check_integrity(interaction: AiInteraction):
    if interaction.child is None or interaction.patient is None:
        logger.error(
            "Interaction references a missing child or patient",
            extra={
                "interaction_id": interaction.id,
                "child_id": interaction.child_id,
                "patient_id": interaction.patient_id,
            },
        )
        raise DataIntegrityError(
            f"Missing child or patient for interaction {interaction.id}",
            entity="ai_interactions",
            operation="join",
        )


def _to_details(interactions: List[AiInteraction]) -> List[AiInteractionWithDetails]:
    views = []
    for interaction in interactions:
        _check_integrity(interaction)
        views.append(AiInteractionWithDetails.model_validate(interaction))
    return views


def _run(db: Session, query, entity: str):
    try:
        return query()
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceError(f"Failed to load {entity}", entity=entity, operation="join") from e


# =============================================================================
# INTERACTIONS
# =============================================================================

def get_interaction_with_details(db: Session, interaction_id: str) -> Optional[AiInteractionWithDetails]:
    interaction = _run(
        db,
        lambda: db.query(AiInteraction)
        .options(*_interaction_loader())
        .filter(AiInteraction.id == interaction_id)
        .first(),
        "ai_interactions",
    )
    if interaction is None:
        return None
    return _to_details([interaction])[0]


def get_all_interactions_with_details(db: Session) -> List[AiInteractionWithDetails]:
    """Every interaction, newest first."""
    interactions = _run(
        db,
        lambda: db.query(AiInteraction)
        .options(*_interaction_loader())
        .order_by(AiInteraction.created_at.desc())
        .all(),
        "ai_interactions",
    )
    return _to_details(interactions)


def get_interactions_by_patient(db: Session, patient_id: str) -> List[AiInteractionWithDetails]:
    interactions = _run(
        db,
        lambda: db.query(AiInteraction)
        .options(*_interaction_loader())
        .filter(AiInteraction.patient_id == patient_id)
        .order_by(AiInteraction.created_at.desc())
        .all(),
        "ai_interactions",
    )
    return _to_details(interactions)


def get_recent_interactions(db: Session, limit: int) -> List[AiInteractionWithDetails]:
    interactions = _run(
        db,
        lambda: db.query(AiInteraction)
        .options(*_interaction_loader())
        .order_by(AiInteraction.created_at.desc())
        .limit(limit)
        .all(),
        "ai_interactions",
    )
    return _to_details(interactions)


# =============================================================================
# PATIENTS
# =============================================================================

def get_patients_with_children(db: Session) -> List[PatientWithChildren]:
    patients = _run(
        db,
        lambda: db.query(Patient)
        .options(selectinload(Patient.children))
        .order_by(Patient.created_at.desc())
        .all(),
        "patients",
    )
    return [PatientWithChildren.model_validate(patient) for patient in patients]


def get_patient_with_children(db: Session, patient_id: str) -> Optional[PatientWithChildren]:
    patient = _run(
        db,
        lambda: db.query(Patient)
        .options(selectinload(Patient.children))
        .filter(Patient.id == patient_id)
        .first(),
        "patients",
    )
    if patient is None:
        return None
    return PatientWithChildren.model_validate(patient)


# =============================================================================
# ESCALATIONS
# =============================================================================

def _escalation_query(db: Session):
    return db.query(Escalation).options(
        selectinload(Escalation.messages),
        selectinload(Escalation.interaction).options(*_interaction_loader()),
    )


def _to_escalation_details(escalations: List[Escalation]) -> List[EscalationWithMessages]:
    views = []
    for escalation in escalations:
        if escalation.interaction is None:
            logger.error(
                "Escalation references a missing interaction",
                extra={"escalation_id": escalation.id, "interaction_id": escalation.interaction_id},
            )
            raise DataIntegrityError(
                f"Missing interaction for escalation {escalation.id}",
                entity="escalations",
                operation="join",
            )
        _check_integrity(escalation.interaction)
        views.append(EscalationWithMessages.model_validate(escalation))
    return views


def get_escalations_with_details(db: Session, active_only: bool = False) -> List[EscalationWithMessages]:
    """
    Escalations newest first, each with its message thread (oldest first)
    and the full interaction detail. active_only drops resolved escalations.
    """
    def query():
        q = _escalation_query(db)
        if active_only:
            q = q.filter(Escalation.status != RESOLVED_STATUS)
        return q.order_by(Escalation.created_at.desc()).all()

    return _to_escalation_details(_run(db, query, "escalations"))


def get_escalation_with_details(db: Session, escalation_id: str) -> Optional[EscalationWithMessages]:
    escalation = _run(
        db,
        lambda: _escalation_query(db).filter(Escalation.id == escalation_id).first(),
        "escalations",
    )
    if escalation is None:
        return None
    return _to_escalation_details([escalation])[0]


# =============================================================================
# CHILD MEDICAL RECORD
# =============================================================================

def get_child_medical_data(db: Session, child_id: str) -> ChildMedicalData:
    store = EntityStore(db)
    return ChildMedicalData(
        medications=[MedicationResponse.model_validate(m) for m in store.get_medications_by_child(child_id)],
        allergies=[AllergyResponse.model_validate(a) for a in store.get_allergies_by_child(child_id)],
        problem_list=[ProblemResponse.model_validate(p) for p in store.get_problem_list_by_child(child_id)],
    )
