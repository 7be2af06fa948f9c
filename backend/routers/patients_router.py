"""
Patients Router - Families, children and the child medical record

Handles:
- Patient (parent/guardian) registration and listing with review status
- Child registration under a patient
- Medications, allergies and problem list of a child
"""

from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from aggregates import summarize_patients
from database import get_db
from dependencies import get_store
from details import get_all_interactions_with_details, get_child_medical_data, get_patients_with_children, \
    get_patient_with_children
from exceptions import ValidationError
from models import (
    AllergyCreate,
    AllergyResponse,
    ChildCreate,
    ChildMedicalData,
    ChildResponse,
    MedicationCreate,
    MedicationResponse,
    PatientCreate,
    PatientResponse,
    PatientSummary,
    PatientWithChildren,
    ProblemCreate,
    ProblemResponse,
)
from storage import EntityStore
from structured_logging import get_logger

router = APIRouter(tags=["Patients"])
logger = get_logger(__name__)


# =============================================================================
# PATIENTS
# =============================================================================

@router.get("/api/patients", response_model=List[PatientSummary])
def list_patients(db: Session = Depends(get_db)):
    """
    Every patient with children, interaction count, last review date and a
    status of escalated / review_pending / active.
    """
    try:
        patients = get_patients_with_children(db)
        interactions = get_all_interactions_with_details(db)
        return summarize_patients(patients, interactions)
    except Exception as e:
        logger.error("Error fetching patients", extra={"entity": "patients", "error_type": type(e).__name__},
                     exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch patients")


@router.get("/api/patients/{patient_id}", response_model=PatientWithChildren)
def get_patient(patient_id: str, db: Session = Depends(get_db)):
    try:
        patient = get_patient_with_children(db, patient_id)
    except Exception as e:
        logger.error("Error fetching patient", extra={"patient_id": patient_id, "error_type": type(e).__name__},
                     exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch patient")

    if patient is None:
        raise HTTPException(status_code=404, detail="Patient not found")
    return patient


@router.post("/api/patients", response_model=PatientResponse, status_code=201)
def create_patient(payload: PatientCreate, store: EntityStore = Depends(get_store)):
    try:
        return store.create_patient(**payload.model_dump())
    except ValidationError as e:
        logger.warning("Rejected patient", extra=e.log_context())
        raise HTTPException(status_code=400, detail="Invalid patient data")
    except Exception as e:
        logger.error("Error creating patient", extra={"entity": "patients", "error_type": type(e).__name__},
                     exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to create patient")


# =============================================================================
# CHILDREN
# =============================================================================

@router.post("/api/children", response_model=ChildResponse, status_code=201)
def create_child(payload: ChildCreate, store: EntityStore = Depends(get_store)):
    try:
        return store.create_child(**payload.model_dump())
    except ValidationError as e:
        logger.warning("Rejected child", extra=e.log_context())
        raise HTTPException(status_code=400, detail="Invalid child data")
    except Exception as e:
        logger.error("Error creating child", extra={"entity": "children", "error_type": type(e).__name__},
                     exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to create child")


@router.get("/api/children/{child_id}/medical", response_model=ChildMedicalData)
def get_child_medical(child_id: str, db: Session = Depends(get_db)):
    """Medications, allergies and problem list of one child, each newest first."""
    try:
        if EntityStore(db).get_child(child_id) is None:
            raise HTTPException(status_code=404, detail="Child not found")
        return get_child_medical_data(db, child_id)
    except HTTPException:
        raise
    except Exception as e:
        logger.error("Error fetching child medical data",
                     extra={"child_id": child_id, "error_type": type(e).__name__}, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch medical data")


@router.post("/api/children/{child_id}/medications", response_model=MedicationResponse, status_code=201)
def add_medication(child_id: str, payload: MedicationCreate, store: EntityStore = Depends(get_store)):
    try:
        return store.create_medication(child_id=child_id, **payload.model_dump())
    except ValidationError as e:
        logger.warning("Rejected medication", extra=e.log_context())
        raise HTTPException(status_code=400, detail="Invalid medication data")
    except Exception as e:
        logger.error("Error creating medication", extra={"entity": "medications", "error_type": type(e).__name__},
                     exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to create medication")


@router.post("/api/children/{child_id}/allergies", response_model=AllergyResponse, status_code=201)
def add_allergy(child_id: str, payload: AllergyCreate, store: EntityStore = Depends(get_store)):
    try:
        return store.create_allergy(child_id=child_id, **payload.model_dump())
    except ValidationError as e:
        logger.warning("Rejected allergy", extra=e.log_context())
        raise HTTPException(status_code=400, detail="Invalid allergy data")
    except Exception as e:
        logger.error("Error creating allergy", extra={"entity": "allergies", "error_type": type(e).__name__},
                     exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to create allergy")


@router.post("/api/children/{child_id}/problems", response_model=ProblemResponse, status_code=201)
def add_problem(child_id: str, payload: ProblemCreate, store: EntityStore = Depends(get_store)):
    try:
        return store.create_problem(child_id=child_id, **payload.model_dump())
    except ValidationError as e:
        logger.warning("Rejected problem list item", extra=e.log_context())
        raise HTTPException(status_code=400, detail="Invalid problem list data")
    except Exception as e:
        logger.error("Error creating problem list item",
                     extra={"entity": "problem_list", "error_type": type(e).__name__}, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to create problem list item")
