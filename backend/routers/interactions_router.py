"""
Interactions Router - AI triage interactions and provider reviews

Every listing returns AiInteractionWithDetails views (child, patient,
reviews and escalations attached), newest first.
"""

from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from config import RECENT_INTERACTIONS_LIMIT
from database import get_db
from dependencies import ProviderIdentity, get_current_provider, get_store
from details import (
    get_all_interactions_with_details,
    get_interactions_by_patient,
    get_recent_interactions,
)
from exceptions import ValidationError
from models import InteractionCreate, InteractionResponse, ReviewCreate, ReviewResponse, AiInteractionWithDetails
from storage import EntityStore
from structured_logging import get_logger

router = APIRouter(tags=["Interactions"])
logger = get_logger(__name__)


@router.get("/api/interactions", response_model=List[AiInteractionWithDetails])
def list_interactions(db: Session = Depends(get_db)):
    try:
        return get_all_interactions_with_details(db)
    except Exception as e:
        logger.error("Error fetching interactions", extra={"entity": "ai_interactions",
                                                           "error_type": type(e).__name__}, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch interactions")


# Registered before /{patient_id} so "recent" is not read as a patient id
@router.get("/api/interactions/recent", response_model=List[AiInteractionWithDetails])
def list_recent_interactions(db: Session = Depends(get_db)):
    try:
        return get_recent_interactions(db, RECENT_INTERACTIONS_LIMIT)
    except Exception as e:
        logger.error("Error fetching recent interactions", extra={"entity": "ai_interactions",
                                                                  "error_type": type(e).__name__}, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch recent interactions")


@router.get("/api/interactions/{patient_id}", response_model=List[AiInteractionWithDetails])
def list_patient_interactions(patient_id: str, db: Session = Depends(get_db)):
    """Interactions of one patient; an unknown patient yields an empty list."""
    try:
        return get_interactions_by_patient(db, patient_id)
    except Exception as e:
        logger.error("Error fetching patient interactions",
                     extra={"patient_id": patient_id, "error_type": type(e).__name__}, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch patient interactions")


@router.post("/api/interactions", response_model=InteractionResponse, status_code=201)
def create_interaction(payload: InteractionCreate, store: EntityStore = Depends(get_store)):
    try:
        interaction = store.create_interaction(**payload.model_dump())
    except ValidationError as e:
        logger.warning("Rejected interaction", extra=e.log_context())
        raise HTTPException(status_code=400, detail="Invalid interaction data")
    except Exception as e:
        logger.error("Error creating interaction", extra={"entity": "ai_interactions",
                                                          "error_type": type(e).__name__}, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to create interaction")

    logger.info(
        "Interaction queued for review",
        extra={"interaction_id": interaction.id, "urgency_level": interaction.urgency_level},
    )
    return interaction


@router.post("/api/reviews", response_model=ReviewResponse, status_code=201)
def create_review(
    payload: ReviewCreate,
    store: EntityStore = Depends(get_store),
    provider: ProviderIdentity = Depends(get_current_provider),
):
    """Record a provider decision on an interaction."""
    data = payload.model_dump()
    data["provider_name"] = data.get("provider_name") or provider.name

    try:
        return store.create_review(**data)
    except ValidationError as e:
        logger.warning("Rejected review", extra={**e.log_context(), "provider_id": provider.provider_id})
        raise HTTPException(status_code=400, detail="Invalid review data")
    except Exception as e:
        logger.error("Error creating review", extra={"entity": "provider_reviews",
                                                     "error_type": type(e).__name__}, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to create review")
