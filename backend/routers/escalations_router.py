"""
Escalations Router - Escalation queue and parent/provider message threads

Handles:
- Listing escalations with their message thread and interaction detail
- Opening an escalation and changing its status / severity / reason
- Appending messages and marking a thread's parent messages read
"""

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from database import get_db
from dependencies import ProviderIdentity, get_current_provider, get_store
from details import get_escalations_with_details
from exceptions import NotFoundError, ValidationError
from models import (
    EscalationCreate,
    EscalationResponse,
    EscalationUpdate,
    EscalationWithMessages,
    MarkReadResponse,
    MessageCreate,
    MessageResponse,
)
from storage import EntityStore
from structured_logging import get_logger

router = APIRouter(tags=["Escalations"])
logger = get_logger(__name__)


# =============================================================================
# ESCALATIONS
# =============================================================================

@router.get("/api/escalations", response_model=List[EscalationWithMessages])
def list_escalations(
    active: bool = Query(False, description="Exclude resolved escalations"),
    db: Session = Depends(get_db),
):
    try:
        return get_escalations_with_details(db, active_only=active)
    except Exception as e:
        logger.error("Error fetching escalations", extra={"entity": "escalations",
                                                          "error_type": type(e).__name__}, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch escalations")


@router.post("/api/escalations", response_model=EscalationResponse, status_code=201)
def create_escalation(payload: EscalationCreate, store: EntityStore = Depends(get_store)):
    try:
        return store.create_escalation(**payload.model_dump())
    except ValidationError as e:
        logger.warning("Rejected escalation", extra=e.log_context())
        raise HTTPException(status_code=400, detail="Invalid escalation data")
    except Exception as e:
        logger.error("Error creating escalation", extra={"entity": "escalations",
                                                         "error_type": type(e).__name__}, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to create escalation")


@router.patch("/api/escalations/{escalation_id}", response_model=EscalationResponse)
def update_escalation(
    escalation_id: str,
    payload: EscalationUpdate,
    store: EntityStore = Depends(get_store),
    provider: ProviderIdentity = Depends(get_current_provider),
):
    """
    Partial update. Only fields present in the body change; moving to
    "resolved" stamps resolvedAt and a resolved escalation stays resolved.
    """
    fields = payload.model_dump(exclude_unset=True)
    try:
        escalation = store.update_escalation(escalation_id, fields)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Escalation not found")
    except ValidationError as e:
        logger.warning("Rejected escalation update", extra=e.log_context())
        raise HTTPException(status_code=400, detail="Invalid escalation update")
    except Exception as e:
        logger.error("Error updating escalation",
                     extra={"escalation_id": escalation_id, "error_type": type(e).__name__}, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to update escalation")

    logger.info(
        "Escalation status changed",
        extra={"escalation_id": escalation_id, "status": escalation.status, "provider_id": provider.provider_id},
    )
    return escalation


@router.post("/api/escalations/{escalation_id}/read", response_model=MarkReadResponse)
def mark_escalation_read(escalation_id: str, store: EntityStore = Depends(get_store)):
    """Mark every parent message in the thread as read."""
    try:
        marked = store.mark_escalation_messages_read(escalation_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Escalation not found")
    except Exception as e:
        logger.error("Error marking messages read",
                     extra={"escalation_id": escalation_id, "error_type": type(e).__name__}, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to mark messages read")

    return MarkReadResponse(escalation_id=escalation_id, marked_read=marked)


# =============================================================================
# MESSAGES
# =============================================================================

@router.post("/api/messages", response_model=MessageResponse, status_code=201)
def create_message(
    payload: MessageCreate,
    store: EntityStore = Depends(get_store),
    provider: ProviderIdentity = Depends(get_current_provider),
):
    data = payload.model_dump()
    if data["sender_type"] == "provider" and not data.get("sender_id"):
        data["sender_id"] = provider.provider_id

    try:
        return store.create_message(**data)
    except ValidationError as e:
        logger.warning("Rejected message", extra=e.log_context())
        raise HTTPException(status_code=400, detail="Invalid message data")
    except Exception as e:
        logger.error("Error creating message", extra={"entity": "messages",
                                                      "error_type": type(e).__name__}, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to create message")
