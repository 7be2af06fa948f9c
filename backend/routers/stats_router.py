"""
Stats Router - Dashboard statistics, sidebar badges and analytics

All numbers are recomputed from the current rows on every request.
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from config import ANALYTICS_WEEKS
from database import get_db, utcnow
from details import get_all_interactions_with_details
from aggregates import dashboard_stats, badge_counts, build_analytics
from models import AnalyticsResponse, BadgeCounts, DashboardStats
from storage import EntityStore
from structured_logging import get_logger

router = APIRouter(tags=["Stats"])
logger = get_logger(__name__)


@router.get("/api/stats", response_model=DashboardStats)
def get_stats(db: Session = Depends(get_db)):
    """
    Dashboard header numbers: pending reviews, escalated interactions,
    patient count, average response time and agree/disagree tallies.
    """
    try:
        interactions = get_all_interactions_with_details(db)
        return dashboard_stats(interactions, EntityStore(db).count_patients())
    except Exception as e:
        logger.error("Error fetching stats", extra={"entity": "stats", "error_type": type(e).__name__},
                     exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch stats")


@router.get("/api/stats/badges", response_model=BadgeCounts)
def get_badge_counts(db: Session = Depends(get_db)):
    """Sidebar counters for reviews, escalations and unread parent messages."""
    try:
        interactions = get_all_interactions_with_details(db)
        messages = EntityStore(db).get_all_messages()
        return badge_counts(interactions, messages)
    except Exception as e:
        logger.error("Error fetching badge counts", extra={"entity": "badges", "error_type": type(e).__name__},
                     exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch badge counts")


@router.get("/api/analytics", response_model=AnalyticsResponse)
def get_analytics(db: Session = Depends(get_db)):
    """
    Review outcome distribution, weekly wait/review/escalation times and the
    dashboard stats.
    """
    try:
        interactions = get_all_interactions_with_details(db)
        patient_count = EntityStore(db).count_patients()
        return build_analytics(interactions, patient_count, now=utcnow(), weeks=ANALYTICS_WEEKS)
    except Exception as e:
        logger.error("Error fetching analytics", extra={"entity": "analytics", "error_type": type(e).__name__},
                     exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch analytics")
