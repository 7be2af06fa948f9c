"""
Aggregate Engine

Derived dashboard numbers computed from the joined interaction views:
- Dashboard stats (/api/stats)
- Navigation badge counts (/api/stats/badges)
- Per-patient status, interaction count and last review date
- Analytics: review outcome distribution and weekly time metrics

Every function is pure and is recomputed on each request. Inputs are the
AiInteractionWithDetails views from details.py (reviews newest first).
"""

import math
from collections import Counter, defaultdict
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from database import AGREE_DECISIONS, REVIEW_DECISIONS, RESOLVED_STATUS
from models import (
    AiInteractionWithDetails,
    AnalyticsResponse,
    BadgeCounts,
    DashboardStats,
    PatientSummary,
    PatientWithChildren,
    ReviewOutcome,
    ReviewResponse,
    TimeMetric,
)

ESCALATION_DECISION = "needs_escalation"

REVIEW_OUTCOME_LABELS = {
    "agree": "Agree",
    "agree_with_thoughts": "Agree with Thoughts",
    "disagree": "Disagree",
    "needs_escalation": "Needs Escalation",
}


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _minutes_between(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / 60


def _mean(values: Sequence[float]) -> Optional[float]:
    if not values:
        return None
    return round(sum(values) / len(values), 1)


# =============================================================================
# PER-INTERACTION PREDICATES
# =============================================================================

def is_pending(interaction: AiInteractionWithDetails) -> bool:
    return len(interaction.reviews) == 0


def is_escalated(interaction: AiInteractionWithDetails) -> bool:
    return any(review.review_decision == ESCALATION_DECISION for review in interaction.reviews)


def first_review(interaction: AiInteractionWithDetails) -> Optional[ReviewResponse]:
    if not interaction.reviews:
        return None
    return min(interaction.reviews, key=lambda review: review.created_at)


# =============================================================================
# DASHBOARD STATS
# =============================================================================

def count_pending_reviews(interactions: Iterable[AiInteractionWithDetails]) -> int:
    return sum(1 for interaction in interactions if is_pending(interaction))


def count_escalated(interactions: Iterable[AiInteractionWithDetails]) -> int:
    return sum(1 for interaction in interactions if is_escalated(interaction))


def average_response_time(interactions: Iterable[AiInteractionWithDetails]) -> str:
    """
    Mean time from interaction creation to its earliest review.

    Rendered as "{n}m" below one hour, "{n}h" otherwise, "N/A" when no
    interaction has been reviewed.
    """
    durations = []
    for interaction in interactions:
        review = first_review(interaction)
        if review is not None:
            durations.append(_minutes_between(interaction.created_at, review.created_at))

    if not durations:
        return "N/A"

    avg_minutes = sum(durations) / len(durations)
    if avg_minutes < 60:
        return f"{_round_half_up(avg_minutes)}m"
    return f"{_round_half_up(avg_minutes / 60)}h"


def review_tallies(interactions: Iterable[AiInteractionWithDetails]) -> Tuple[int, int]:
    """(agrees, disagrees) over every review of every interaction."""
    agrees = disagrees = 0
    for interaction in interactions:
        for review in interaction.reviews:
            if review.review_decision in AGREE_DECISIONS:
                agrees += 1
            elif review.review_decision == "disagree":
                disagrees += 1
    return agrees, disagrees


def dashboard_stats(interactions: List[AiInteractionWithDetails], patient_count: int) -> DashboardStats:
    # activePatients is the plain patient count; no activity window is applied
    agrees, disagrees = review_tallies(interactions)
    return DashboardStats(
        reviews_pending=count_pending_reviews(interactions),
        escalations=count_escalated(interactions),
        active_patients=patient_count,
        avg_response_time=average_response_time(interactions),
        agrees_count=agrees,
        disagrees_count=disagrees,
    )


def badge_counts(interactions: List[AiInteractionWithDetails], messages: Iterable) -> BadgeCounts:
    """Sidebar counters. Unread = parent messages not yet marked read."""
    unread = sum(
        1 for message in messages
        if message.sender_type == "parent" and not message.is_read
    )
    return BadgeCounts(
        reviews_pending=count_pending_reviews(interactions),
        escalations_active=count_escalated(interactions),
        messages_unread=unread,
    )


# =============================================================================
# PATIENT STATUS
# =============================================================================

def classify_patient_status(interactions: Iterable[AiInteractionWithDetails]) -> str:
    """escalated outranks review_pending, which outranks active."""
    interactions = list(interactions)
    if any(is_escalated(interaction) for interaction in interactions):
        return "escalated"
    if any(is_pending(interaction) for interaction in interactions):
        return "review_pending"
    return "active"


def last_review_date(interactions: Iterable[AiInteractionWithDetails]) -> Optional[datetime]:
    dates = [review.created_at for interaction in interactions for review in interaction.reviews]
    return max(dates) if dates else None


def summarize_patient(patient: PatientWithChildren,
                      interactions: List[AiInteractionWithDetails]) -> PatientSummary:
    return PatientSummary(
        **patient.model_dump(),
        interaction_count=len(interactions),
        last_review_date=last_review_date(interactions),
        status=classify_patient_status(interactions),
    )


def summarize_patients(patients: List[PatientWithChildren],
                       interactions: List[AiInteractionWithDetails]) -> List[PatientSummary]:
    """Summaries for many patients from one pass over all interactions."""
    by_patient: Dict[str, List[AiInteractionWithDetails]] = defaultdict(list)
    for interaction in interactions:
        by_patient[interaction.patient_id].append(interaction)
    return [summarize_patient(patient, by_patient.get(patient.id, [])) for patient in patients]


# =============================================================================
# ANALYTICS
# =============================================================================

def review_outcomes(interactions: Iterable[AiInteractionWithDetails]) -> List[ReviewOutcome]:
    counts = Counter(
        review.review_decision
        for interaction in interactions
        for review in interaction.reviews
    )
    return [
        ReviewOutcome(decision=decision, name=REVIEW_OUTCOME_LABELS[decision], value=counts.get(decision, 0))
        for decision in REVIEW_DECISIONS
    ]


def _week_index(moment: datetime, now: datetime, weeks: int) -> Optional[int]:
    """Bucket 0 is the oldest week, weeks - 1 the one ending at now."""
    if moment > now:
        return None
    weeks_ago = int((now - moment) // timedelta(days=7))
    if weeks_ago >= weeks:
        return None
    return weeks - 1 - weeks_ago


def time_metrics(interactions: Iterable[AiInteractionWithDetails], now: datetime,
                 weeks: int = 4) -> List[TimeMetric]:
    """
    Weekly averages, in minutes, computed from stored timestamps:

    - waitTime: queued_at until the interaction was reviewed (reviewed_at,
      or the earliest review when reviewed_at is unset)
    - reviewTime: created_at until the earliest review
    - escalationTime: escalation created_at until resolved_at (resolved only)

    Interactions are bucketed by queued_at, escalations by created_at, into
    7-day windows ending at now.
    """
    interactions = list(interactions)
    wait = [[] for _ in range(weeks)]
    review = [[] for _ in range(weeks)]
    escalation = [[] for _ in range(weeks)]
    volume = [0] * weeks

    for interaction in interactions:
        idx = _week_index(interaction.queued_at, now, weeks)
        if idx is not None:
            volume[idx] += 1
            earliest = first_review(interaction)
            if earliest is not None:
                reviewed_at = interaction.reviewed_at or earliest.created_at
                wait[idx].append(_minutes_between(interaction.queued_at, reviewed_at))
                review[idx].append(_minutes_between(interaction.created_at, earliest.created_at))

        for esc in interaction.escalations:
            if esc.status != RESOLVED_STATUS or esc.resolved_at is None:
                continue
            esc_idx = _week_index(esc.created_at, now, weeks)
            if esc_idx is not None:
                escalation[esc_idx].append(_minutes_between(esc.created_at, esc.resolved_at))

    metrics = []
    for idx in range(weeks):
        week_start = now - timedelta(days=7 * (weeks - idx))
        metrics.append(TimeMetric(
            week_start=week_start.date(),
            label=f"Week of {week_start.strftime('%b %d')}",
            wait_time=_mean(wait[idx]),
            review_time=_mean(review[idx]),
            escalation_time=_mean(escalation[idx]),
            interactions=volume[idx],
            escalations_resolved=len(escalation[idx]),
        ))
    return metrics


def build_analytics(interactions: List[AiInteractionWithDetails], patient_count: int,
                    now: datetime, weeks: int = 4) -> AnalyticsResponse:
    return AnalyticsResponse(
        review_outcomes=review_outcomes(interactions),
        time_metrics=time_metrics(interactions, now, weeks),
        stats=dashboard_stats(interactions, patient_count),
    )
