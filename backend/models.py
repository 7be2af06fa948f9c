from pydantic import AfterValidator, BaseModel, EmailStr, Field, PlainSerializer
from pydantic.alias_generators import to_camel
from typing import Annotated, Optional, List, Literal
from datetime import datetime, date, timezone


def to_naive_utc(value: datetime) -> datetime:
    """Stored timestamps are naive UTC; aware input is converted, naive input is taken as UTC."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def format_utc(value: datetime) -> str:
    return to_naive_utc(value).isoformat() + "Z"


UtcDateTime = Annotated[
    datetime,
    AfterValidator(to_naive_utc),
    PlainSerializer(format_utc, return_type=str, when_used="json"),
]

ReviewDecision = Literal["agree", "agree_with_thoughts", "disagree", "needs_escalation"]
UrgencyLevel = Literal["routine", "moderate", "urgent", "critical"]
EscalationStatus = Literal["pending", "texting", "phone_call", "video_call", "resolved"]
SenderType = Literal["parent", "provider"]
ProblemStatus = Literal["active", "resolved", "chronic"]
PatientStatus = Literal["active", "review_pending", "escalated"]


class CamelModel(BaseModel):
    """Snake_case in Python, camelCase on the wire."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


# Patient Models
class PatientCreate(CamelModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    phone: Optional[str] = None
    preferred_pharmacy: Optional[str] = None


class PatientResponse(CamelModel):
    id: str
    name: str
    email: str
    phone: Optional[str] = None
    preferred_pharmacy: Optional[str] = None
    created_at: UtcDateTime


# Child Models
class ChildCreate(CamelModel):
    patient_id: str
    name: str = Field(..., min_length=1)
    date_of_birth: date
    medical_record_number: str = Field(..., min_length=1)
    current_weight: Optional[float] = Field(None, gt=0)


class ChildResponse(CamelModel):
    id: str
    patient_id: str
    name: str
    date_of_birth: date
    medical_record_number: str
    current_weight: Optional[float] = None
    created_at: UtcDateTime


class PatientWithChildren(PatientResponse):
    children: List[ChildResponse] = []


class PatientSummary(PatientWithChildren):
    """Patient row as listed on the patients page."""
    interaction_count: int
    last_review_date: Optional[UtcDateTime] = None
    status: PatientStatus


# Medical Record Models
class MedicationCreate(CamelModel):
    name: str = Field(..., min_length=1)
    dosage: str
    frequency: str
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    active: bool = True


class MedicationResponse(MedicationCreate):
    id: str
    child_id: str
    created_at: UtcDateTime


class AllergyCreate(CamelModel):
    allergen: str = Field(..., min_length=1)
    reaction: str
    severity: Optional[str] = None


class AllergyResponse(AllergyCreate):
    id: str
    child_id: str
    created_at: UtcDateTime


class ProblemCreate(CamelModel):
    condition: str = Field(..., min_length=1)
    icd10_code: Optional[str] = None
    status: ProblemStatus = "active"
    onset_date: Optional[date] = None


class ProblemResponse(CamelModel):
    id: str
    child_id: str
    condition: str
    icd10_code: Optional[str] = None
    status: str
    onset_date: Optional[date] = None
    created_at: UtcDateTime


class ChildMedicalData(CamelModel):
    medications: List[MedicationResponse] = []
    allergies: List[AllergyResponse] = []
    problem_list: List[ProblemResponse] = []


# AI Interaction Models
class InteractionCreate(CamelModel):
    child_id: str
    patient_id: str
    parent_concern: str = Field(..., min_length=1)
    ai_response: str = Field(..., min_length=1)
    ai_summary: Optional[str] = None
    urgency_level: UrgencyLevel = "routine"
    clara_recommendations: Optional[str] = None
    conversation_context: Optional[str] = None
    queued_at: Optional[UtcDateTime] = None


class InteractionResponse(CamelModel):
    id: str
    child_id: str
    patient_id: str
    parent_concern: str
    ai_response: str
    ai_summary: Optional[str] = None
    urgency_level: str
    clara_recommendations: Optional[str] = None
    conversation_context: Optional[str] = None
    queued_at: UtcDateTime
    reviewed_at: Optional[UtcDateTime] = None
    created_at: UtcDateTime


# Provider Review Models
class ReviewCreate(CamelModel):
    interaction_id: str
    # Falls back to the provider identity of the request
    provider_name: Optional[str] = None
    review_decision: ReviewDecision
    provider_notes: Optional[str] = None
    icd10_code: Optional[str] = None


class ReviewResponse(CamelModel):
    id: str
    interaction_id: str
    provider_name: str
    review_decision: str
    provider_notes: Optional[str] = None
    icd10_code: Optional[str] = None
    created_at: UtcDateTime


# Escalation Models
class EscalationCreate(CamelModel):
    interaction_id: str
    initiated_by: str = "provider"
    status: EscalationStatus = "pending"
    severity: Optional[UrgencyLevel] = None
    reason: Optional[str] = None


class EscalationUpdate(CamelModel):
    status: Optional[EscalationStatus] = None
    severity: Optional[UrgencyLevel] = None
    reason: Optional[str] = None

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        extra = "forbid"


class EscalationResponse(CamelModel):
    id: str
    interaction_id: str
    initiated_by: str
    status: str
    severity: Optional[str] = None
    reason: Optional[str] = None
    resolved_at: Optional[UtcDateTime] = None
    created_at: UtcDateTime


# Message Models
class MessageCreate(CamelModel):
    escalation_id: str
    # Provider messages fall back to the provider identity of the request
    sender_id: Optional[str] = None
    sender_type: SenderType
    content: str = Field(..., min_length=1)


class MessageResponse(CamelModel):
    id: str
    escalation_id: str
    sender_id: str
    sender_type: str
    content: str
    is_read: bool
    created_at: UtcDateTime


class MarkReadResponse(CamelModel):
    escalation_id: str
    marked_read: int


# Joined Views
class AiInteractionWithDetails(InteractionResponse):
    child: ChildResponse
    patient: PatientResponse
    reviews: List[ReviewResponse] = []
    escalations: List[EscalationResponse] = []


class EscalationWithMessages(EscalationResponse):
    messages: List[MessageResponse] = []
    interaction: AiInteractionWithDetails


# Dashboard Aggregates
class DashboardStats(CamelModel):
    reviews_pending: int
    escalations: int
    active_patients: int
    avg_response_time: str
    agrees_count: int
    disagrees_count: int


class BadgeCounts(CamelModel):
    reviews_pending: int
    escalations_active: int
    messages_unread: int


class ReviewOutcome(CamelModel):
    decision: ReviewDecision
    name: str
    value: int


class TimeMetric(CamelModel):
    """Weekly averages in minutes; None when the week has no samples."""
    week_start: date
    label: str
    wait_time: Optional[float] = None
    review_time: Optional[float] = None
    escalation_time: Optional[float] = None
    interactions: int = 0
    escalations_resolved: int = 0


class AnalyticsResponse(CamelModel):
    review_outcomes: List[ReviewOutcome]
    time_metrics: List[TimeMetric]
    stats: DashboardStats


# Clara Assistant
class ChatTurn(CamelModel):
    role: Literal["user", "assistant"]
    content: str


class ChatRequest(CamelModel):
    message: str = Field(..., min_length=1)
    history: List[ChatTurn] = []


class ChatResponse(CamelModel):
    response: str
    model: str
