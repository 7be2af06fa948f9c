from sqlalchemy import create_engine, Column, String, DateTime, Date, Boolean, Text, Float, ForeignKey
from sqlalchemy.orm import sessionmaker, relationship, declarative_base
from datetime import datetime, timezone
import uuid

from config import DATABASE_URL

# Create engine with appropriate connection args
connect_args = {"check_same_thread": False} if "sqlite" in DATABASE_URL else {}
engine = create_engine(DATABASE_URL, connect_args=connect_args, hide_parameters=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

# =============================================================================
# CLOSED VALUE SETS
# =============================================================================

REVIEW_DECISIONS = ("agree", "agree_with_thoughts", "disagree", "needs_escalation")
AGREE_DECISIONS = ("agree", "agree_with_thoughts")

# Ordered least to most urgent
URGENCY_LEVELS = ("routine", "moderate", "urgent", "critical")

# pending -> texting -> phone_call / video_call -> resolved (terminal)
ESCALATION_STATUSES = ("pending", "texting", "phone_call", "video_call", "resolved")
RESOLVED_STATUS = "resolved"

SENDER_TYPES = ("parent", "provider")

PROBLEM_STATUSES = ("active", "resolved", "chronic")


def generate_uuid() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# =============================================================================
# FAMILIES
# =============================================================================

class Patient(Base):
    """Parent or guardian. Owns one or more children."""
    __tablename__ = "patients"

    id = Column(String, primary_key=True, default=generate_uuid)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    phone = Column(String)
    preferred_pharmacy = Column(String)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    children = relationship("Child", back_populates="patient", order_by=lambda: Child.created_at)
    interactions = relationship("AiInteraction", back_populates="patient")


class Child(Base):
    __tablename__ = "children"

    id = Column(String, primary_key=True, default=generate_uuid)
    patient_id = Column(String, ForeignKey("patients.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    date_of_birth = Column(Date, nullable=False)
    medical_record_number = Column(String, unique=True, index=True, nullable=False)
    current_weight = Column(Float)  # lbs
    created_at = Column(DateTime, default=utcnow, nullable=False)

    patient = relationship("Patient", back_populates="children")
    interactions = relationship("AiInteraction", back_populates="child")


# =============================================================================
# CHILD MEDICAL RECORD
# =============================================================================

class Medication(Base):
    __tablename__ = "medications"

    id = Column(String, primary_key=True, default=generate_uuid)
    child_id = Column(String, ForeignKey("children.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    dosage = Column(String, nullable=False)
    frequency = Column(String, nullable=False)
    start_date = Column(Date)
    end_date = Column(Date)
    active = Column(Boolean, default=True, nullable=False)  # current vs historical course
    created_at = Column(DateTime, default=utcnow, nullable=False)


class Allergy(Base):
    __tablename__ = "allergies"

    id = Column(String, primary_key=True, default=generate_uuid)
    child_id = Column(String, ForeignKey("children.id"), nullable=False, index=True)
    allergen = Column(String, nullable=False)
    reaction = Column(String, nullable=False)
    severity = Column(String)  # "mild", "moderate", "severe" (free text)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class ProblemListItem(Base):
    __tablename__ = "problem_list"

    id = Column(String, primary_key=True, default=generate_uuid)
    child_id = Column(String, ForeignKey("children.id"), nullable=False, index=True)
    condition = Column(String, nullable=False)
    icd10_code = Column(String)
    status = Column(String, default="active", nullable=False)  # "active", "resolved", "chronic"
    onset_date = Column(Date)
    created_at = Column(DateTime, default=utcnow, nullable=False)


# =============================================================================
# AI TRIAGE AND PROVIDER REVIEW
# =============================================================================

class AiInteraction(Base):
    """
    One parent concern paired with the AI assistant's response.

    patient_id duplicates child.patient_id for query convenience; the store
    rejects writes where the two disagree.
    """
    __tablename__ = "ai_interactions"

    id = Column(String, primary_key=True, default=generate_uuid)
    child_id = Column(String, ForeignKey("children.id"), nullable=False, index=True)
    patient_id = Column(String, ForeignKey("patients.id"), nullable=False, index=True)
    parent_concern = Column(Text, nullable=False)
    ai_response = Column(Text, nullable=False)
    ai_summary = Column(Text)
    urgency_level = Column(String, default="routine", nullable=False)
    clara_recommendations = Column(Text)
    conversation_context = Column(Text)
    queued_at = Column(DateTime, default=utcnow, nullable=False)  # entered the review queue
    reviewed_at = Column(DateTime)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)

    child = relationship("Child", back_populates="interactions")
    patient = relationship("Patient", back_populates="interactions")
    reviews = relationship(
        "ProviderReview",
        back_populates="interaction",
        order_by=lambda: ProviderReview.created_at.desc(),
    )
    escalations = relationship(
        "Escalation",
        back_populates="interaction",
        order_by=lambda: Escalation.created_at.desc(),
    )


class ProviderReview(Base):
    __tablename__ = "provider_reviews"

    id = Column(String, primary_key=True, default=generate_uuid)
    interaction_id = Column(String, ForeignKey("ai_interactions.id"), nullable=False, index=True)
    provider_name = Column(String, nullable=False)
    review_decision = Column(String, nullable=False)  # one of REVIEW_DECISIONS
    provider_notes = Column(Text)
    icd10_code = Column(String)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    interaction = relationship("AiInteraction", back_populates="reviews")


# =============================================================================
# ESCALATION MESSAGING
# =============================================================================

class Escalation(Base):
    __tablename__ = "escalations"

    id = Column(String, primary_key=True, default=generate_uuid)
    interaction_id = Column(String, ForeignKey("ai_interactions.id"), nullable=False, index=True)
    initiated_by = Column(String, nullable=False)  # "provider", "parent", "system"
    status = Column(String, default="pending", nullable=False)  # one of ESCALATION_STATUSES
    severity = Column(String)  # one of URGENCY_LEVELS
    reason = Column(Text)
    resolved_at = Column(DateTime)  # set only on transition to "resolved"
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)

    interaction = relationship("AiInteraction", back_populates="escalations")
    messages = relationship(
        "Message",
        back_populates="escalation",
        order_by=lambda: Message.created_at,
    )


class Message(Base):
    __tablename__ = "messages"

    id = Column(String, primary_key=True, default=generate_uuid)
    escalation_id = Column(String, ForeignKey("escalations.id"), nullable=False, index=True)
    sender_id = Column(String, nullable=False)  # patient id or provider id
    sender_type = Column(String, nullable=False)  # "parent" or "provider"
    content = Column(Text, nullable=False)
    is_read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    escalation = relationship("Escalation", back_populates="messages")


def create_tables():
    Base.metadata.create_all(bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
