"""
Seed the database with demo families for the review dashboard.

Creates 30 families (parent + child), their medical histories, about
three months of triage interactions with provider reviews, and escalations
with short message threads. Older escalations are resolved; the current
month's stay open so the escalation queue and badges have content.

Usage:
    python seed.py            # add demo data
    python seed.py --reset    # drop and recreate all tables first
"""
import argparse
import random
from datetime import date, timedelta

from config import DEFAULT_PROVIDER_ID, DEFAULT_PROVIDER_NAME
from database import Base, engine, SessionLocal, create_tables, utcnow
from storage import EntityStore

# Fixed seed so repeated runs produce the same demo set
RANDOM_SEED = 42

PARENT_FIRST_NAMES = ["Sarah", "Michael", "Jennifer", "David", "Lisa", "Robert", "Maria", "James"]
CHILD_FIRST_NAMES = ["Emma", "Oliver", "Sophia", "Lucas", "Ava", "Ethan", "Isabella", "Mason", "Mia", "Noah"]
LAST_NAMES = ["Smith", "Johnson", "Williams", "Brown", "Jones", "Garcia", "Miller", "Davis", "Rodriguez", "Martinez"]

PHARMACIES = [
    "CVS Pharmacy - Main St",
    "Walgreens - Oak Ave",
    "Rite Aid - Downtown",
    "Target Pharmacy - Mall Location",
    "Costco Pharmacy",
]

COMMON_CONDITIONS = [
    {"condition": "Asthma", "icd10_code": "J45.909"},
    {"condition": "Eczema", "icd10_code": "L20.9"},
    {"condition": "ADHD", "icd10_code": "F90.0"},
    {"condition": "Seasonal allergies", "icd10_code": "J30.2"},
    {"condition": "Ear infection", "icd10_code": "H66.90"},
    {"condition": "Constipation", "icd10_code": "K59.00"},
]

COMMON_MEDICATIONS = [
    {"name": "Amoxicillin", "dosage": "250mg", "frequency": "twice daily"},
    {"name": "Albuterol inhaler", "dosage": "2 puffs", "frequency": "as needed"},
    {"name": "Cetirizine", "dosage": "5mg", "frequency": "once daily"},
    {"name": "Ibuprofen", "dosage": "100mg", "frequency": "every 6 hours as needed"},
    {"name": "Fluticasone nasal spray", "dosage": "1 spray each nostril", "frequency": "once daily"},
]

COMMON_ALLERGIES = [
    {"allergen": "Peanuts", "reaction": "Hives and swelling", "severity": "severe"},
    {"allergen": "Penicillin", "reaction": "Rash", "severity": "moderate"},
    {"allergen": "Dust mites", "reaction": "Sneezing and congestion", "severity": "mild"},
    {"allergen": "Eggs", "reaction": "Upset stomach", "severity": "mild"},
    {"allergen": "Bee stings", "reaction": "Local swelling", "severity": "moderate"},
]

TRIAGE_SCENARIOS = [
    {
        "concern": "My 4 year old has had a fever of 101F for 2 days with a cough",
        "summary": "Child presenting with moderate fever and cough for 48 hours. Likely viral upper respiratory infection.",
        "recommendations": "Monitor temperature, encourage fluids, use acetaminophen for comfort. "
                           "See provider if fever >103F or persists >3 days.",
        "urgency": "routine",
    },
    {
        "concern": "Noticed a rash on my toddler's chest that's spreading",
        "summary": "New onset spreading rash on trunk. Differential includes viral exanthem, contact dermatitis, "
                   "or allergic reaction.",
        "recommendations": "Photo document rash progression, monitor for fever or other symptoms. "
                           "If rapid spread or breathing issues, seek immediate care.",
        "urgency": "moderate",
    },
    {
        "concern": "My child is wheezing and having trouble breathing after playing outside",
        "summary": "Acute onset respiratory distress with wheezing following outdoor activity. "
                   "Possible asthma exacerbation or allergic reaction.",
        "recommendations": "URGENT: Use rescue inhaler if available. If no improvement in 15 minutes or worsening, "
                           "call 911 or go to ER immediately.",
        "urgency": "urgent",
    },
    {
        "concern": "Baby hasn't had a wet diaper in 12 hours and seems very sleepy",
        "summary": "Infant showing signs of dehydration with decreased urine output and lethargy.",
        "recommendations": "CRITICAL: Immediate medical evaluation needed. Go to ER for IV fluids and assessment.",
        "urgency": "critical",
    },
    {
        "concern": "My 6 year old complains of stomach pain around belly button for past 3 hours",
        "summary": "Periumbilical pain in school-age child. Consider appendicitis, constipation, or gastroenteritis.",
        "recommendations": "Monitor for fever, vomiting, or pain migration to right lower quadrant. "
                           "If symptoms worsen or persist >6 hours, seek evaluation.",
        "urgency": "moderate",
    },
    {
        "concern": "Child has been coughing at night for about a week, worse when lying down",
        "summary": "Persistent nocturnal cough, positional component suggests post-nasal drip or mild asthma.",
        "recommendations": "Elevate head of bed, consider humidifier, honey for cough (if >1 year old). "
                           "Schedule routine appointment if persists.",
        "urgency": "routine",
    },
]


def seed_family(store: EntityStore, rng: random.Random, index: int, now):
    last_name = LAST_NAMES[index % len(LAST_NAMES)]
    parent_first = PARENT_FIRST_NAMES[index % len(PARENT_FIRST_NAMES)]
    joined = now - timedelta(days=120 - index)

    patient = store.create_patient(
        name=f"{parent_first} {last_name}",
        email=f"{parent_first.lower()}.{last_name.lower()}{index}@email.com",
        phone=f"(555) {100 + index:03d}-{1000 + index:04d}",
        preferred_pharmacy=PHARMACIES[index % len(PHARMACIES)],
        created_at=joined,
    )

    age = 2 + index % 10
    today = date.today()
    child = store.create_child(
        patient_id=patient.id,
        name=f"{CHILD_FIRST_NAMES[index % len(CHILD_FIRST_NAMES)]} {last_name}",
        date_of_birth=today.replace(year=today.year - age, day=min(today.day, 28)),
        medical_record_number=f"MRN{index + 1:07d}",
        current_weight=float(25 + (index % 10) * 5),
        created_at=joined,
    )

    seed_medical_history(store, rng, child.id, joined, today)
    seed_interactions(store, rng, patient.id, child.id, now)
    return patient


def seed_medical_history(store: EntityStore, rng: random.Random, child_id: str, joined, today):
    if rng.random() < 0.7:
        for med in rng.sample(COMMON_MEDICATIONS, rng.randint(1, 3)):
            store.create_medication(
                child_id=child_id,
                start_date=today - timedelta(days=30 * rng.randint(0, 5)),
                active=rng.random() > 0.2,
                created_at=joined,
                **med,
            )

    if rng.random() < 0.4:
        for allergy in rng.sample(COMMON_ALLERGIES, rng.randint(1, 2)):
            store.create_allergy(child_id=child_id, created_at=joined, **allergy)

    if rng.random() < 0.5:
        for problem in rng.sample(COMMON_CONDITIONS, rng.randint(1, 2)):
            store.create_problem(
                child_id=child_id,
                status=rng.choice(["active", "chronic", "resolved"]),
                onset_date=today - timedelta(days=30 * rng.randint(1, 24)),
                created_at=joined,
                **problem,
            )


def seed_interactions(store: EntityStore, rng: random.Random, patient_id: str, child_id: str, now):
    """One interaction per month over the last three months; month 0 is the current one."""
    for month in range(3):
        scenario = rng.choice(TRIAGE_SCENARIOS)
        queued_at = now - timedelta(days=30 * month + rng.randint(0, 25), hours=rng.randint(1, 12))
        reviewed = month > 0 or rng.random() < 0.3
        review_at = min(queued_at + timedelta(minutes=rng.randint(10, 180)), now)

        interaction = store.create_interaction(
            child_id=child_id,
            patient_id=patient_id,
            parent_concern=scenario["concern"],
            ai_response=f"Based on the symptoms described, {scenario['summary']} {scenario['recommendations']}",
            ai_summary=scenario["summary"],
            urgency_level=scenario["urgency"],
            clara_recommendations=scenario["recommendations"],
            queued_at=queued_at,
            reviewed_at=review_at if reviewed else None,
            created_at=queued_at,
        )
        if not reviewed:
            continue

        if scenario["urgency"] in ("urgent", "critical"):
            decision = "needs_escalation"
        else:
            decision = rng.choice(["agree", "agree_with_thoughts", "disagree"])

        store.create_review(
            interaction_id=interaction.id,
            provider_name=DEFAULT_PROVIDER_NAME,
            review_decision=decision,
            provider_notes=None if decision == "agree"
            else "Additional monitoring recommended. Follow up in 24-48 hours if symptoms persist.",
            icd10_code=rng.choice(COMMON_CONDITIONS)["icd10_code"],
            created_at=review_at,
        )

        if decision == "needs_escalation":
            seed_escalation(store, interaction.id, patient_id, scenario["urgency"], review_at, resolved=month > 0)


def seed_escalation(store: EntityStore, interaction_id: str, patient_id: str, severity: str, opened_at,
                    resolved: bool):
    escalation = store.create_escalation(
        interaction_id=interaction_id,
        initiated_by="provider",
        status="texting",
        severity=severity,
        reason="Provider determined immediate consultation needed",
        created_at=opened_at,
    )
    store.create_message(
        escalation_id=escalation.id,
        sender_id=patient_id,
        sender_type="parent",
        content="Thank you for escalating this. Should I bring them in?",
        created_at=opened_at + timedelta(minutes=5),
    )
    store.create_message(
        escalation_id=escalation.id,
        sender_id=DEFAULT_PROVIDER_ID,
        sender_type="provider",
        content="Yes, please come to the clinic within the next 2 hours. We'll fit you in.",
        created_at=opened_at + timedelta(minutes=10),
    )

    if resolved:
        store.mark_escalation_messages_read(escalation.id)
        store.update_escalation(escalation.id, {"status": "resolved"}, now=opened_at + timedelta(hours=2))


def seed(reset: bool = False):
    if reset:
        Base.metadata.drop_all(bind=engine)
    create_tables()

    rng = random.Random(RANDOM_SEED)
    now = utcnow()
    db = SessionLocal()
    try:
        store = EntityStore(db)
        if store.count_patients() > 0 and not reset:
            print("Database already has patients; run with --reset to reseed")
            return

        for index in range(30):
            seed_family(store, rng, index, now)

        print(f"Seeded {store.count_patients()} families with medical histories, "
              f"interactions, reviews and escalations")
    finally:
        db.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed demo data for the triage review dashboard")
    parser.add_argument("--reset", action="store_true", help="drop and recreate all tables first")
    args = parser.parse_args()
    seed(reset=args.reset)
