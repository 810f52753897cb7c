"""
Demo data for local development.

Creates demo profiles (password ``demo-password``) and one shared case with
a short conversation and two deadlines. Safe to run on every startup.
"""

import logging
from datetime import datetime, timedelta

from .auth import get_password_hash
from .cases import CREATOR_PARTICIPANT_ROLE
from .db.models import (
    Profile, Case, CaseParticipant, Message, Deadline,
    UserRole, CaseType, CaseStatus, MessageType,
)
from .db.session import get_db_session

logger = logging.getLogger(__name__)

DEMO_PASSWORD = "demo-password"

DEMO_PROFILES = [
    ("tenant@example.com", "Test Tenant", "+1-555-0101", UserRole.TENANT),
    ("landlord@example.com", "Test Landlord", "+1-555-0102", UserRole.LANDLORD),
    ("lawyer@example.com", "Test Lawyer", "+1-555-0103", UserRole.LAWYER),
    ("admin@example.com", "Test Admin", "+1-555-0100", UserRole.ADMIN),
]

DEMO_CASE_TITLE = "Non-payment dispute – Apt 3B"


def seed_demo_data() -> None:
    with get_db_session() as db:
        profiles = {}
        created_profiles = 0
        for email, name, phone, role in DEMO_PROFILES:
            profile = db.query(Profile).filter(Profile.email == email).first()
            if not profile:
                profile = Profile(
                    email=email,
                    full_name=name,
                    phone=phone,
                    role=role,
                    password_hash=get_password_hash(DEMO_PASSWORD),
                )
                db.add(profile)
                created_profiles += 1
            profiles[role] = profile
        db.flush()

        landlord = profiles[UserRole.LANDLORD]
        tenant = profiles[UserRole.TENANT]
        lawyer = profiles[UserRole.LAWYER]

        case = db.query(Case).filter(
            Case.title == DEMO_CASE_TITLE, Case.created_by == landlord.id
        ).first()
        if case:
            logger.info(f"Demo case already exists (id={case.id})")
            return

        case = Case(
            title=DEMO_CASE_TITLE,
            type=CaseType.NON_PAYMENT,
            status=CaseStatus.ACTIVE,
            created_by=landlord.id,
            opposing_party_name=tenant.full_name,
            notes="Tenant owes 3 months rent; a payment plan is being discussed.",
        )
        db.add(case)
        db.flush()

        for profile, role in ((landlord, CREATOR_PARTICIPANT_ROLE), (tenant, UserRole.TENANT), (lawyer, UserRole.LAWYER)):
            db.add(CaseParticipant(case_id=case.id, user_id=profile.id, role=role, added_by=landlord.id))

        now = datetime.utcnow()
        conversation = [
            (landlord, MessageType.TEXT, "Hello, can we arrange a payment plan to avoid further action?"),
            (tenant, MessageType.TEXT, "Yes, I can do $400 on the 1st and $400 on the 15th for the next two months."),
            (lawyer, MessageType.SYSTEM, "Lawyer added to case and reviewing documents."),
        ]
        for offset, (sender, message_type, content) in enumerate(conversation):
            db.add(Message(
                case_id=case.id, sender_id=sender.id, type=message_type, content=content,
                created_at=now + timedelta(seconds=offset),
            ))

        db.add(Deadline(case_id=case.id, title="File proof of payment plan",
                        due_date=now + timedelta(days=1), created_by=landlord.id))
        db.add(Deadline(case_id=case.id, title="Proposed consent agreement draft",
                        due_date=now + timedelta(days=10), created_by=lawyer.id))

        logger.info(f"Demo data seeded (profiles created={created_profiles}, case={case.id})")
