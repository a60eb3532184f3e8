"""Shared fixtures: seeded local store, workflow managers, signed staff tokens"""

import asyncio
from datetime import date, datetime, timedelta

import pytest
from jose import jwt

from config import Settings
from database.local_store import LocalWorkflowStore
from models.assignment import AssignmentCreate, Engagement
from models.mission import Mission, MissionStatus
from services.workflow_manager import MissionWorkflowManager

MISSION_ID = "mission-456"
CLIENT_ID = "client-789"
FREELANCER_ID = "freelancer-001"
INTERNAL_ID = "internal-001"
JWT_SECRET = "test-jwt-secret"


def run(coro):
    """Drive a coroutine from a sync test"""
    return asyncio.run(coro)


@pytest.fixture
def settings():
    return Settings(
        public_base_url="https://app.crewtech.test",
        default_fee_pct=15.0,
        default_currency="EUR",
        supabase_jwt_secret=JWT_SECRET,
    )


@pytest.fixture
def store():
    return LocalWorkflowStore(seed=True)


@pytest.fixture
def make_manager(store, settings):
    def factory(mission_id=MISSION_ID, repository=None):
        return MissionWorkflowManager(repository or store, mission_id, access_token="staff-token", settings=settings)
    return factory


@pytest.fixture
def manager(make_manager):
    return make_manager()


def set_status(store: LocalWorkflowStore, status: MissionStatus, mission_id: str = MISSION_ID) -> Mission:
    mission = store.missions[mission_id]
    mission.status = status
    return mission


def freelance_assignment(user_id: str = FREELANCER_ID, days: int = 3, start: date = date(2024, 2, 15)) -> AssignmentCreate:
    return AssignmentCreate(
        user_id=user_id,
        position="Co-Pilot",
        engagement=Engagement.FREELANCE,
        day_rate=500,
        currency="EUR",
        start_date=start,
        end_date=start + timedelta(days=days - 1),
    )


def internal_assignment(user_id: str = INTERNAL_ID, start: date = date(2024, 2, 15)) -> AssignmentCreate:
    return AssignmentCreate(
        user_id=user_id,
        position="Pilot in Command",
        engagement=Engagement.INTERNAL,
        day_rate=800,
        currency="EUR",
        start_date=start,
        end_date=start,
    )


def staff_token(role: str = "internal", user_id: str = "internal-001", issued_at: datetime = None, **extra) -> str:
    issued_at = issued_at or datetime.utcnow()
    claims = {
        "sub": user_id,
        "email": "internal@crewtech.fr",
        "iat": int((issued_at - datetime(1970, 1, 1)).total_seconds()),
        "user_metadata": {"role": role},
    }
    claims.update(extra)
    return jwt.encode(claims, JWT_SECRET, algorithm="HS256")
