"""
Crew Assignment Panel

CRUD over mission-to-crew assignments plus the derived cost view.

Cost rules:
- duration   = |end - start| in days + 1 (a same-day assignment lasts 1 day)
- total cost = day_rate x duration

Removal only updates the panel's in-memory list: the hosted store exposes
no delete endpoint for assignments, so a reload brings the row back.
"""

import asyncio
import logging
from datetime import date
from typing import List, Optional, Dict

from config import get_settings
from models.assignment import Assignment, AssignmentCreate, AssignmentView, CrewMember
from models.document import Document, ZERO_HOUR_CONTRACT
from services.repository import WorkflowRepository
from services.workflow_gateway import WorkflowGatewayError
from services.notifications import Notifier

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("user_id", "position", "start_date", "end_date")


class AssignmentValidationError(Exception):
    """Assignment form rejected before any network call"""

    def __init__(self, missing: List[str]):
        self.missing = missing
        super().__init__(f"Please fill all required fields: {', '.join(missing)}")


class AssignmentNotFoundError(Exception):
    pass


class ContractNotApplicableError(Exception):
    """Zero-hour contracts only cover freelance-type engagements"""


def assignment_duration(start_date: date, end_date: date) -> int:
    """Inclusive day count between two dates"""
    return abs((end_date - start_date).days) + 1


def assignment_cost(day_rate: float, start_date: date, end_date: date) -> float:
    return day_rate * assignment_duration(start_date, end_date)


def validate_assignment(data: AssignmentCreate) -> None:
    missing = [field for field in REQUIRED_FIELDS if not getattr(data, field)]
    if missing:
        raise AssignmentValidationError(missing)


def to_view(
    assignment: Assignment,
    crew: Optional[CrewMember] = None,
    has_zero_hour_contract: bool = False
) -> AssignmentView:
    return AssignmentView(
        **assignment.model_dump(),
        user=crew,
        has_zero_hour_contract=has_zero_hour_contract,
        duration_days=assignment_duration(assignment.start_date, assignment.end_date),
        total_cost=assignment_cost(assignment.day_rate, assignment.start_date, assignment.end_date),
    )


class CrewAssignmentPanel:
    """
    Assignment state for one mission.

    Freelance-type assignments are checked for a zero-hour contract on load.
    Generating a contract flips the local flag without re-checking the backend.
    """

    def __init__(
        self,
        repository: WorkflowRepository,
        mission_id: str,
        access_token: Optional[str] = None,
        notifier: Optional[Notifier] = None,
        default_day_rate: Optional[float] = None
    ):
        self.repository = repository
        self.mission_id = mission_id
        self.access_token = access_token
        self.notifier = notifier or Notifier()
        self.default_day_rate = get_settings().default_day_rate if default_day_rate is None else default_day_rate
        self.assignments: List[AssignmentView] = []

    async def _contract_status(self, assignment: Assignment) -> bool:
        if not assignment.engagement.is_freelance:
            return False
        try:
            return await self.repository.user_has_zero_hour_contract(assignment.user_id, self.access_token)
        except WorkflowGatewayError as e:
            logger.error(f"Error checking contract status for {assignment.user_id}: {e}")
            return False

    async def load(self) -> List[AssignmentView]:
        try:
            rows, crew_members = await asyncio.gather(
                self.repository.get_mission_assignments(self.mission_id, self.access_token),
                self.repository.get_crew_members(self.access_token),
            )
        except WorkflowGatewayError as e:
            logger.error(f"Error loading assignments for mission {self.mission_id}: {e}")
            self.notifier.error("Failed to load crew assignments")
            return self.assignments

        crew_by_id: Dict[str, CrewMember] = {member.id: member for member in crew_members}
        contract_flags = await asyncio.gather(*(self._contract_status(a) for a in rows))

        self.assignments = [
            to_view(assignment, crew_by_id.get(assignment.user_id), has_contract)
            for assignment, has_contract in zip(rows, contract_flags)
        ]
        return self.assignments

    def get(self, assignment_id: str) -> AssignmentView:
        for assignment in self.assignments:
            if assignment.id == assignment_id:
                return assignment
        raise AssignmentNotFoundError(f"Assignment {assignment_id} not found")

    async def add_assignment(self, data: AssignmentCreate) -> Assignment:
        try:
            validate_assignment(data)
        except AssignmentValidationError:
            self.notifier.error("Please fill all required fields")
            raise

        try:
            assignment = await self.repository.upsert_assignment(
                self.mission_id,
                data.user_id,
                data.position,
                data.engagement,
                self.default_day_rate if data.day_rate is None else data.day_rate,
                data.currency,
                data.start_date,
                data.end_date,
                access_token=self.access_token,
            )
        except WorkflowGatewayError:
            self.notifier.error("Failed to assign crew member")
            raise

        await self.load()
        self.notifier.success("Crew member assigned successfully")
        return assignment

    def remove_assignment(self, assignment_id: str) -> bool:
        """Drop an assignment from the panel only; no backend call is made"""
        before = len(self.assignments)
        self.assignments = [a for a in self.assignments if a.id != assignment_id]
        removed = len(self.assignments) < before
        if removed:
            logger.warning(f"Assignment {assignment_id} removed locally only; it will reappear on reload")
            self.notifier.success("Assignment removed")
        return removed

    async def generate_zero_hour_contract(self, assignment_id: str) -> Document:
        assignment = self.get(assignment_id)
        if not assignment.engagement.is_freelance:
            raise ContractNotApplicableError(
                f"Assignment {assignment_id} is {assignment.engagement.value}; zero hour contracts are for freelancers only"
            )
        crew_name = assignment.user.name if assignment.user else assignment.user_id
        try:
            document = await self.repository.create_document(
                ZERO_HOUR_CONTRACT,
                self.mission_id,
                assignment.user_id,
                f"/contracts/{self.mission_id}/{assignment.user_id}_zero_hour.pdf",
                f"Zero Hour Contract - {crew_name}",
                {
                    "assignment_id": assignment.id,
                    "position": assignment.position,
                    "day_rate": assignment.day_rate,
                    "currency": assignment.currency,
                },
                access_token=self.access_token,
            )
        except WorkflowGatewayError:
            self.notifier.error("Failed to generate contract")
            raise

        assignment.has_zero_hour_contract = True
        self.notifier.success("Zero hour contract generated")
        return document

    @property
    def total_cost(self) -> float:
        return sum(a.total_cost for a in self.assignments)
