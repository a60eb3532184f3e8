"""
Local Workflow Store

In-memory implementation of the workflow repository. Used when the hosted
store is unreachable (or DATA_SOURCE=local) and as the fake in tests.

Not synchronized with the hosted store. Stored procedures of the hosted
backend (token minting, token-keyed approval, assignment upsert, final
validation) are reproduced here so the workflow behaves the same locally.
"""

import asyncio
import logging
import secrets
import uuid
from datetime import datetime, timedelta, date
from typing import Dict, List, Any, Optional

from models.mission import Mission, MissionStatus, MissionEvent, ValidationStatus
from models.quote import Quote, QuoteItem, QuoteItemCreate, QuoteStatus
from models.assignment import Assignment, CrewMember, Engagement
from models.invoice import SupplierInvoice, SupplierInvoiceStatus
from models.document import Document, ZERO_HOUR_CONTRACT
from models.client import Client, ClientApprovalToken, ApprovalTokenStatus
from services.repository import WorkflowRepository
from services.workflow_gateway import WorkflowGatewayError
from services.mission_state import transition, transition_validation, transition_invoice

logger = logging.getLogger(__name__)


def generate_id() -> str:
    return str(uuid.uuid4())


class LocalWorkflowStore(WorkflowRepository):
    """
    In-memory tables keyed by id.

    Reads return copies so callers never mutate stored rows by accident.
    """

    name = "local"

    def __init__(self, latency_ms: int = 0, approval_token_days: int = 7, seed: bool = False):
        self.latency = latency_ms / 1000
        self.approval_token_days = approval_token_days

        self.clients: Dict[str, Client] = {}
        self.crew_members: Dict[str, CrewMember] = {}
        self.missions: Dict[str, Mission] = {}
        self.quotes: Dict[str, Quote] = {}
        self.quote_items: Dict[str, QuoteItem] = {}
        self.approvals: Dict[str, ClientApprovalToken] = {}
        self.assignments: Dict[str, Assignment] = {}
        self.documents: Dict[str, Document] = {}
        self.invoices: Dict[str, SupplierInvoice] = {}
        self.notifications: List[Dict[str, Any]] = []

        if seed:
            self.seed_sample_data()

    async def _delay(self):
        if self.latency:
            await asyncio.sleep(self.latency)

    def _notify(self, type: str, message: str, mission_id: Optional[str] = None):
        self.notifications.append({
            "id": generate_id(),
            "type": type,
            "message": message,
            "mission_id": mission_id,
            "created_at": datetime.utcnow().isoformat(),
        })

    # ============ SEEDING ============

    def add_client(self, client: Client) -> Client:
        self.clients[client.id] = client
        return client

    def add_crew_member(self, member: CrewMember) -> CrewMember:
        self.crew_members[member.id] = member
        return member

    def add_mission(self, mission: Mission) -> Mission:
        self.missions[mission.id] = mission
        return mission

    def seed_sample_data(self):
        """Sample clients, crew and one mission awaiting finance review"""
        self.add_client(Client(
            id="client-789",
            name="Acme Corporation",
            contact_name="John Smith",
            contact_email="john.smith@acme.com",
            contact_phone="+33 1 23 45 67 89",
        ))
        for member in [
            CrewMember(id="admin-001", name="Admin User", email="admin@crewtech.fr", role="admin"),
            CrewMember(id="internal-001", name="Pierre Dubois", email="internal@crewtech.fr", role="internal"),
            CrewMember(id="freelancer-001", name="Lisa Anderson", email="freelancer@aviation.com", role="freelancer"),
            CrewMember(id="freelancer-002", name="Marco Rossi", email="captain@freelance.eu", role="freelancer"),
        ]:
            self.add_crew_member(member)
        self.add_mission(Mission(
            id="mission-456",
            mission_number="MO-2024-001",
            aircraft_type="Citation CJ3",
            client_id="client-789",
            departure_airport="LFPB",
            arrival_airport="EGKB",
            start_date=date(2024, 2, 15),
            end_date=date(2024, 2, 15),
        ))
        logger.info(f"Local store seeded: {len(self.clients)} clients, {len(self.crew_members)} crew, {len(self.missions)} missions")

    async def ping(self) -> bool:
        return True

    # ============ CLIENTS & CREW ============

    async def get_clients(self, access_token: Optional[str] = None) -> List[Client]:
        await self._delay()
        return sorted((c.model_copy() for c in self.clients.values()), key=lambda c: c.name)

    async def get_client(self, client_id: str, access_token: Optional[str] = None) -> Optional[Client]:
        await self._delay()
        client = self.clients.get(client_id)
        return client.model_copy() if client else None

    async def get_crew_members(self, access_token: Optional[str] = None) -> List[CrewMember]:
        await self._delay()
        return sorted((m.model_copy() for m in self.crew_members.values()), key=lambda m: m.name)

    # ============ MISSIONS ============

    def _require_mission(self, mission_id: str, operation: str) -> Mission:
        mission = self.missions.get(mission_id)
        if mission is None:
            raise WorkflowGatewayError(f"Failed to {operation}: mission {mission_id} not found", status_code=404)
        return mission

    async def get_mission(self, mission_id: str, access_token: Optional[str] = None) -> Optional[Mission]:
        await self._delay()
        mission = self.missions.get(mission_id)
        return mission.model_copy() if mission else None

    async def update_mission_status(
        self, mission_id: str, status: MissionStatus, access_token: Optional[str] = None
    ) -> Mission:
        await self._delay()
        mission = self._require_mission(mission_id, "update mission status")
        mission.status = MissionStatus(status)
        return mission.model_copy()

    async def update_mission_validation_status(
        self, mission_id: str, validation_status: ValidationStatus, access_token: Optional[str] = None
    ) -> Mission:
        await self._delay()
        mission = self._require_mission(mission_id, "update mission validation status")
        mission.validation_status = ValidationStatus(validation_status)
        return mission.model_copy()

    # ============ QUOTES ============

    async def create_mission_quote(
        self,
        mission_id: str,
        client_id: str,
        fee_pct: float,
        currency: str,
        total_amount: float = 0,
        access_token: Optional[str] = None,
    ) -> List[Quote]:
        await self._delay()
        self._require_mission(mission_id, "create mission quote")
        quote = Quote(
            id=generate_id(),
            mission_id=mission_id,
            client_id=client_id,
            fee_pct=fee_pct,
            currency=currency,
            total_amount=total_amount,
        )
        self.quotes[quote.id] = quote
        return [quote.model_copy()]

    async def get_mission_quote(self, mission_id: str, access_token: Optional[str] = None) -> Optional[Quote]:
        await self._delay()
        quotes = [q for q in self.quotes.values() if q.mission_id == mission_id]
        if not quotes:
            return None
        return max(quotes, key=lambda q: q.created_at).model_copy()

    async def create_mission_quote_items(
        self, quote_id: str, items: List[QuoteItemCreate], access_token: Optional[str] = None
    ) -> List[QuoteItem]:
        await self._delay()
        if quote_id not in self.quotes:
            raise WorkflowGatewayError(f"Failed to create mission quote items: quote {quote_id} not found", status_code=404)
        created = []
        for item in items:
            row = QuoteItem(id=generate_id(), quote_id=quote_id, **item.model_dump())
            self.quote_items[row.id] = row
            created.append(row.model_copy())
        return created

    async def get_quote_items(self, quote_id: str, access_token: Optional[str] = None) -> List[QuoteItem]:
        await self._delay()
        return [i.model_copy() for i in self.quote_items.values() if i.quote_id == quote_id]

    # ============ CLIENT APPROVAL ============

    async def generate_client_approval(
        self, mission_id: str, quote_id: str, client_id: str, access_token: Optional[str] = None
    ) -> str:
        await self._delay()
        if quote_id not in self.quotes:
            raise WorkflowGatewayError(f"Failed to generate client approval: quote {quote_id} not found", status_code=404)
        now = datetime.utcnow()
        approval = ClientApprovalToken(
            token=secrets.token_urlsafe(32),
            mission_id=mission_id,
            quote_id=quote_id,
            client_id=client_id,
            expires_at=now + timedelta(days=self.approval_token_days),
            created_at=now,
        )
        self.approvals[approval.token] = approval
        self.quotes[quote_id].expires_at = approval.expires_at
        self._notify("client_approval_sent", f"Approval link generated for quote {quote_id}", mission_id)
        return approval.token

    async def get_client_approval(self, token: str) -> Optional[ClientApprovalToken]:
        await self._delay()
        approval = self.approvals.get(token)
        return approval.model_copy() if approval else None

    async def get_quote_approvals(self, quote_id: str, access_token: Optional[str] = None) -> List[ClientApprovalToken]:
        await self._delay()
        approvals = [a for a in self.approvals.values() if a.quote_id == quote_id]
        return [a.model_copy() for a in sorted(approvals, key=lambda a: a.created_at, reverse=True)]

    def _open_approval(self, token: str, operation: str) -> ClientApprovalToken:
        approval = self.approvals.get(token)
        if approval is None:
            raise WorkflowGatewayError(f"Failed to {operation}: invalid token", status_code=404)
        if approval.is_expired():
            raise WorkflowGatewayError(f"Failed to {operation}: token expired", status_code=410)
        if approval.status != ApprovalTokenStatus.PENDING:
            raise WorkflowGatewayError(f"Failed to {operation}: token already used", status_code=409)
        return approval

    async def _answer_quote(self, token: str, approve: bool) -> Dict[str, Any]:
        operation = "approve quote" if approve else "reject quote"
        await self._delay()
        approval = self._open_approval(token, operation)
        mission = self._require_mission(approval.mission_id, operation)
        quote = self.quotes[approval.quote_id]

        event = MissionEvent.CLIENT_APPROVE if approve else MissionEvent.CLIENT_REJECT
        new_status = transition(mission.status, event)

        mission.status = new_status
        quote.client_approved = approve
        quote.status = QuoteStatus.APPROVED if approve else QuoteStatus.REJECTED
        approval.status = ApprovalTokenStatus.APPROVED if approve else ApprovalTokenStatus.REJECTED
        approval.used_at = datetime.utcnow()

        self._notify(f"quote_{quote.status.value}", f"Client {quote.status.value} quote {quote.id}", mission.id)
        logger.info(f"Quote {quote.id} {quote.status.value} by client, mission {mission.id} -> {new_status.value}")
        return {
            "success": True,
            "mission_id": mission.id,
            "quote_id": quote.id,
            "status": quote.status.value,
            "mission_status": new_status.value,
        }

    async def client_approve_quote(self, token: str) -> Dict[str, Any]:
        return await self._answer_quote(token, approve=True)

    async def client_reject_quote(self, token: str) -> Dict[str, Any]:
        return await self._answer_quote(token, approve=False)

    # ============ ASSIGNMENTS & DOCUMENTS ============

    async def get_mission_assignments(self, mission_id: str, access_token: Optional[str] = None) -> List[Assignment]:
        await self._delay()
        return [a.model_copy() for a in self.assignments.values() if a.mission_id == mission_id]

    async def upsert_assignment(
        self,
        mission_id: str,
        user_id: str,
        position: str,
        engagement: Engagement,
        day_rate: float,
        currency: str,
        start_date: date,
        end_date: date,
        access_token: Optional[str] = None,
    ) -> Assignment:
        await self._delay()
        self._require_mission(mission_id, "upsert assignment")
        fields = {
            "position": position,
            "engagement": Engagement(engagement),
            "day_rate": day_rate,
            "currency": currency,
            "start_date": start_date,
            "end_date": end_date,
        }
        for assignment in self.assignments.values():
            if assignment.mission_id == mission_id and assignment.user_id == user_id:
                for key, value in fields.items():
                    setattr(assignment, key, value)
                return assignment.model_copy()

        assignment = Assignment(id=generate_id(), mission_id=mission_id, user_id=user_id, **fields)
        self.assignments[assignment.id] = assignment
        return assignment.model_copy()

    async def user_has_zero_hour_contract(self, user_id: str, access_token: Optional[str] = None) -> bool:
        await self._delay()
        return any(
            d.type == ZERO_HOUR_CONTRACT and d.user_id == user_id
            for d in self.documents.values()
        )

    async def create_document(
        self,
        type: str,
        mission_id: Optional[str],
        user_id: Optional[str],
        storage_path: str,
        title: str,
        metadata: Dict[str, Any],
        access_token: Optional[str] = None,
    ) -> Document:
        await self._delay()
        document = Document(
            id=generate_id(),
            type=type,
            mission_id=mission_id,
            user_id=user_id,
            storage_path=storage_path,
            title=title,
            metadata=metadata or {},
        )
        self.documents[document.id] = document
        return document.model_copy()

    # ============ SUPPLIER INVOICES ============

    async def create_supplier_invoice(
        self,
        assignment_id: str,
        invoice_number: str,
        amount: float,
        currency: str,
        pdf_path: Optional[str],
        access_token: Optional[str] = None,
    ) -> SupplierInvoice:
        await self._delay()
        if assignment_id not in self.assignments:
            raise WorkflowGatewayError(
                f"Failed to create supplier invoice: assignment {assignment_id} not found", status_code=404
            )
        invoice = SupplierInvoice(
            id=generate_id(),
            assignment_id=assignment_id,
            invoice_number=invoice_number,
            amount=amount,
            currency=currency,
            pdf_path=pdf_path,
        )
        self.invoices[invoice.id] = invoice
        return invoice.model_copy()

    async def get_supplier_invoice(self, invoice_id: str, access_token: Optional[str] = None) -> Optional[SupplierInvoice]:
        await self._delay()
        invoice = self.invoices.get(invoice_id)
        return invoice.model_copy() if invoice else None

    async def get_supplier_invoices(
        self, assignment_ids: List[str], access_token: Optional[str] = None
    ) -> List[SupplierInvoice]:
        await self._delay()
        wanted = set(assignment_ids)
        return [i.model_copy() for i in self.invoices.values() if i.assignment_id in wanted]

    async def update_supplier_invoice_status(
        self, invoice_id: str, status: SupplierInvoiceStatus, access_token: Optional[str] = None
    ) -> SupplierInvoice:
        await self._delay()
        invoice = self.invoices.get(invoice_id)
        if invoice is None:
            raise WorkflowGatewayError(
                f"Failed to update supplier invoice status: invoice {invoice_id} not found", status_code=404
            )
        invoice.status = transition_invoice(invoice.status, status)
        return invoice.model_copy()

    # ============ WORKFLOW TRACKING ============

    async def get_mission_workflow_status(self, access_token: Optional[str] = None) -> List[Dict[str, Any]]:
        """Equivalent of the hosted mission_workflow_status view"""
        await self._delay()
        rows = []
        for mission in self.missions.values():
            assignment_ids = {a.id for a in self.assignments.values() if a.mission_id == mission.id}
            quotes = [q for q in self.quotes.values() if q.mission_id == mission.id]
            invoices = [i for i in self.invoices.values() if i.assignment_id in assignment_ids]
            rows.append({
                "mission_id": mission.id,
                "status": mission.status.value,
                "validation_status": mission.validation_status.value,
                "quote_count": len(quotes),
                "quote_approved": any(q.client_approved for q in quotes),
                "assignment_count": len(assignment_ids),
                "invoice_count": len(invoices),
                "invoices_pending": sum(1 for i in invoices if i.status == SupplierInvoiceStatus.UPLOADED),
            })
        return rows

    async def get_notifications(self, access_token: Optional[str] = None) -> List[Dict[str, Any]]:
        await self._delay()
        return sorted(self.notifications, key=lambda n: n["created_at"], reverse=True)

    async def validate_and_invoice(self, mission_id: str, access_token: Optional[str] = None) -> Dict[str, Any]:
        await self._delay()
        mission = self._require_mission(mission_id, "validate and invoice")
        mission.validation_status = transition_validation(mission.validation_status, "validate", mission.status)
        self._notify("mission_validated", f"Mission {mission.mission_number or mission.id} validated", mission_id)
        logger.info(f"Mission {mission_id} validated and queued for client invoicing")
        return {"success": True, "mission_id": mission_id, "validation_status": mission.validation_status.value}
