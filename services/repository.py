"""
Workflow Repository Interface

Capabilities the workflow needs from a data source. Two implementations:
- services.workflow_gateway.SupabaseWorkflowGateway (hosted REST/RPC store)
- database.local_store.LocalWorkflowStore (in-memory fallback, tests)

Every method accepts the caller's bearer token; implementations that do not
authorize requests ignore it.
"""

from abc import ABC, abstractmethod
from datetime import date
from typing import List, Dict, Any, Optional

from models.mission import Mission, MissionStatus, ValidationStatus
from models.quote import Quote, QuoteItem, QuoteItemCreate
from models.assignment import Assignment, CrewMember, Engagement
from models.invoice import SupplierInvoice, SupplierInvoiceStatus
from models.document import Document
from models.client import Client, ClientApprovalToken


class WorkflowRepository(ABC):

    name = "abstract"

    @abstractmethod
    async def ping(self) -> bool:
        ...

    # ============ CLIENTS & CREW ============

    @abstractmethod
    async def get_clients(self, access_token: Optional[str] = None) -> List[Client]:
        ...

    @abstractmethod
    async def get_client(self, client_id: str, access_token: Optional[str] = None) -> Optional[Client]:
        ...

    @abstractmethod
    async def get_crew_members(self, access_token: Optional[str] = None) -> List[CrewMember]:
        ...

    # ============ MISSIONS ============

    @abstractmethod
    async def get_mission(self, mission_id: str, access_token: Optional[str] = None) -> Optional[Mission]:
        ...

    @abstractmethod
    async def update_mission_status(
        self, mission_id: str, status: MissionStatus, access_token: Optional[str] = None
    ) -> Mission:
        ...

    @abstractmethod
    async def update_mission_validation_status(
        self, mission_id: str, validation_status: ValidationStatus, access_token: Optional[str] = None
    ) -> Mission:
        ...

    # ============ QUOTES ============

    @abstractmethod
    async def create_mission_quote(
        self,
        mission_id: str,
        client_id: str,
        fee_pct: float,
        currency: str,
        total_amount: float = 0,
        access_token: Optional[str] = None,
    ) -> List[Quote]:
        ...

    @abstractmethod
    async def get_mission_quote(self, mission_id: str, access_token: Optional[str] = None) -> Optional[Quote]:
        """Latest quote of a mission"""
        ...

    @abstractmethod
    async def create_mission_quote_items(
        self, quote_id: str, items: List[QuoteItemCreate], access_token: Optional[str] = None
    ) -> List[QuoteItem]:
        ...

    @abstractmethod
    async def get_quote_items(self, quote_id: str, access_token: Optional[str] = None) -> List[QuoteItem]:
        ...

    # ============ CLIENT APPROVAL ============

    @abstractmethod
    async def generate_client_approval(
        self, mission_id: str, quote_id: str, client_id: str, access_token: Optional[str] = None
    ) -> str:
        """Mint an approval token and return it"""
        ...

    @abstractmethod
    async def get_client_approval(self, token: str) -> Optional[ClientApprovalToken]:
        ...

    @abstractmethod
    async def get_quote_approvals(self, quote_id: str, access_token: Optional[str] = None) -> List[ClientApprovalToken]:
        """Approval links issued for a quote, newest first"""
        ...

    @abstractmethod
    async def client_approve_quote(self, token: str) -> Dict[str, Any]:
        ...

    @abstractmethod
    async def client_reject_quote(self, token: str) -> Dict[str, Any]:
        ...

    # ============ ASSIGNMENTS & DOCUMENTS ============

    @abstractmethod
    async def get_mission_assignments(self, mission_id: str, access_token: Optional[str] = None) -> List[Assignment]:
        ...

    @abstractmethod
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
        """Insert or update keyed by (mission, user)"""
        ...

    @abstractmethod
    async def user_has_zero_hour_contract(self, user_id: str, access_token: Optional[str] = None) -> bool:
        ...

    @abstractmethod
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
        ...

    # ============ SUPPLIER INVOICES ============

    @abstractmethod
    async def create_supplier_invoice(
        self,
        assignment_id: str,
        invoice_number: str,
        amount: float,
        currency: str,
        pdf_path: Optional[str],
        access_token: Optional[str] = None,
    ) -> SupplierInvoice:
        ...

    @abstractmethod
    async def get_supplier_invoice(self, invoice_id: str, access_token: Optional[str] = None) -> Optional[SupplierInvoice]:
        ...

    @abstractmethod
    async def get_supplier_invoices(
        self, assignment_ids: List[str], access_token: Optional[str] = None
    ) -> List[SupplierInvoice]:
        ...

    @abstractmethod
    async def update_supplier_invoice_status(
        self, invoice_id: str, status: SupplierInvoiceStatus, access_token: Optional[str] = None
    ) -> SupplierInvoice:
        ...

    # ============ WORKFLOW TRACKING ============

    @abstractmethod
    async def get_mission_workflow_status(self, access_token: Optional[str] = None) -> List[Dict[str, Any]]:
        ...

    @abstractmethod
    async def get_notifications(self, access_token: Optional[str] = None) -> List[Dict[str, Any]]:
        ...

    @abstractmethod
    async def validate_and_invoice(self, mission_id: str, access_token: Optional[str] = None) -> Dict[str, Any]:
        ...
