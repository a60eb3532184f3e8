"""
Mission Workflow Gateway - Supabase REST/RPC client

Translates workflow operations into PostgREST calls against the hosted store.
No business logic beyond request shaping:
- tables:            /rest/v1/{table}
- stored procedures: /rest/v1/rpc/{name}

Failure semantics: any non-2xx response raises WorkflowGatewayError. 4xx and
5xx are not distinguished. No retry, no backoff, no idempotency key.
"""

import httpx
import logging
from datetime import date
from typing import List, Dict, Any, Optional

from models.mission import Mission, MissionStatus, ValidationStatus
from models.quote import Quote, QuoteItem, QuoteItemCreate
from models.assignment import Assignment, CrewMember, Engagement
from models.invoice import SupplierInvoice, SupplierInvoiceStatus
from models.document import Document
from models.client import Client, ClientApprovalToken
from services.repository import WorkflowRepository

logger = logging.getLogger(__name__)


class WorkflowGatewayError(Exception):
    """A backend call failed (non-2xx response or transport error)"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class SupabaseWorkflowGateway(WorkflowRepository):
    """
    Gateway to the hosted relational store.

    Headers sent on every call:
    - Authorization: Bearer <user token, or anon key for public calls>
    - apikey: <anon key>
    """

    name = "supabase"

    def __init__(
        self,
        base_url: str,
        anon_key: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0
    ):
        self.base_url = base_url.rstrip("/")
        self.anon_key = anon_key
        self.client = client or httpx.AsyncClient(base_url=self.base_url, timeout=timeout)

    async def aclose(self):
        await self.client.aclose()

    def _headers(self, access_token: Optional[str] = None, returning: bool = False) -> Dict[str, str]:
        headers = {
            "Authorization": f"Bearer {access_token or self.anon_key}",
            "Content-Type": "application/json",
            "apikey": self.anon_key,
        }
        if returning:
            headers["Prefer"] = "return=representation"
        return headers

    async def _request(
        self,
        operation: str,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
        access_token: Optional[str] = None,
        returning: bool = False
    ) -> Any:
        try:
            response = await self.client.request(
                method,
                path,
                params=params,
                json=json,
                headers=self._headers(access_token, returning=returning)
            )
        except httpx.HTTPError as e:
            logger.error(f"Error trying to {operation}: {e}")
            raise WorkflowGatewayError(f"Failed to {operation}: {e}") from e

        if not response.is_success:
            logger.error(f"Error trying to {operation}: HTTP {response.status_code} {response.text[:200]}")
            raise WorkflowGatewayError(
                f"Failed to {operation}: {response.status_code}",
                status_code=response.status_code
            )

        if not response.content:
            return None
        return response.json()

    @staticmethod
    def _first(rows: Any) -> Optional[Dict[str, Any]]:
        if isinstance(rows, list):
            return rows[0] if rows else None
        return rows

    async def ping(self) -> bool:
        """Reachability check used to pick the data source at startup"""
        try:
            response = await self.client.get("/", headers=self._headers())
            return response.status_code < 500
        except httpx.HTTPError as e:
            logger.warning(f"Supabase unreachable: {e}")
            return False

    # ============ CLIENTS & CREW ============

    async def get_clients(self, access_token: Optional[str] = None) -> List[Client]:
        rows = await self._request(
            "fetch clients", "GET", "/clients",
            params={"select": "id,name,contact_name,contact_email,contact_phone", "order": "name.asc"},
            access_token=access_token
        )
        return [Client(**row) for row in rows or []]

    async def get_client(self, client_id: str, access_token: Optional[str] = None) -> Optional[Client]:
        rows = await self._request(
            "fetch client", "GET", "/clients",
            params={"select": "*", "id": f"eq.{client_id}"},
            access_token=access_token
        )
        row = self._first(rows)
        return Client(**row) if row else None

    async def get_crew_members(self, access_token: Optional[str] = None) -> List[CrewMember]:
        rows = await self._request(
            "fetch crew members", "GET", "/crew_members",
            params={"select": "id,name,email,role", "order": "name.asc"},
            access_token=access_token
        )
        return [CrewMember(**row) for row in rows or []]

    # ============ MISSIONS ============

    async def get_mission(self, mission_id: str, access_token: Optional[str] = None) -> Optional[Mission]:
        rows = await self._request(
            "fetch mission", "GET", "/missions",
            params={"select": "*", "id": f"eq.{mission_id}"},
            access_token=access_token
        )
        row = self._first(rows)
        return Mission(**row) if row else None

    async def _patch_mission(self, operation: str, mission_id: str, payload: Dict[str, Any], access_token) -> Mission:
        rows = await self._request(
            operation, "PATCH", "/missions",
            params={"id": f"eq.{mission_id}"},
            json=payload,
            access_token=access_token,
            returning=True
        )
        row = self._first(rows)
        if row is None:
            raise WorkflowGatewayError(f"Failed to {operation}: mission {mission_id} not found", status_code=404)
        return Mission(**row)

    async def update_mission_status(
        self, mission_id: str, status: MissionStatus, access_token: Optional[str] = None
    ) -> Mission:
        return await self._patch_mission(
            "update mission status", mission_id, {"status": MissionStatus(status).value}, access_token
        )

    async def update_mission_validation_status(
        self, mission_id: str, validation_status: ValidationStatus, access_token: Optional[str] = None
    ) -> Mission:
        return await self._patch_mission(
            "update mission validation status",
            mission_id,
            {"validation_status": ValidationStatus(validation_status).value},
            access_token
        )

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
        rows = await self._request(
            "create mission quote", "POST", "/mission_quotes",
            json={
                "mission_id": mission_id,
                "client_id": client_id,
                "fee_pct": fee_pct,
                "currency": currency,
                "total_amount": total_amount,
            },
            access_token=access_token,
            returning=True
        )
        return [Quote(**row) for row in rows or []]

    async def get_mission_quote(self, mission_id: str, access_token: Optional[str] = None) -> Optional[Quote]:
        rows = await self._request(
            "fetch mission quote", "GET", "/mission_quotes",
            params={"select": "*", "mission_id": f"eq.{mission_id}", "order": "created_at.desc", "limit": 1},
            access_token=access_token
        )
        row = self._first(rows)
        return Quote(**row) if row else None

    async def create_mission_quote_items(
        self, quote_id: str, items: List[QuoteItemCreate], access_token: Optional[str] = None
    ) -> List[QuoteItem]:
        payload = [{**item.model_dump(), "quote_id": quote_id} for item in items]
        rows = await self._request(
            "create mission quote items", "POST", "/mission_quote_items",
            json=payload,
            access_token=access_token,
            returning=True
        )
        return [QuoteItem(**row) for row in rows or []]

    async def get_quote_items(self, quote_id: str, access_token: Optional[str] = None) -> List[QuoteItem]:
        rows = await self._request(
            "fetch quote items", "GET", "/mission_quote_items",
            params={"select": "*", "quote_id": f"eq.{quote_id}"},
            access_token=access_token
        )
        return [QuoteItem(**row) for row in rows or []]

    # ============ CLIENT APPROVAL ============

    async def generate_client_approval(
        self, mission_id: str, quote_id: str, client_id: str, access_token: Optional[str] = None
    ) -> str:
        result = await self._request(
            "generate client approval", "POST", "/rpc/generate_client_approval",
            json={"p_mission_id": mission_id, "p_quote_id": quote_id, "p_client_id": client_id},
            access_token=access_token
        )
        # The procedure may return the bare token, a row, or a one-row set
        row = self._first(result)
        if isinstance(row, dict):
            token = row.get("approval_token") or row.get("token")
        else:
            token = row
        if not token:
            raise WorkflowGatewayError("Failed to generate client approval: no token returned")
        return str(token)

    async def get_client_approval(self, token: str) -> Optional[ClientApprovalToken]:
        rows = await self._request(
            "fetch client approval", "GET", "/client_approvals",
            params={"select": "*", "token": f"eq.{token}"}
        )
        row = self._first(rows)
        return ClientApprovalToken(**row) if row else None

    async def get_quote_approvals(self, quote_id: str, access_token: Optional[str] = None) -> List[ClientApprovalToken]:
        rows = await self._request(
            "fetch quote approvals", "GET", "/client_approvals",
            params={"select": "*", "quote_id": f"eq.{quote_id}", "order": "created_at.desc"},
            access_token=access_token
        )
        return [ClientApprovalToken(**row) for row in rows or []]

    async def client_approve_quote(self, token: str) -> Dict[str, Any]:
        # Public link flow: no caller identity, anon key only
        result = await self._request(
            "approve quote", "POST", "/rpc/client_approve_quote", json={"p_token": token}
        )
        return result if isinstance(result, dict) else {"result": result}

    async def client_reject_quote(self, token: str) -> Dict[str, Any]:
        result = await self._request(
            "reject quote", "POST", "/rpc/client_reject_quote", json={"p_token": token}
        )
        return result if isinstance(result, dict) else {"result": result}

    # ============ ASSIGNMENTS & DOCUMENTS ============

    async def get_mission_assignments(self, mission_id: str, access_token: Optional[str] = None) -> List[Assignment]:
        rows = await self._request(
            "fetch mission assignments", "GET", "/mission_assignments",
            params={"select": "*", "mission_id": f"eq.{mission_id}"},
            access_token=access_token
        )
        return [Assignment(**row) for row in rows or []]

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
        result = await self._request(
            "upsert assignment", "POST", "/rpc/upsert_assignment",
            json={
                "p_mission_id": mission_id,
                "p_user_id": user_id,
                "p_position": position,
                "p_engagement": Engagement(engagement).value,
                "p_day_rate": day_rate,
                "p_currency": currency,
                "p_start_date": start_date.isoformat(),
                "p_end_date": end_date.isoformat(),
            },
            access_token=access_token
        )
        row = self._first(result)
        if isinstance(row, dict) and "id" in row:
            return Assignment(**row)
        # Procedure returned only the id
        return Assignment(
            id=str(row),
            mission_id=mission_id,
            user_id=user_id,
            position=position,
            engagement=engagement,
            day_rate=day_rate,
            currency=currency,
            start_date=start_date,
            end_date=end_date,
        )

    async def user_has_zero_hour_contract(self, user_id: str, access_token: Optional[str] = None) -> bool:
        result = await self._request(
            "check zero hour contract", "GET", "/rpc/user_has_zero_hour_contract",
            params={"p_user_id": user_id},
            access_token=access_token
        )
        return bool(result)

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
        rows = await self._request(
            "create document", "POST", "/documents",
            json={
                "type": type,
                "mission_id": mission_id,
                "user_id": user_id,
                "storage_path": storage_path,
                "title": title,
                "metadata": metadata,
            },
            access_token=access_token,
            returning=True
        )
        return Document(**self._first(rows))

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
        rows = await self._request(
            "create supplier invoice", "POST", "/supplier_invoices",
            json={
                "assignment_id": assignment_id,
                "invoice_number": invoice_number,
                "amount": amount,
                "currency": currency,
                "pdf_path": pdf_path,
                "status": SupplierInvoiceStatus.UPLOADED.value,
            },
            access_token=access_token,
            returning=True
        )
        return SupplierInvoice(**self._first(rows))

    async def get_supplier_invoice(self, invoice_id: str, access_token: Optional[str] = None) -> Optional[SupplierInvoice]:
        rows = await self._request(
            "fetch supplier invoice", "GET", "/supplier_invoices",
            params={"select": "*", "id": f"eq.{invoice_id}"},
            access_token=access_token
        )
        row = self._first(rows)
        return SupplierInvoice(**row) if row else None

    async def get_supplier_invoices(
        self, assignment_ids: List[str], access_token: Optional[str] = None
    ) -> List[SupplierInvoice]:
        if not assignment_ids:
            return []
        rows = await self._request(
            "fetch supplier invoices", "GET", "/supplier_invoices",
            params={"select": "*", "assignment_id": f"in.({','.join(assignment_ids)})"},
            access_token=access_token
        )
        return [SupplierInvoice(**row) for row in rows or []]

    async def update_supplier_invoice_status(
        self, invoice_id: str, status: SupplierInvoiceStatus, access_token: Optional[str] = None
    ) -> SupplierInvoice:
        rows = await self._request(
            "update supplier invoice status", "PATCH", "/supplier_invoices",
            params={"id": f"eq.{invoice_id}"},
            json={"status": SupplierInvoiceStatus(status).value},
            access_token=access_token,
            returning=True
        )
        row = self._first(rows)
        if row is None:
            raise WorkflowGatewayError(
                f"Failed to update supplier invoice status: invoice {invoice_id} not found", status_code=404
            )
        return SupplierInvoice(**row)

    # ============ WORKFLOW TRACKING ============

    async def get_mission_workflow_status(self, access_token: Optional[str] = None) -> List[Dict[str, Any]]:
        rows = await self._request(
            "fetch workflow status", "GET", "/mission_workflow_status",
            params={"select": "*"},
            access_token=access_token
        )
        return rows or []

    async def get_notifications(self, access_token: Optional[str] = None) -> List[Dict[str, Any]]:
        rows = await self._request(
            "fetch notifications", "GET", "/notifications",
            params={"select": "*", "order": "created_at.desc"},
            access_token=access_token
        )
        return rows or []

    async def validate_and_invoice(self, mission_id: str, access_token: Optional[str] = None) -> Dict[str, Any]:
        result = await self._request(
            "validate and invoice", "POST", "/rpc/rpc_validate_and_invoice",
            json={"p_mission_id": mission_id},
            access_token=access_token
        )
        return result if isinstance(result, dict) else {"result": result}
