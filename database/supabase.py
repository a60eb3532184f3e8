from typing import Optional
import logging

from services.repository import WorkflowRepository
from services.workflow_gateway import SupabaseWorkflowGateway
from database.local_store import LocalWorkflowStore

logger = logging.getLogger(__name__)

class Database:
    """Holds the active workflow data source for the process"""
    repository: Optional[WorkflowRepository] = None
    gateway: Optional[SupabaseWorkflowGateway] = None

    async def connect(
        self,
        rest_base_url: str,
        anon_key: str,
        data_source: str = "auto",
        timeout: float = 10.0,
        local_latency_ms: int = 0,
        approval_token_days: int = 7
    ):
        """Connect to the hosted store, or fall back to the local store"""
        if data_source == "local":
            self.use_local(local_latency_ms, approval_token_days)
            return

        self.gateway = SupabaseWorkflowGateway(rest_base_url, anon_key, timeout=timeout)
        # Verify connection
        if await self.gateway.ping():
            self.repository = self.gateway
            logger.info(f"Connected to Supabase REST API: {rest_base_url}")
            return

        if data_source == "supabase":
            await self.disconnect()
            raise Exception(f"Supabase REST API unreachable: {rest_base_url}")

        logger.warning("Supabase unreachable, falling back to local in-memory store")
        await self.gateway.aclose()
        self.gateway = None
        self.use_local(local_latency_ms, approval_token_days)

    def use_local(self, latency_ms: int = 0, approval_token_days: int = 7):
        self.repository = LocalWorkflowStore(
            latency_ms=latency_ms,
            approval_token_days=approval_token_days,
            seed=True
        )
        logger.info("Using local in-memory workflow store")

    async def disconnect(self):
        """Close the HTTP client"""
        if self.gateway:
            await self.gateway.aclose()
            logger.info("Disconnected from Supabase")
        self.gateway = None
        self.repository = None

    def get_repository(self) -> WorkflowRepository:
        """Get repository instance"""
        if self.repository is None:
            raise Exception("Database not connected")
        return self.repository

db = Database()

async def get_database() -> WorkflowRepository:
    return db.get_repository()
