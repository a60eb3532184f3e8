from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional

class Settings(BaseSettings):
    # Supabase Configuration
    supabase_project_id: str = "localproject"
    supabase_anon_key: str = "anon-key-placeholder"
    supabase_jwt_secret: Optional[str] = None

    # Data source: "supabase", "local" or "auto" (hosted store, local fallback when unreachable)
    data_source: str = "auto"

    # Workflow defaults
    default_fee_pct: float = 15.0
    default_currency: str = "EUR"
    default_day_rate: float = 500.0
    approval_token_days: int = 7

    # Session Configuration
    session_ttl_hours: int = 24

    # Local store simulated latency (milliseconds)
    local_latency_ms: int = 0

    # Application Configuration
    public_base_url: str = "http://localhost:3000"
    environment: str = "development"  # development, staging, production
    request_timeout_seconds: float = 10.0
    log_level: str = "INFO"

    @property
    def supabase_url(self) -> str:
        return f"https://{self.supabase_project_id}.supabase.co"

    @property
    def rest_base_url(self) -> str:
        """PostgREST endpoint of the hosted store"""
        return f"{self.supabase_url}/rest/v1"

    @property
    def edge_functions_base_url(self) -> str:
        return f"{self.supabase_url}/functions/v1/make-server-9fd39b98"

    @property
    def allow_unverified_tokens(self) -> bool:
        """Unsigned access tokens are only read in local development without a JWT secret"""
        return self.environment == "development" and self.data_source == "local"

    def client_approval_url(self, token: str) -> str:
        """Public deep link sent to the client"""
        return f"{self.public_base_url.rstrip('/')}/client-approval?token={token}"

    class Config:
        env_file = ".env"
        case_sensitive = False

@lru_cache()
def get_settings():
    return Settings()
