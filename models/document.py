"""Generated paperwork records (contracts, assignment letters)"""

from pydantic import BaseModel, Field
from typing import Optional, Dict, Any
from datetime import datetime


ZERO_HOUR_CONTRACT = "zero_hour_contract"
TEMP_ASSIGNMENT_LETTER = "temp_assignment_letter"
FINAL_ASSIGNMENT_LETTER = "final_assignment_letter"


class Document(BaseModel):
    id: str
    type: str
    mission_id: Optional[str] = None
    user_id: Optional[str] = None
    storage_path: str
    title: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.utcnow)
