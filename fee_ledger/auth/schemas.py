from typing import Dict, Optional
from uuid import UUID

from pydantic import BaseModel


class CurrentUser(BaseModel):
    """Lightweight representation of the authenticated user for RBAC checks.
    school_code scopes every query; academic_year_id and academic_year_status come from the
    session's active academic year.
    """

    id: UUID
    school_code: str
    role: str
    permissions: Dict[str, Dict[str, bool]]
    academic_year_id: Optional[UUID] = None
    academic_year_status: Optional[str] = None  # ACTIVE | CLOSED; CLOSED => read-only
