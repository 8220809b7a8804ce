"""
Resource grant schemas.
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from eventgate.kernel.models.permission import ResourceKind


class GrantRequest(BaseModel):
    """Grant a resource-scoped role (owner, member or viewer)."""

    role: str


class GrantResponse(BaseModel):
    """A resource-scoped grant."""

    resource_kind: ResourceKind
    resource_id: uuid.UUID
    principal_id: uuid.UUID
    granted_role: str
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
