from pydantic import BaseModel
from typing import Optional
from uuid import UUID


class AuthContext(BaseModel):
    principal_id: UUID
    role: str
    # Set only for customer-portal principals
    customer_id: Optional[UUID] = None
