"""
Field mutation request schema.

Short keys keep the browser payload compact:
d = domain, s = session token, f = field, v = value, k = shared secret,
u = target user id (only used with the shared secret).
"""

from typing import Optional

from pydantic import BaseModel, Field


class MutationBody(BaseModel):
    d: Optional[str] = Field(None, description="Tenant domain, used when Origin/Referer is absent")
    s: Optional[str] = Field(None, description="Session token")
    f: Optional[str] = Field(None, description="Field name")
    v: Optional[str] = Field(None, description="New value")
    k: Optional[str] = Field(None, description="Shared mutation secret")
    u: Optional[str] = Field(None, description="Target user id for shared-secret writes")
