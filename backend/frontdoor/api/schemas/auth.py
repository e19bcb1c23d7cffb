"""
Login state response schemas.
"""

from pydantic import BaseModel


class LoggedInResponse(BaseModel):
    """Whether the caller holds a valid session, and who they are."""
    logged_in: bool = False
    user_id: str = ""
    user_email: str = ""
    user_full_name: str = ""
