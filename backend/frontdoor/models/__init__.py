"""
Database models.
"""

from frontdoor.models.user_data import UserData

__all__ = ["UserData"]
