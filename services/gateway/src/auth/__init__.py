"""Authentication module for the Admissions CRM Gateway."""

from .dependencies import get_automation_service, get_current_user
from .utils import create_access_token, decode_token

__all__ = [
    # Utils
    "create_access_token",
    "decode_token",
    # Dependencies
    "get_current_user",
    "get_automation_service",
]
