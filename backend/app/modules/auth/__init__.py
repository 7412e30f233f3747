"""User profile module (accounts are authenticated upstream)."""

from app.modules.auth.models import User
from app.modules.auth.repository import UserRepository

__all__ = ["User", "UserRepository"]
