"""Server-side sessions."""

from perch.session.adapters import MemoryAdapter, SessionAdapter
from perch.session.bag import Bag
from perch.session.manager import (
    STATUS_ACTIVE,
    STATUS_DISABLED,
    STATUS_NONE,
    SessionManager,
    generate_session_id,
)

__all__ = [
    "STATUS_ACTIVE",
    "STATUS_DISABLED",
    "STATUS_NONE",
    "Bag",
    "MemoryAdapter",
    "SessionAdapter",
    "SessionManager",
    "generate_session_id",
]
