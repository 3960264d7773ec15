from .base import Session
from .manager import ManagerStatus, SessionHandle, SessionManager
from .stateful import StatefulSession
from .stateless import StatelessSession

__all__ = [
    "ManagerStatus",
    "Session",
    "SessionHandle",
    "SessionManager",
    "StatefulSession",
    "StatelessSession",
]
