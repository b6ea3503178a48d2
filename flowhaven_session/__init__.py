"""FlowHaven Session.

End-to-end field encryption and per-user cached data access.
"""
from .version import __version__
from .data import SessionData
from .auth import AuthController
from .repository import EntityRepository
from .identity import RequestIdentity, get_request_ip

__all__ = (
    "__version__",
    "SessionData",
    "AuthController",
    "EntityRepository",
    "RequestIdentity",
    "get_request_ip",
)
