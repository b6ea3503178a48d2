"""Request identity: who is calling, and from where."""
from typing import Optional

from aiohttp import web

from .conf import SESSION_OBJECT
from .data import SessionData


def get_session(request: web.Request) -> Optional[SessionData]:
    """Return the SessionData attached to ``request``, if any."""
    session = request.get(SESSION_OBJECT)
    if isinstance(session, SessionData):
        return session
    return None


def get_request_ip(request: web.Request) -> str:
    """Client address: first X-Forwarded-For hop, X-Real-IP, then the peer."""
    forwarded = request.headers.get("X-Forwarded-For", "")
    first = forwarded.split(",")[0].strip()
    if first:
        return first
    real_ip = request.headers.get("X-Real-IP", "").strip()
    if real_ip:
        return real_ip
    return request.remote or "unknown"


class RequestIdentity:
    """Resolve the authenticated user id from the request session.

    Subclass and override :meth:`get_user_id` to plug in another
    identity provider.
    """

    async def get_user_id(self, request: web.Request) -> Optional[str]:
        session = get_session(request)
        if session is None or not session.is_authenticated:
            return None
        return str(session.identity)

    def get_ip(self, request: web.Request) -> str:
        return get_request_ip(request)
