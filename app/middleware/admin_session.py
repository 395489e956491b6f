from __future__ import annotations

from typing import Iterable

from starlette.middleware.base import BaseHTTPMiddleware

from app.core.request_context import set_request_context
from app.services.admin_auth import ADMIN_SESSION_COOKIE, decode_admin_session

STAFF_PATH_PREFIXES = ("/api/admin", "/internal")
STAFF_PATHS = ("/api/coupons/redeem",)


class AdminSessionMiddleware(BaseHTTPMiddleware):
    """Attach the decoded staff session to ``request.state.admin_session_payload``.

    Storefront routes such as coupon validation never read the cookie; only
    back-office prefixes and the redemption endpoint do.
    """

    def __init__(
        self,
        app,
        *,
        path_prefixes: Iterable[str] = STAFF_PATH_PREFIXES,
        paths: Iterable[str] = STAFF_PATHS,
    ) -> None:
        super().__init__(app)
        self._path_prefixes = tuple(path_prefixes)
        self._paths = frozenset(paths)

    def is_staff_path(self, path: str) -> bool:
        return path in self._paths or path.startswith(self._path_prefixes)

    async def dispatch(self, request, call_next):
        payload = None
        token = request.cookies.get(ADMIN_SESSION_COOKIE)
        if token and self.is_staff_path(request.url.path):
            payload = decode_admin_session(token)
            if payload:
                set_request_context(user_id=payload.get("user_id"))
        request.state.admin_session_payload = payload

        return await call_next(request)
