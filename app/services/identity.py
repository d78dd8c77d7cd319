"""
Visitor identity via a long-lived http-only cookie.

The id is opaque to the rest of the app; it only has to come back unchanged
on the client's next request so reconnects count as the same visitor.
"""
import logging
import re
import uuid
from typing import Optional, Tuple

from fastapi import Request, Response

from app.core.config import settings

logger = logging.getLogger("counter.identity")

_VISITOR_ID_RE = re.compile(r"^[A-Za-z0-9_-]{1,128}$")


class CookieIdentityResolver:
    """Reads the visitor cookie, minting a fresh UUID when it is missing or unusable."""

    def __init__(
        self,
        cookie_name: Optional[str] = None,
        max_age: Optional[int] = None,
        secure: Optional[bool] = None,
        samesite: Optional[str] = None,
    ):
        self.cookie_name = cookie_name or settings.VISITOR_COOKIE_NAME
        self.max_age = settings.VISITOR_COOKIE_MAX_AGE_SEC if max_age is None else max_age
        self.secure = settings.VISITOR_COOKIE_SECURE if secure is None else secure
        self.samesite = samesite or settings.VISITOR_COOKIE_SAMESITE

    def resolve(self, request: Request) -> Tuple[str, bool]:
        """Return (visitor_id, issued); issued is True when a new id was minted."""
        raw = request.cookies.get(self.cookie_name)
        if raw and _VISITOR_ID_RE.match(raw):
            return raw, False
        if raw:
            logger.debug("Discarding malformed visitor cookie (%d chars)", len(raw))
        return str(uuid.uuid4()), True

    def persist(self, response: Response, visitor_id: str) -> None:
        response.set_cookie(
            self.cookie_name,
            visitor_id,
            max_age=self.max_age,
            httponly=True,
            secure=self.secure,
            samesite=self.samesite,
        )


_resolver = CookieIdentityResolver()


def get_identity_resolver() -> CookieIdentityResolver:
    """FastAPI dependency; override in app.dependency_overrides to swap resolvers."""
    return _resolver
