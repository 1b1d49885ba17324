"""First-visit and referral capture cookies.

Every response to a browser that has not been seen before marks it as
visited (a year-long cookie) and as being in its first session (a session
cookie). A ``?ref=`` query parameter, with any ``utm_*`` companions, is
stored in cookies so the referral survives until the visitor signs up.
"""

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from polymatic.referrals.service import REF_COOKIE, UTM_COOKIES

VISITED_COOKIE = "poly_has_visited_before"
LEGACY_VISITED_COOKIE = "poly_visited"
FIRST_SESSION_COOKIE = "poly_first_session"

_ONE_YEAR = 60 * 60 * 24 * 365
_MAX_COOKIE_VALUE = 64


class VisitCookieMiddleware(BaseHTTPMiddleware):
    """Set visit-tracking cookies and capture referral parameters."""

    def __init__(self, app, secure: bool = True, referral_max_age_days: int = 30) -> None:  # noqa: ANN001
        super().__init__(app)
        self.secure = secure
        self.referral_max_age = referral_max_age_days * 24 * 60 * 60

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        response = await call_next(request)

        visited = VISITED_COOKIE in request.cookies or LEGACY_VISITED_COOKIE in request.cookies
        if not visited:
            response.set_cookie(
                VISITED_COOKIE, "1", max_age=_ONE_YEAR, path="/", samesite="lax", secure=self.secure,
            )
            response.set_cookie(FIRST_SESSION_COOKIE, "1", path="/", samesite="lax", secure=self.secure)

        ref = request.query_params.get("ref")
        if ref and len(ref) <= _MAX_COOKIE_VALUE:
            response.set_cookie(
                REF_COOKIE, ref, max_age=self.referral_max_age, path="/", samesite="lax", secure=self.secure,
            )
            for param, cookie in UTM_COOKIES.items():
                value = request.query_params.get(param)
                if value and len(value) <= _MAX_COOKIE_VALUE:
                    response.set_cookie(
                        cookie, value, max_age=self.referral_max_age, path="/", samesite="lax", secure=self.secure,
                    )

        return response
