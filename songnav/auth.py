"""
Church Song Navigator - Admin Auth

One shared admin password (stored in ``church_config``) unlocks the admin
area.  A correct password is exchanged for a fixed token (``ADMIN_TOKEN``)
that the browser keeps in an HTTP-only cookie; every admin request compares
that cookie against the token.  There is no logout and no expiry.

Usage:
    - `verify_password` in the login handler, then `set_admin_cookie`.
    - `is_admin(request)` on the admin page.
    - `admin_required` as a dependency on the JSON admin endpoints.
"""

import hmac

from fastapi import HTTPException, Request, Response

from songnav.config import ADMIN_COOKIE_NAME, ADMIN_TOKEN, COOKIE_SECURE

UNAUTHORIZED_MESSAGE = "未授权，请先登录"
WRONG_PASSWORD_MESSAGE = "密码错误"


class AdminAuthError(HTTPException):
    """403 raised by :func:`admin_required`; rendered as ``{success, error}`` JSON."""

    def __init__(self, message: str = UNAUTHORIZED_MESSAGE):
        super().__init__(status_code=403, detail=message)


# ---------------------------------------------------------------------------
# Password / token checks
# ---------------------------------------------------------------------------


def verify_password(candidate: str | None, stored: str | None) -> bool:
    """Constant-time comparison of a submitted password with the stored one."""
    if not candidate or not stored:
        return False
    return hmac.compare_digest(candidate.encode("utf-8"), stored.encode("utf-8"))


def is_admin(request: Request) -> bool:
    """True if the request carries the admin token cookie."""
    cookie = request.cookies.get(ADMIN_COOKIE_NAME, "")
    if not cookie:
        return False
    return hmac.compare_digest(cookie.encode("utf-8"), ADMIN_TOKEN.encode("utf-8"))


def set_admin_cookie(response: Response) -> None:
    """Hand the admin token to the browser."""
    response.set_cookie(
        key=ADMIN_COOKIE_NAME,
        value=ADMIN_TOKEN,
        httponly=True,
        samesite="strict",
        secure=COOKIE_SECURE,
        path="/",
    )


async def admin_required(request: Request) -> None:
    """FastAPI dependency guarding the JSON admin endpoints."""
    if not is_admin(request):
        raise AdminAuthError()
