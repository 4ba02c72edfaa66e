"""Session and guest cookie helpers"""

from fastapi import Response

from photoshare.config import settings
from photoshare.core.security import decode_refresh_token


def _cookie_kwargs() -> dict:
    return {
        "httponly": True,
        "secure": settings.COOKIE_SECURE,
        "samesite": settings.COOKIE_SAMESITE,
    }


def _lifetime_seconds(refresh_token: str) -> int:
    payload = decode_refresh_token(refresh_token)
    if not payload:
        return settings.REFRESH_TOKEN_EXPIRE_DAYS * 24 * 3600
    return payload["exp"] - payload["iat"]


def set_session_cookies(response: Response, access_token: str, refresh_token: str) -> None:
    """
    Attach the access and refresh cookies

    The refresh cookie is scoped to the auth router so it only travels
    with refresh, logout and session requests.
    """
    response.set_cookie(
        settings.ACCESS_COOKIE_NAME,
        access_token,
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        path="/",
        **_cookie_kwargs(),
    )
    response.set_cookie(
        settings.REFRESH_COOKIE_NAME,
        refresh_token,
        max_age=_lifetime_seconds(refresh_token),
        path=settings.REFRESH_COOKIE_PATH,
        **_cookie_kwargs(),
    )


def clear_session_cookies(response: Response) -> None:
    response.delete_cookie(settings.ACCESS_COOKIE_NAME, path="/", **_cookie_kwargs())
    response.delete_cookie(
        settings.REFRESH_COOKIE_NAME,
        path=settings.REFRESH_COOKIE_PATH,
        **_cookie_kwargs(),
    )


def set_guest_cookie(response: Response, guest_token: str) -> None:
    response.set_cookie(
        settings.GUEST_COOKIE_NAME,
        guest_token,
        max_age=settings.GUEST_TOKEN_EXPIRE_DAYS * 24 * 3600,
        path="/",
        **_cookie_kwargs(),
    )
