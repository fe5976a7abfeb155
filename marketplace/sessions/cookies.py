"""Session cookie attachment, detachment and extraction."""

from typing import Optional

from fastapi import Request, Response

from marketplace.core.security import is_well_formed_session_id


class SessionCookie:
    """Cookie policy for the session identifier.

    HttpOnly, SameSite=Lax, Path=/, Max-Age equal to the session TTL, and
    Secure when ``secure`` is set (production).
    """

    def __init__(self, name: str, max_age: int, secure: bool):
        self.name = name
        self.max_age = max_age
        self.secure = secure

    def attach(self, response: Response, session_id: str) -> None:
        response.set_cookie(
            key=self.name,
            value=session_id,
            max_age=self.max_age,
            path="/",
            httponly=True,
            secure=self.secure,
            samesite="lax",
        )

    def clear(self, response: Response) -> None:
        response.delete_cookie(
            key=self.name,
            path="/",
            httponly=True,
            secure=self.secure,
            samesite="lax",
        )

    def read(self, request: Request) -> Optional[str]:
        """
        Extract the session identifier from the inbound request.

        Anything that is not a well-formed identifier yields None, exactly
        like a missing cookie.
        """
        try:
            value = request.cookies.get(self.name)
        except (KeyError, ValueError):
            return None
        if not is_well_formed_session_id(value):
            return None
        return value
