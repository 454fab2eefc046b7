"""
Identity for API requests.

Validates Supabase-issued HS256 access tokens and extracts the user id
(`sub`) and email. The token is read from the Authorization header
(Bearer {token}) or, for browser requests, the `sb-access-token` cookie.

Every failure surfaces as UnauthenticatedError with the same user-facing
message; the precise reason is only logged.
"""
import logging
from dataclasses import dataclass
from typing import Optional, Protocol

import jwt
from starlette.requests import Request

from consultchat.core.errors import UnauthenticatedError

logger = logging.getLogger("consultchat")

ACCESS_TOKEN_COOKIE = "sb-access-token"


@dataclass(frozen=True)
class CurrentUser:
    id: str
    email: Optional[str] = None


class IdentityProvider(Protocol):
    def authenticate(self, request: Request) -> CurrentUser:
        ...


def extract_token(request: Request) -> Optional[str]:
    header = request.headers.get("authorization")
    if header:
        scheme, _, token = header.partition(" ")
        if scheme.lower() == "bearer" and token.strip():
            return token.strip()
    cookie = request.cookies.get(ACCESS_TOKEN_COOKIE)
    return cookie or None


class SupabaseIdentity:
    def __init__(self, jwt_secret: Optional[str], audience: str = "authenticated"):
        self.jwt_secret = jwt_secret
        self.audience = audience

    def verify(self, token: str) -> CurrentUser:
        """
        Verify ``token`` and return its user.

        Raises:
            UnauthenticatedError: missing secret, bad signature, expired
                token, wrong audience or no `sub` claim
        """
        if not self.jwt_secret:
            logger.error("auth.misconfigured: SUPABASE_JWT_SECRET is not set")
            raise UnauthenticatedError()
        try:
            payload = jwt.decode(
                token,
                self.jwt_secret,
                algorithms=["HS256"],
                audience=self.audience,
                options={"verify_exp": True},
            )
        except jwt.ExpiredSignatureError:
            logger.debug("auth.rejected: token expired")
            raise UnauthenticatedError()
        except jwt.InvalidTokenError as exc:
            logger.debug(f"auth.rejected: {exc}")
            raise UnauthenticatedError()

        user_id = payload.get("sub")
        if not user_id:
            logger.debug("auth.rejected: no 'sub' claim in token")
            raise UnauthenticatedError()
        return CurrentUser(id=str(user_id), email=payload.get("email"))

    def authenticate(self, request: Request) -> CurrentUser:
        token = extract_token(request)
        if not token:
            raise UnauthenticatedError()
        return self.verify(token)
