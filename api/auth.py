"""
JWT identity for API requests.

Tokens are issued by the auth service and signed with the shared secret;
the user id is the ``_id`` claim (``sub`` is accepted as well).
"""

import functools
from typing import Awaitable, Callable, Optional

import jwt
from aiohttp import web

from api.context import get_context
from models.user import User
from utils.exceptions import AuthenticationError, ForbiddenError

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]

USER_KEY = "user"


def decode_token(token: str, secret: str, algorithm: str = "HS256") -> str:
    """
    Validate a token and return the user id it names.

    Raises:
        AuthenticationError: If the token is expired, invalid or has no user id
    """
    try:
        payload = jwt.decode(token, secret, algorithms=[algorithm])
    except jwt.ExpiredSignatureError as e:
        raise AuthenticationError("Token has expired.") from e
    except jwt.InvalidTokenError as e:
        raise AuthenticationError("Not authorized, token failed.") from e

    user_id = payload.get("_id") or payload.get("id") or payload.get("sub")
    if not user_id:
        raise AuthenticationError("Not authorized, token failed.")
    return str(user_id)


def bearer_token(request: web.Request) -> Optional[str]:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def authenticate(request: web.Request, token: Optional[str] = None) -> User:
    """
    Resolve the calling user from a token (or the Authorization header).

    Raises:
        AuthenticationError: Missing or invalid token, or the user no longer exists
    """
    ctx = get_context(request)
    token = token or bearer_token(request)
    if not token:
        raise AuthenticationError("Not authorized, no token.")

    user_id = decode_token(token, ctx.settings.jwt_secret, ctx.settings.jwt_algorithm)
    user = await ctx.db.get_user_by_id(user_id)
    if user is None:
        raise AuthenticationError("Not authorized, user not found.")
    return user


def login_required(handler: Handler) -> Handler:
    """Authenticate the request and store the user on ``request["user"]``."""

    @functools.wraps(handler)
    async def wrapper(request: web.Request) -> web.StreamResponse:
        request[USER_KEY] = await authenticate(request)
        return await handler(request)

    return wrapper


def admin_required(handler: Handler) -> Handler:
    """Like login_required, but the user must be an administrator."""

    @functools.wraps(handler)
    async def wrapper(request: web.Request) -> web.StreamResponse:
        user = await authenticate(request)
        if not user.is_admin:
            raise ForbiddenError("Access denied. Admin only.")
        request[USER_KEY] = user
        return await handler(request)

    return wrapper


def current_user(request: web.Request) -> User:
    return request[USER_KEY]
