"""Request gating for protected routes."""
from fastapi import Depends, Request

from application.auth import TokenPayload, TokenService
from domain.errors import UnauthorizedError

TOKEN_COOKIE = "token"


def get_token_service(request: Request) -> TokenService:
    return request.app.state.token_service


def parse_bearer_token(header: str) -> str:
    parts = header.split(" ")
    if len(parts) != 2 or parts[0] != "Bearer" or not parts[1]:
        raise UnauthorizedError("Invalid Authorization header format")
    return parts[1]


def extract_token(request: Request) -> str:
    """Read the token from the login cookie, falling back to the Bearer header."""
    cookie = request.cookies.get(TOKEN_COOKIE)
    if cookie:
        return cookie

    header = request.headers.get("Authorization")
    if not header:
        raise UnauthorizedError("Missing Authorization token")
    return parse_bearer_token(header)


async def require_user(
    request: Request,
    tokens: TokenService = Depends(get_token_service),
) -> TokenPayload:
    payload = tokens.verify(extract_token(request))
    request.state.username = payload.username
    return payload
