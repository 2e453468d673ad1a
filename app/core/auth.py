"""
Request authentication.

The gate looks for a bearer token in the Authorization header, then in the
`token` cookie, verifies it, loads the account (without its password hash)
and stores it on `request.state.account`. Rejections carry a reason code in
the envelope's `error` field.
"""
import logging
from typing import Optional

from fastapi import Depends, Request

from app.core.errors import Forbidden, Unauthorized
from app.core.security import ExpiredToken, InvalidToken, TokenCodec
from app.db.dynamo import Database
from app.models.user import UserInDB
from app.utils.advisor import Advisor
from app.utils.storage import AvatarStorage

logger = logging.getLogger(__name__)

TOKEN_COOKIE = "token"


def get_database(request: Request) -> Database:
    return request.app.state.database


def get_token_codec(request: Request) -> TokenCodec:
    return request.app.state.token_codec


def get_advisor(request: Request) -> Advisor:
    return request.app.state.advisor


def get_storage(request: Request) -> AvatarStorage:
    return request.app.state.storage


def extract_token(request: Request) -> Optional[str]:
    authorization = request.headers.get("Authorization")
    if authorization and authorization.startswith("Bearer "):
        token = authorization[len("Bearer "):].strip()
        if token:
            return token
    return request.cookies.get(TOKEN_COOKIE) or None


def authenticate(token: Optional[str], codec: TokenCodec, database: Database) -> UserInDB:
    """Resolve a token to an active account or raise Unauthorized with a reason code."""
    if not token:
        raise Unauthorized("Not authorized, no token", code="token_missing")

    try:
        user_id = codec.verify(token)
    except ExpiredToken as e:
        raise Unauthorized("Token expired", code="token_expired") from e
    except InvalidToken as e:
        raise Unauthorized("Not authorized, token failed", code="token_invalid") from e

    account = database.accounts.get_by_id(user_id)
    if account is None:
        logger.warning(f"Token references missing account {user_id}")
        raise Unauthorized("User not found", code="account_not_found")
    if account.is_suspended:
        raise Unauthorized("Account is suspended", code="account_suspended")
    return account


def get_current_account(
    request: Request,
    codec: TokenCodec = Depends(get_token_codec),
    database: Database = Depends(get_database),
) -> UserInDB:
    account = authenticate(extract_token(request), codec, database)
    request.state.account = account
    return account


def get_optional_account(
    request: Request,
    codec: TokenCodec = Depends(get_token_codec),
    database: Database = Depends(get_database),
) -> Optional[UserInDB]:
    """Same checks as the primary gate, but a failure just means anonymous."""
    token = extract_token(request)
    if not token:
        request.state.account = None
        return None
    try:
        account = authenticate(token, codec, database)
    except Unauthorized as e:
        logger.debug(f"Optional authentication skipped: {e.code}")
        account = None
    request.state.account = account
    return account


def require_admin(account: UserInDB = Depends(get_current_account)) -> UserInDB:
    if not account.is_admin:
        raise Forbidden("Admin access required", code="admin_required")
    return account
