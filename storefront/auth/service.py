import logging
from typing import Any, Dict, Optional

from werkzeug.security import check_password_hash, generate_password_hash

from ..common.database import create_user, fetch_user, fetch_user_credentials

_logger = logging.getLogger(__name__)

# Compared against when the email is unknown so both failure paths cost the same
_DUMMY_HASH = generate_password_hash("storefront-dummy-password")


async def register_user(name: str, email: str, password: str) -> Dict[str, Any]:
    if await fetch_user_credentials(email):
        return {"ok": False, "error": "email_taken"}
    user = await create_user(name, email, generate_password_hash(password))
    if user is None:
        # lost a race with a concurrent registration; the unique constraint held
        return {"ok": False, "error": "email_taken"}
    _logger.info("User registered | user_id=%s", user["id"])
    return {"ok": True, "user": user}


async def authenticate(email: str, password: str) -> Optional[Dict[str, Any]]:
    creds = await fetch_user_credentials(email)
    if creds is None:
        check_password_hash(_DUMMY_HASH, password)
        return None
    if not check_password_hash(creds.pop("password"), password):
        return None
    return creds


async def get_user(user_id: int) -> Optional[Dict[str, Any]]:
    return await fetch_user(user_id)
