from dataclasses import dataclass
from functools import wraps
from typing import Optional

from flask import abort, current_app, g, request


@dataclass(frozen=True)
class CallerContext:
    """Who is calling, as claimed by the request headers.

    This is a capability flag, not a verified identity: anyone who can set
    headers can claim any user id. Admin is granted by an exact string match
    of ``x-admin-passcode`` against the configured ``ADMIN_PASSCODE``.
    """

    user_id: Optional[str]
    is_admin: bool
    host_id: str

    @property
    def is_logged_in(self) -> bool:
        return bool(self.user_id)


def get_header(name: str) -> str:
    return str(request.headers.get(name, "") or "").strip()


def caller_from_headers(admin_passcode: str, default_host_id: str) -> CallerContext:
    user_id = get_header("x-user-id")
    passcode = get_header("x-admin-passcode")
    secret = str(admin_passcode or "").strip()

    is_admin = bool(passcode) and bool(secret) and passcode == secret

    return CallerContext(
        user_id=user_id or None,
        is_admin=is_admin,
        host_id=get_header("x-host-id") or default_host_id,
    )


def load_caller() -> None:
    """``before_request`` hook: attach the caller context to ``g``."""
    g.caller = caller_from_headers(
        current_app.config.get("ADMIN_PASSCODE", ""),
        current_app.config.get("DEFAULT_HOST_ID", "demo-host"),
    )


def current_caller() -> CallerContext:
    caller = g.get("caller")
    if caller is None:
        load_caller()
        caller = g.caller
    return caller


def login_required(func):
    @wraps(func)
    def decorated_function(*args, **kwargs):
        if not current_caller().is_logged_in:
            abort(401, description="Login required")
        return func(*args, **kwargs)

    return decorated_function


def admin_required(func):
    @wraps(func)
    def decorated_function(*args, **kwargs):
        caller = current_caller()
        if not caller.is_logged_in:
            abort(401, description="Login required")
        if not caller.is_admin:
            abort(403, description="Admin only")
        return func(*args, **kwargs)

    return decorated_function
