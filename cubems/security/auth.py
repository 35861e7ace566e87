from functools import wraps
from typing import Callable, TypeVar, cast

from flask import session

from cubems.enums import SubscriptionTier
from cubems.utils.http import error_response

F = TypeVar("F", bound=Callable[..., object])


def api_login_required(message: str = "Please sign in to continue") -> Callable[[F], F]:
    """Ensure the user is authenticated for API endpoints (returns JSON 401)."""

    def decorator(view_func: F) -> F:
        @wraps(view_func)
        def wrapped(*args, **kwargs):
            if "user" not in session:
                return error_response("Authentication required", status=401, message=message)
            return view_func(*args, **kwargs)

        return cast(F, wrapped)

    return decorator


def current_username() -> str | None:
    return session.get("user")


def current_tier() -> SubscriptionTier:
    return SubscriptionTier.from_session(session.get("subscription_tier", SubscriptionTier.FREE.value))
