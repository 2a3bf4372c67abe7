# policy.py
from dataclasses import dataclass
from functools import wraps
from typing import Optional

from flask_login import current_user

from errors import AuthError, ForbiddenError

UNAUTHORIZED = "unauthorized"
FORBIDDEN = "forbidden"


@dataclass(frozen=True)
class Requirement:
    kind: str
    role: Optional[str] = None


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: Optional[str] = None


PUBLIC = Requirement("public")
AUTHENTICATED = Requirement("authenticated")
ALLOW = Decision(True)


def role(name: str) -> Requirement:
    return Requirement("role", name)


def authorize(identity, required: Requirement) -> Decision:
    """Decide whether ``identity`` (a user or None) satisfies ``required``.

    Role checks are exact matches; an admin does not satisfy ``role("user")``.
    """
    if required.kind == "public":
        return ALLOW
    if identity is None:
        return Decision(False, UNAUTHORIZED)
    if required.kind == "authenticated":
        return ALLOW
    if required.kind == "role":
        if identity.role != required.role:
            return Decision(False, FORBIDDEN)
        return ALLOW
    raise ValueError(f"Unknown requirement: {required.kind}")


def current_identity():
    return current_user if current_user.is_authenticated else None


def requires(required: Requirement):
    """Route decorator raising AuthError/ForbiddenError when access is denied."""
    def decorator(view):
        @wraps(view)
        def wrapped(*args, **kwargs):
            decision = authorize(current_identity(), required)
            if not decision.allowed:
                if decision.reason == UNAUTHORIZED:
                    raise AuthError("Not authorized")
                raise ForbiddenError("Not authorized for this role")
            return view(*args, **kwargs)
        return wrapped
    return decorator
