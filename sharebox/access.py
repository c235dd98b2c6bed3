# Filename: sharebox/access.py
"""
Visibility gate for file records.

Rules are evaluated in order:

* ``public``   - everyone is allowed.
* ``private``  - only the owner is allowed.
* ``password`` - the owner is always allowed; anyone else must supply the
  file password, which is checked with the same hashing scheme as user
  credentials.

``password_hash`` is never part of the fields an ``Allow`` exposes.
"""
from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, Optional, Union

from .auth import verify_password
from .errors import Forbidden, IncorrectPassword, PasswordRequired
from .models import File, Visibility

SENSITIVE_FIELDS = frozenset({"password_hash", "dedup_key", "latest_version"})

RECORD_FIELDS: FrozenSet[str] = frozenset(
    name for name in File.model_fields if name not in SENSITIVE_FIELDS
) | {"versions"}


class DenyReason(str, Enum):
    forbidden = "forbidden"
    password_required = "password_required"
    incorrect_password = "incorrect_password"


@dataclass(frozen=True)
class Allow:
    fields: FrozenSet[str] = RECORD_FIELDS

    @property
    def allowed(self) -> bool:
        return True


@dataclass(frozen=True)
class Deny:
    reason: DenyReason

    @property
    def allowed(self) -> bool:
        return False


AccessDecision = Union[Allow, Deny]

_DENY_ERRORS = {
    DenyReason.forbidden: Forbidden,
    DenyReason.password_required: PasswordRequired,
    DenyReason.incorrect_password: IncorrectPassword,
}


def is_owner(record: File, requester_id: Optional[int]) -> bool:
    return requester_id is not None and record.owner_id == requester_id


def authorize(record: File, requester_id: Optional[int] = None, supplied_password: Optional[str] = None) -> AccessDecision:
    if record.visibility == Visibility.public:
        return Allow()

    if record.visibility == Visibility.private:
        if is_owner(record, requester_id):
            return Allow()
        return Deny(DenyReason.forbidden)

    if record.visibility == Visibility.password:
        if is_owner(record, requester_id):
            return Allow()
        if not supplied_password:
            return Deny(DenyReason.password_required)
        if not record.password_hash or not verify_password(supplied_password, record.password_hash):
            return Deny(DenyReason.incorrect_password)
        return Allow()

    # unknown visibility values fail closed
    return Deny(DenyReason.forbidden)


def require_access(record: File, requester_id: Optional[int] = None, supplied_password: Optional[str] = None) -> Allow:
    """authorize() that raises the matching error for a Deny."""
    decision = authorize(record, requester_id, supplied_password)
    if isinstance(decision, Deny):
        raise _DENY_ERRORS[decision.reason]()
    return decision
