# Filename: sharebox/utils.py
from .errors import Forbidden


def ensure_owner(resource_owner_id: int, user_id: int) -> None:
    if resource_owner_id != user_id:
        raise Forbidden("Not allowed")
