"""
Role lookup for a verified uid.

The ``user_type`` tag persisted on the user record is authoritative; the
subtree a record sits under is only an index. A record whose tag disagrees
with its placement is treated as corrupt rather than guessed at.
"""

from __future__ import annotations

import logging
from typing import Optional

from jobboard.errors import Forbidden, Unexpected
from jobboard.tree_store import TreeStore
from jobboard.types import Role

logger = logging.getLogger(__name__)


def check_role_tag(uid: str, placed: Role, record: dict) -> Role:
    tag = record.get("user_type")
    if tag is None:
        return placed
    if tag != placed.value:
        logger.error(
            "User %s is stored under %s but tagged %r", uid, placed.subtree, tag
        )
        raise Unexpected("Inconsistent role record for user")
    return placed


def resolve_role(tree: TreeStore, uid: str) -> Optional[Role]:
    """Return the caller's role, checking employees first, or None if unknown."""
    for role in (Role.EMPLOYEE, Role.EMPLOYER):
        record = tree.get(role.user_path(uid))
        if record:
            return check_role_tag(uid, role, record)
    return None


def require_role(tree: TreeStore, uid: str, role: Role, message: str) -> dict:
    """Load the caller's record for ``role`` or raise Forbidden."""
    record = tree.get(role.user_path(uid))
    if not record:
        raise Forbidden(message)
    check_role_tag(uid, role, record)
    return record
