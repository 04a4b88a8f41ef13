"""Per-user visibility rules expressed as library query predicates."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence, Tuple

from ..database.predicates import Compare, JsonArrayMatchCount, Param, Predicate

USER_TAGS_PARAMETER = "userTagsSelected"

_ADMIN_TYPES = {"root", "admin"}


def normalize_role(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    normalized = value.strip().lower()
    return normalized or None


def is_admin_role(value: Optional[str]) -> bool:
    return normalize_role(value) in _ADMIN_TYPES


def _flag(permissions: Mapping[str, Any], key: str, default: bool) -> bool:
    value = permissions.get(key)
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def _normalize_tags(values: Optional[Iterable[Any]]) -> Tuple[str, ...]:
    if not values:
        return ()
    collected: list[str] = []
    for entry in values:
        if not isinstance(entry, str):
            continue
        trimmed = entry.strip()
        if trimmed and trimmed not in collected:
            collected.append(trimmed)
    return tuple(collected)


@dataclass(frozen=True)
class UserAccess:
    """Snapshot of the permission flags that narrow library queries."""

    id: str
    can_access_explicit_content: bool = True
    access_all_tags: bool = True
    selected_tags_not_accessible: bool = False
    item_tags_selected: Sequence[str] = field(default_factory=tuple)

    @classmethod
    def from_user(cls, user: Any) -> "UserAccess":
        """Build access flags from a stored user row (or any object shaped like one)."""

        permissions = getattr(user, "permissions", None) or {}
        if is_admin_role(getattr(user, "type", None)):
            return cls(id=user.id)
        explicit = _flag(permissions, "accessExplicitContent", True)
        if not getattr(user, "is_active", True):
            explicit = False
        return cls(
            id=user.id,
            can_access_explicit_content=explicit,
            access_all_tags=_flag(permissions, "accessAllTags", True),
            selected_tags_not_accessible=_flag(permissions, "selectedTagsNotAccessible", False),
            item_tags_selected=_normalize_tags(getattr(user, "item_tags_selected", None)),
        )


def resolve_user_access(user: Any) -> Optional[UserAccess]:
    if user is None or isinstance(user, UserAccess):
        return user
    return UserAccess.from_user(user)


@dataclass(frozen=True)
class PermissionClause:
    predicates: Tuple[Predicate, ...] = ()
    parameters: Dict[str, Any] = field(default_factory=dict)

    def __bool__(self) -> bool:
        return bool(self.predicates)


def user_permission_predicates(user: Optional[UserAccess]) -> PermissionClause:
    """Return the predicates hiding media the user may not see.

    Applies to any media scope exposing ``explicit`` and ``tags`` columns.
    """

    if user is None:
        return PermissionClause()

    predicates: list[Predicate] = []
    parameters: Dict[str, Any] = {}
    if not user.can_access_explicit_content:
        predicates.append(Compare("media.explicit", "==", False))

    tags = tuple(user.item_tags_selected or ())
    if not user.access_all_tags and tags:
        parameters[USER_TAGS_PARAMETER] = list(tags)
        if user.selected_tags_not_accessible:
            predicates.append(JsonArrayMatchCount("media.tags", Param(USER_TAGS_PARAMETER), "==", 0))
        else:
            predicates.append(JsonArrayMatchCount("media.tags", Param(USER_TAGS_PARAMETER), ">=", 1))

    return PermissionClause(tuple(predicates), parameters)


__all__ = [
    "PermissionClause",
    "USER_TAGS_PARAMETER",
    "UserAccess",
    "is_admin_role",
    "normalize_role",
    "resolve_user_access",
    "user_permission_predicates",
]
