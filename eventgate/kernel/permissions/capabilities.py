"""
Role capability matrix.

Answers "could a principal holding these roles ever do X to this kind of
resource". Resource-scoped checks (ownership, grants) live in the resolver.
"""

from dataclasses import dataclass, field
from typing import Any, FrozenSet, Iterable, Mapping, Optional, Sequence, Union

from eventgate.kernel.models.permission import Action, ResourceKind, Role

_ALL = frozenset(Action)
_WRITE = frozenset({Action.READ, Action.CREATE, Action.UPDATE})
_READ = frozenset({Action.READ})

ROLE_CAPABILITIES: Mapping[Role, Mapping[ResourceKind, FrozenSet[Action]]] = {
    Role.OWNER: {
        ResourceKind.EVENT: _ALL,
        ResourceKind.RULE: _ALL,
        ResourceKind.ORGANIZATION: _ALL,
    },
    Role.ADMIN: {
        ResourceKind.EVENT: _ALL,
        ResourceKind.RULE: _ALL,
        ResourceKind.ORGANIZATION: _ALL,
    },
    Role.MEMBER: {
        ResourceKind.EVENT: _WRITE,
        ResourceKind.RULE: _WRITE,
        ResourceKind.ORGANIZATION: _READ,
    },
    Role.VIEWER: {
        ResourceKind.EVENT: _READ,
        ResourceKind.RULE: _READ,
        ResourceKind.ORGANIZATION: _READ,
    },
}

# Every role must cover every kind
assert all(set(ROLE_CAPABILITIES[r]) == set(ResourceKind) for r in Role)
assert set(ROLE_CAPABILITIES) == set(Role)


RoleLike = Union[Role, str]


@dataclass(frozen=True)
class Principal:
    """The authenticated actor, as supplied by the identity collaborator."""

    id: Optional[str]
    roles: Sequence[RoleLike] = field(default_factory=tuple)
    email: Optional[str] = None


def capabilities(role: RoleLike, resource_kind: Union[ResourceKind, str]) -> FrozenSet[Action]:
    """Actions a single role allows on a resource kind; unknown input yields nothing."""
    parsed = Role.parse(role)
    if parsed is None:
        return frozenset()
    try:
        kind = ResourceKind(resource_kind)
    except ValueError:
        return frozenset()
    return ROLE_CAPABILITIES[parsed][kind]


def _as_roles(roles: Union[RoleLike, Iterable[RoleLike], None]) -> Sequence[RoleLike]:
    if roles is None:
        return ()
    if isinstance(roles, (str, Role)):
        return (roles,)
    return tuple(roles)


def has_permission(
    principal: Union[Principal, Mapping[str, Any]],
    resource_kind: Union[ResourceKind, str],
    action: Union[Action, str],
    data: Optional[Mapping[str, Any]] = None,
) -> bool:
    """
    True iff any role held by the principal allows the action.

    Roles are a union: an unrecognised entry is skipped and does not block a
    valid one. No roles at all means no capability. ``data`` (resource
    attributes) is accepted so call sites read the same as resource-scoped
    checks; it is not evaluated here.
    """
    if isinstance(principal, Principal):
        roles = _as_roles(principal.roles)
    else:
        roles = _as_roles(principal.get("roles"))

    try:
        wanted = Action(action)
    except ValueError:
        return False

    return any(wanted in capabilities(role, resource_kind) for role in roles)


def can_edit_role(role: Optional[RoleLike]) -> bool:
    """Whether a resource role allows editing (owner, admin or member)."""
    return Role.parse(role) in (Role.OWNER, Role.ADMIN, Role.MEMBER)


def is_viewer_only(role: Optional[RoleLike]) -> bool:
    """Whether a resource role is read-only."""
    return Role.parse(role) is Role.VIEWER
