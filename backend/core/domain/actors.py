"""
core.domain.actors — Explicit actor identity for service-layer calls.

Every engine call receives an ``Actor(id, role)`` value.  Nothing in the
service layer reads the request, the session or any other ambient state;
the view resolves the actor once and passes it down.

Staff identity comes from Django auth:

* superusers and members of the ``admin`` group     → ``ActorRole.ADMIN``
* members of the ``psychologist`` group             → ``ActorRole.PSYCHOLOGIST``

Reporters do not hold accounts.  They prove ownership of a case with its
public code and the e-mail address given at intake, and act as
``Actor.reporter()``.  Scheduled jobs act as ``Actor.system()``.

Usage::

    from core.domain.actors import resolve_actor

    actor = resolve_actor(request.user)
    CaseLifecycleEngine.apply_transition(case_id, Intent.APPROVE, actor, {})
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable

from django.db import models
from django.db.models import QuerySet

from core.domain.exceptions import PermissionDenied

if TYPE_CHECKING:
    from django.contrib.auth.models import AbstractBaseUser


class ActorRole(models.TextChoices):
    ADMIN = "admin", "Admin"
    PSYCHOLOGIST = "psychologist", "Psychologist"
    REPORTER = "reporter", "Reporter"
    SYSTEM = "system", "System"


#: Django auth group name → actor role, checked in order.
STAFF_GROUPS: tuple[tuple[str, ActorRole], ...] = (
    ("admin", ActorRole.ADMIN),
    ("psychologist", ActorRole.PSYCHOLOGIST),
)


@dataclass(frozen=True)
class Actor:
    """Who is performing an intent."""

    role: ActorRole
    id: int | None = None

    @classmethod
    def reporter(cls) -> Actor:
        return cls(role=ActorRole.REPORTER)

    @classmethod
    def system(cls) -> Actor:
        return cls(role=ActorRole.SYSTEM)

    def __str__(self) -> str:
        if self.id is None:
            return str(self.role)
        return f"{self.role}#{self.id}"


def resolve_actor(user: AbstractBaseUser) -> Actor:
    """
    Map an authenticated Django user to an ``Actor``.

    Raises:
        PermissionDenied: If the user is anonymous or belongs to no
            staff group.
    """
    if user is None or not user.is_authenticated:
        raise PermissionDenied("Authentication is required for staff actions.")

    if user.is_superuser:
        return Actor(role=ActorRole.ADMIN, id=user.pk)

    group_names = set(user.groups.values_list("name", flat=True))
    for group_name, role in STAFF_GROUPS:
        if group_name in group_names:
            return Actor(role=role, id=user.pk)

    raise PermissionDenied("Your account has no staff role on this platform.")


# Type alias for a role scope filter: (queryset, actor) → queryset.
ScopeFilter = Callable[[QuerySet, Actor], QuerySet]


def apply_role_scope(
    queryset: QuerySet,
    actor: Actor,
    *,
    scope_rules: dict[ActorRole, ScopeFilter],
) -> QuerySet:
    """
    Apply the scope filter registered for the actor's role.

    Roles without a rule see nothing.

    Example::

        qs = apply_role_scope(
            Case.objects.all(),
            actor,
            scope_rules={
                ActorRole.ADMIN: lambda qs, a: qs,
                ActorRole.PSYCHOLOGIST: lambda qs, a: qs.filter(assigned_reviewer_id=a.id),
            },
        )
    """
    filter_fn = scope_rules.get(actor.role)
    if filter_fn is None:
        return queryset.none()
    return filter_fn(queryset, actor)
