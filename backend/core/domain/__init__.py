"""
core.domain — Shared domain utilities for cross-app service layers.

Modules
-------
exceptions         Domain-specific exceptions that map cleanly to HTTP responses.
exception_handler  DRF handler turning those exceptions into responses.
actors             Explicit ``Actor(role, id)`` values and role-scoped querysets.
transactions       ``atomic_unit`` and bounded ``select_for_update`` locking.
notifications      Reporter e-mail rendering and the pluggable sender.
ledger             JSON-RPC client for the external notarization ledger.
dispatch           Outbox writers and the post-commit side-effect dispatcher.

Usage from any app::

    from core.domain.actors import Actor, resolve_actor
    from core.domain.dispatch import get_dispatcher, queue_email
    from core.domain.exceptions import DomainError, InvalidTransition
    from core.domain.transactions import atomic_unit, lock_for_update
"""
