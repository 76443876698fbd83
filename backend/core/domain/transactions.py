"""
core.domain.transactions — Helpers for safe state transitions.

Provides utilities that wrap ``transaction.atomic`` and
``select_for_update`` into reusable patterns so that every service
layer follows the same concurrency-safe approach.

Design goals
------------
* One atomic unit per accepted intent: domain writes, audit append and
  outbox rows commit together or not at all.
* State-transition reads always lock the row first
  (``select_for_update``) so concurrent intents on the same row
  serialize.
* Lock waits are bounded.  On PostgreSQL the wait is capped with
  ``SET LOCAL lock_timeout``; on SQLite transactions begin IMMEDIATE and
  the connection ``timeout`` option bounds the wait for the write lock.
  Either way a lock that cannot be acquired surfaces as ``Busy``
  instead of blocking forever.

Usage::

    from core.domain.transactions import atomic_unit, lock_for_update

    with atomic_unit():
        case = lock_for_update(Case, case_id)
        ...
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator, TypeVar

from django.conf import settings
from django.db import DatabaseError, OperationalError, models, transaction

from core.domain.exceptions import Busy, NotFound, PersistenceFailure

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=models.Model)

_LOCK_ERROR_MARKERS = (
    "database is locked",
    "database table is locked",
    "lock timeout",
    "could not obtain lock",
)


@contextmanager
def atomic_unit(using: str | None = None) -> Iterator[None]:
    """
    ``transaction.atomic()`` that reports database failures as
    ``PersistenceFailure``.

    Lock contention (SQLite "database is locked" at BEGIN IMMEDIATE or on
    write, PostgreSQL lock timeouts) is reported as ``Busy`` instead.
    Domain exceptions raised inside the block propagate unchanged; in
    every failure case the whole block is rolled back.
    """
    try:
        with transaction.atomic(using=using):
            yield
    except OperationalError as exc:
        if is_lock_error(exc):
            logger.warning("Atomic unit could not acquire a lock: %s", exc)
            raise Busy() from exc
        logger.exception("Atomic unit rolled back on database error")
        raise PersistenceFailure() from exc
    except DatabaseError as exc:
        logger.exception("Atomic unit rolled back on database error")
        raise PersistenceFailure() from exc


def is_lock_error(exc: DatabaseError) -> bool:
    """True for errors raised because a lock could not be acquired in time."""
    message = str(exc).lower()
    return any(marker in message for marker in _LOCK_ERROR_MARKERS)


def _apply_lock_timeout(timeout_ms: int | None, using: str | None) -> None:
    if not timeout_ms:
        return
    connection = transaction.get_connection(using)
    if connection.vendor != "postgresql":
        return
    with connection.cursor() as cursor:
        cursor.execute("SET LOCAL lock_timeout = %s", [f"{int(timeout_ms)}ms"])


def lock_for_update(
    model_class: type[M],
    pk: Any,
    *,
    timeout_ms: int | None = None,
    using: str | None = None,
) -> M:
    """
    Acquire a row-level lock on the given model instance.

    Convenience wrapper around ``select_for_update().get(pk=pk)``
    that must be called inside an ``atomic()`` block.

    Args:
        model_class: The Django model class.
        pk:          Primary key value.
        timeout_ms:  Maximum lock wait.  Defaults to
                     ``settings.CASE_LOCK_TIMEOUT_MS``.
        using:       Database alias.

    Returns:
        The locked model instance.

    Raises:
        NotFound: If no row with that PK exists.
        Busy:     If the lock could not be acquired in time.
    """
    if timeout_ms is None:
        timeout_ms = getattr(settings, "CASE_LOCK_TIMEOUT_MS", None)

    try:
        _apply_lock_timeout(timeout_ms, using)
        return model_class.objects.using(using).select_for_update().get(pk=pk)
    except model_class.DoesNotExist:
        raise NotFound(f"{model_class.__name__} with pk={pk} does not exist.")
    except OperationalError as exc:
        logger.warning(
            "Lock wait exceeded for %s pk=%s: %s",
            model_class.__name__, pk, exc,
        )
        raise Busy() from exc
