"""
Root conftest.py — shared fixtures for the entire test suite.

Provides:
  - ``api_client`` fixture returning a DRF ``APIClient``.
  - ``create_staff`` factory fixture creating admin / psychologist users.
  - ``auth_header`` fixture for authenticated requests (JWT).
  - an autouse fixture that drops the cached side-effect dispatcher so
    every test starts from the current settings.
"""

from __future__ import annotations

import pytest
from rest_framework.test import APIClient


@pytest.fixture(autouse=True)
def _fresh_dispatcher():
    from core.domain.dispatch import reset_dispatcher

    reset_dispatcher()
    yield
    reset_dispatcher()


@pytest.fixture()
def api_client() -> APIClient:
    """Unauthenticated DRF test client."""
    return APIClient()


@pytest.fixture()
def create_staff(db):
    """
    Factory fixture that creates a staff user in the given role group.

    Usage::

        def test_something(create_staff):
            admin = create_staff("admin")
            psychologist = create_staff("psychologist", username="dr_sari")
    """
    from django.contrib.auth import get_user_model
    from django.contrib.auth.models import Group

    User = get_user_model()
    _counter = 0

    def _factory(
        role: str | None = None,
        *,
        username: str | None = None,
        password: str = "TestPass123!",
        **kwargs,
    ):
        nonlocal _counter
        _counter += 1
        if username is None:
            username = f"{role or 'user'}{_counter}"
        user = User.objects.create_user(
            username=username,
            password=password,
            email=f"{username}@test.local",
            **kwargs,
        )
        if role is not None:
            group, _ = Group.objects.get_or_create(name=role)
            user.groups.add(group)
        return user

    return _factory


@pytest.fixture()
def auth_header(create_staff):
    """
    Returns a helper that creates a staff user and returns an
    ``Authorization`` header dict with a valid JWT access token.

    Usage::

        def test_protected(auth_header, api_client):
            header = auth_header("admin")
            api_client.credentials(HTTP_AUTHORIZATION=header["Authorization"])
            resp = api_client.get("/api/cases/")
            assert resp.status_code == 200
    """
    from rest_framework_simplejwt.tokens import AccessToken

    def _make(role: str | None = None, **user_kwargs) -> dict[str, str]:
        user = create_staff(role, **user_kwargs)
        token = AccessToken.for_user(user)
        return {"Authorization": f"Bearer {token}"}

    return _make
