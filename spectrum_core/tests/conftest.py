# spectrum_core/tests/conftest.py

from __future__ import annotations

import uuid
from typing import Any, Callable, Optional

import pytest
from django.contrib.auth import authenticate, get_user_model
from rest_framework.test import APIClient

from spectrum_core.models import Customer, Laboratory, Sample, SampleType, UserRole
from spectrum_core.seed import seed_laboratory
from spectrum_core.services.masters import create_customer
from spectrum_core.services.samples import enter_results, register_sample


def _rand(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


class AuthAPIClient(APIClient):
    """
    Test client that uses force_authenticate for predictable DRF auth.
    """

    _user = None

    def login(self, username: str, password: str, **kwargs) -> bool:  # type: ignore[override]
        user = authenticate(username=username, password=password)
        if not user:
            return False
        self.force_authenticate(user=user)
        self._user = user
        return True

    def logout(self) -> None:  # type: ignore[override]
        # force_authenticate(user=None) would call logout() again
        super().logout()
        self.handler._force_user = None
        self.handler._force_token = None
        self._user = None


@pytest.fixture
def api_client() -> AuthAPIClient:
    return AuthAPIClient()


@pytest.fixture
def laboratory(db) -> Laboratory:
    """
    Laboratory with its number counters and the stock petroleum sample types.
    """
    lab = Laboratory.objects.create(code=_rand("LAB"), name="Spectrum Petroleum Lab")
    seed_laboratory(lab)
    return lab


@pytest.fixture
def other_laboratory(db) -> Laboratory:
    lab = Laboratory.objects.create(code=_rand("OTH"), name="Other Lab")
    seed_laboratory(lab)
    return lab


@pytest.fixture
def user_factory(db) -> Callable[..., Any]:
    """
    Users with a role in a laboratory. Password is always "pass123".
    """

    def _factory(*, laboratory: Optional[Laboratory], role: Optional[str] = None, username: Optional[str] = None, **extra):
        User = get_user_model()
        user, _ = User.objects.get_or_create(username=username or _rand("user"), defaults=extra)
        user.set_password("pass123")
        user.save(update_fields=["password"])
        if laboratory is not None and role:
            UserRole.objects.get_or_create(user=user, laboratory=laboratory, defaults={"role": role})
        return user

    return _factory


@pytest.fixture
def user_admin(user_factory, laboratory):
    return user_factory(laboratory=laboratory, role=UserRole.Role.ADMIN, username="labadmin")


@pytest.fixture
def user_manager(user_factory, laboratory):
    return user_factory(laboratory=laboratory, role=UserRole.Role.LAB_MANAGER, username="manager")


@pytest.fixture
def user_accounts(user_factory, laboratory):
    return user_factory(laboratory=laboratory, role=UserRole.Role.ACCOUNTS, username="accounts")


@pytest.fixture
def user_chemist(user_factory, laboratory):
    return user_factory(
        laboratory=laboratory,
        role=UserRole.Role.CHEMIST,
        username="chemist",
        first_name="Amina",
        last_name="Rahman",
    )


@pytest.fixture
def user_registration(user_factory, laboratory):
    return user_factory(laboratory=laboratory, role=UserRole.Role.REGISTRATION, username="frontdesk")


@pytest.fixture
def user_sampler(user_factory, laboratory):
    return user_factory(laboratory=laboratory, role=UserRole.Role.SAMPLER, username="sampler")


@pytest.fixture
def lab_client(laboratory) -> Callable[..., AuthAPIClient]:
    """
    Authenticated client that sends the X-Laboratory header on every request.
    """

    def _client(user, lab: Optional[Laboratory] = None) -> AuthAPIClient:
        client = AuthAPIClient()
        client.force_authenticate(user=user)
        client.credentials(HTTP_X_LABORATORY=str((lab or laboratory).id))
        return client

    return _client


@pytest.fixture
def customer(laboratory, user_admin) -> Customer:
    return create_customer(
        laboratory=laboratory,
        user=user_admin,
        name="Gulf Energy Trading",
        company="Gulf Energy Trading LLC",
        email="lab@gulfenergy.example",
    )


@pytest.fixture
def diesel(laboratory) -> SampleType:
    return SampleType.objects.get(laboratory=laboratory, name="Diesel")


@pytest.fixture
def crude(laboratory) -> SampleType:
    return SampleType.objects.get(laboratory=laboratory, name="Crude Oil")


@pytest.fixture
def sample_factory(laboratory, customer, diesel, user_registration) -> Callable[..., Sample]:
    def _factory(**kwargs) -> Sample:
        params = {
            "laboratory": laboratory,
            "user": user_registration,
            "client": customer,
            "sample_type": diesel,
        }
        params.update(kwargs)
        return register_sample(**params)

    return _factory


@pytest.fixture
def completed_sample(sample_factory, user_chemist) -> Sample:
    """
    Diesel sample with every result entered; carries its auto-created draft report.
    """
    sample = sample_factory()
    values = ["3.1", "841", "9", "62", "51", "-4", "80", "1.0"]
    results = [
        {"id": r.id, "result_value": v}
        for r, v in zip(sample.test_results.order_by("id"), values)
    ]
    enter_results(sample, user=user_chemist, results=results)
    return Sample.objects.get(pk=sample.pk)
