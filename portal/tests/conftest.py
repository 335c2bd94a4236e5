import itertools

import pytest
from django.core.cache import cache
from rest_framework.test import APIClient

from portal.models import Role, User

PASSWORD = 'Zebra-Lamp-42'


@pytest.fixture(autouse=True)
def _fresh_cache():
    # throttle counters and the doctors list live in the cache
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def make_user(db):
    counter = itertools.count(1)

    def _make(role=Role.PATIENT, *, email=None, name=None, password=PASSWORD, **extra):
        n = next(counter)
        role = str(role)
        return User.objects.create_user(
            email=email or f'{role}{n}@example.com',
            password=password,
            name=name or f'{role.title()} {n}',
            role=role,
            **extra,
        )
    return _make


@pytest.fixture
def client_for():
    def _client(user):
        client = APIClient()
        client.force_authenticate(user=user)
        return client
    return _client


@pytest.fixture
def patient(make_user):
    return make_user(Role.PATIENT, name='John Smith')


@pytest.fixture
def other_patient(make_user):
    return make_user(Role.PATIENT, name='Maria Garcia')


@pytest.fixture
def doctor(make_user):
    return make_user(Role.DOCTOR, name='Sarah Johnson')
