import pytest

from fakes import BASE_URL, FakeSession
from storefront_scenarios.config import Settings
from storefront_scenarios.identity import IdentityGenerator
from storefront_scenarios.runner import ScenarioRunner


@pytest.fixture
def settings():
    return Settings(base_url=BASE_URL, navigation_timeout_ms=200, settle_timeout_ms=200)


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def generator():
    return IdentityGenerator()


@pytest.fixture
def runner(settings, generator):
    return ScenarioRunner(settings=settings, generator=generator)
