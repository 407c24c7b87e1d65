import httpx
import pytest

from sbt_admin.services.data_layer import build_data_layer
from tests.fakes import BASE_URL, FakePostgrest


@pytest.fixture
def fake():
    return FakePostgrest()


@pytest.fixture
def make_dl():
    created = []

    def make(fake, key="test-key"):
        dl = build_data_layer(BASE_URL, key, transport=httpx.MockTransport(fake.handler))
        created.append(dl)
        return dl

    yield make
    for dl in created:
        dl.close()


@pytest.fixture
def dl(fake, make_dl):
    return make_dl(fake)
