import pytest

from tests.utils import build, default_manifests


@pytest.fixture
def manifests():
    return default_manifests()


@pytest.fixture
def default_result(manifests):
    return build(manifests)
