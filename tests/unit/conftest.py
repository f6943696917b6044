import pytest

from builders import RecordingPatcher
from lbstatus.cache import StatusCache
from lbstatus.register import AddressRegister
from lbstatus.synchronizer import StatusSynchronizer


@pytest.fixture
def patcher():
    return RecordingPatcher()


@pytest.fixture
def cache():
    return StatusCache()


@pytest.fixture
def register():
    return AddressRegister()


@pytest.fixture
def make_synchronizer(register, cache, patcher):
    def _make(ingress_class="", claim_default_class=False):
        return StatusSynchronizer(
            register, cache, patcher, ingress_class=ingress_class, claim_default_class=claim_default_class
        )

    return _make
