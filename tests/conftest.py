import pytest
from loguru import logger

import seat_reservation as sr


@pytest.fixture(autouse=True)
def _drop_log_handlers():
    yield
    # main() binds a handler to the captured stderr of the test that ran it
    logger.remove()


@pytest.fixture
def state_file(tmp_path):
    return str(tmp_path / "reservations.txt")


@pytest.fixture
def ledger(state_file):
    """Fresh all-free ledger backed by a file that does not exist yet."""
    return sr.SeatLedger.load(state_file)
