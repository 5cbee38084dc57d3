import os
import sys

import pytest

# Ensure the package is importable without installation
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from prnotary.logging_config import run_id_var


# Isolate the run correlation id between tests
@pytest.fixture(autouse=True)
def _reset_run_id():
    token = run_id_var.set("")
    yield
    run_id_var.reset(token)
