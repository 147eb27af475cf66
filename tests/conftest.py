import sys

import pytest
from prometheus_client import CollectorRegistry

# Ensure project root is importable (so `import nrc` and `import cli` work without installing)
import os as _os
_project_root = _os.path.dirname(_os.path.dirname(__file__))
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from nrc.db import ResourceStore  # noqa: E402
from nrc.metrics import ReconcileMetrics  # noqa: E402


@pytest.fixture
def registry():
    return CollectorRegistry()


@pytest.fixture
def metrics(registry):
    return ReconcileMetrics(registry)


@pytest.fixture
def store(tmp_path):
    s = ResourceStore(str(tmp_path / "test.db"))
    s.init_db()
    return s
