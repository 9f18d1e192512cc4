from __future__ import annotations

import os
import sys
import tempfile
from pathlib import Path

import pytest

BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

# the API module opens its database at import time
os.environ.setdefault("ANALYTICS_DATABASE", ":memory:")
os.environ.setdefault("ANALYTICS_UPLOAD_DIR", tempfile.mkdtemp(prefix="analytics-uploads-"))

from engine import DuckDBEngine  # noqa: E402
from storage import Storage  # noqa: E402


@pytest.fixture
def storage():
    store = Storage(":memory:").open()
    yield store
    store.close()


@pytest.fixture
def engine(storage: Storage) -> DuckDBEngine:
    return DuckDBEngine(storage)

