import os
import sys
from pathlib import Path

# Configure the environment before anything imports jsondoc.config / jsondoc.logging
os.environ.setdefault("USE_MEMORY_STORE", "true")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.pop("JSONDOC_COLLECTIONS", None)

import pytest  # noqa: E402

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


from jsondoc.runtime import reset_store_for_tests  # noqa: E402
from jsondoc.storage.memory import MemoryDocumentStore  # noqa: E402


@pytest.fixture(autouse=True)
def reset_runtime_state():
    reset_store_for_tests()
    yield
    reset_store_for_tests()


@pytest.fixture
def memory_store():
    store = MemoryDocumentStore()
    yield store
    store.close()
