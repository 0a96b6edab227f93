import os

import pytest

# Keep tests off the filesystem and independent of the caller's environment
os.environ["DATABASE_PATH"] = ":memory:"
os.environ.pop("ALLOWED_EMAILS", None)
os.environ.pop("MAX_TOOL_STEPS", None)
os.environ.pop("AUTH_PROXY_SECRET", None)

from src.assistant.db import SQLiteStore  # noqa: E402


@pytest.fixture
def store():
    s = SQLiteStore(":memory:")
    s.open()
    yield s
    s.close()


@pytest.fixture
def user_id(store):
    return store.create_or_update_user("google-ann", "Ann", "ann@example.com", "https://img/ann.png")["id"]


@pytest.fixture
def other_user_id(store):
    return store.create_or_update_user("google-bob", "Bob", "bob@example.com")["id"]
