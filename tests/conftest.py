"""Root test configuration: every test runs in its own working directory"""

import os

import pytest

from pubsync.config import ENV_PREFIX


@pytest.fixture(autouse=True)
def isolated_workdir(tmp_path, monkeypatch):
    """Relative defaults (pubsync.db, config.yaml, the blob dir) resolve under tmp_path,
    and PUBSYNC_* variables from the invoking shell are ignored."""
    for name in list(os.environ):
        if name.startswith(ENV_PREFIX):
            monkeypatch.delenv(name)
    monkeypatch.chdir(tmp_path)
    return tmp_path
