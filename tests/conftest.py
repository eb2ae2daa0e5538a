"""Pytest configuration for oversight tests."""
import os
import sys
import tempfile
from pathlib import Path

import pytest

# Add src to path for the tests - conftest is in tests/, so parent.parent is project root
project_root = Path(__file__).resolve().parent.parent
src_path = project_root / "src"

# Insert at the very beginning to override any other paths
sys.path.insert(0, str(src_path))

from oversight.config import GovernanceConfig  # noqa: E402
from oversight.governance import GovernanceAPI  # noqa: E402


@pytest.fixture
def temp_root():
    """Create a temporary project root."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def clean_env(monkeypatch):
    """Remove OVERSIGHT_* variables so defaults apply."""
    for name in list(os.environ):
        if name.startswith("OVERSIGHT_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture
async def make_api(temp_root, clean_env):
    """Factory for initialized GovernanceAPI instances, shut down after the test."""
    created = []

    async def _make(config=None, **kwargs):
        governance = GovernanceAPI(root=temp_root, config=config or GovernanceConfig(), **kwargs)
        await governance.initialize()
        created.append(governance)
        return governance

    yield _make

    for governance in created:
        await governance.shutdown()


@pytest.fixture
async def api(make_api):
    """GovernanceAPI on a fresh database with the default policy."""
    return await make_api()


@pytest.fixture
def submit():
    """Submit a proposal with sensible defaults."""

    async def _submit(governance, agent_name="extractor", capability_kind="prompt_update", **fields):
        fields.setdefault("title", "Tighten entity prompt")
        fields.setdefault("proposed_change", {"prompt": "Extract only named people"})
        fields.setdefault("rationale", "Reduces false positives on org names")
        return await governance.submit_proposal(
            agent_name=agent_name, capability_kind=capability_kind, **fields
        )

    return _submit
