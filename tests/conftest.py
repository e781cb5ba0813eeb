import json
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent.parent


@pytest.fixture
def sample_plan_path() -> Path:
    return ROOT / "sample_plan.json"


@pytest.fixture
def sample_plan_dict(sample_plan_path) -> dict:
    return json.loads(sample_plan_path.read_text(encoding="utf-8"))


@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'plans.sqlite3'}"
