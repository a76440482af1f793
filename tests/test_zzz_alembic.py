"""Alembic migration tests.

File named test_zzz_alembic.py to sort LAST in pytest collection order.
"""

import os
import subprocess
import sys
from pathlib import Path

import pytest
from sqlalchemy import create_engine, inspect

from careerxp.db import models  # noqa: F401
from careerxp.db.base import Base

REPO_ROOT = Path(__file__).resolve().parents[1]


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "careerxp.db"


def alembic(db_path: Path, *args: str) -> subprocess.CompletedProcess[str]:
    env = {**os.environ, "CXP_DATABASE_URL": f"sqlite+aiosqlite:///{db_path}"}
    return subprocess.run(
        [sys.executable, "-m", "alembic", *args],
        capture_output=True,
        text=True,
        cwd=REPO_ROOT,
        env=env,
    )


def test_alembic_upgrade_head(db_path: Path) -> None:
    """alembic upgrade head succeeds without errors."""
    result = alembic(db_path, "upgrade", "head")
    assert result.returncode == 0, f"alembic upgrade failed: {result.stderr}"


def test_alembic_current_shows_head(db_path: Path) -> None:
    """alembic current shows the latest revision."""
    assert alembic(db_path, "upgrade", "head").returncode == 0
    result = alembic(db_path, "current")
    assert result.returncode == 0
    assert "001_baseline" in result.stdout


def test_migrated_schema_matches_models(db_path: Path) -> None:
    assert alembic(db_path, "upgrade", "head").returncode == 0
    engine = create_engine(f"sqlite:///{db_path}")
    try:
        inspector = inspect(engine)
        for table in Base.metadata.sorted_tables:
            migrated = {column["name"] for column in inspector.get_columns(table.name)}
            assert migrated == set(table.columns.keys()), table.name
        unique = inspector.get_unique_constraints("user_badges")
        assert {"developer_id", "badge_id"} in [set(uq["column_names"]) for uq in unique]
    finally:
        engine.dispose()


def test_alembic_downgrade_base(db_path: Path) -> None:
    assert alembic(db_path, "upgrade", "head").returncode == 0
    result = alembic(db_path, "downgrade", "base")
    assert result.returncode == 0, f"alembic downgrade failed: {result.stderr}"
    engine = create_engine(f"sqlite:///{db_path}")
    try:
        assert set(inspect(engine).get_table_names()) <= {"alembic_version"}
    finally:
        engine.dispose()
