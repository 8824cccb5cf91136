"""
Tests for engine construction from DATABASE_URL.
"""
import os
import subprocess
import sys
from pathlib import Path

import pytest
from sqlalchemy import text

from loyalty_ledger.db import build_engine


ROOT = Path(__file__).resolve().parents[1]


class TestBuildEngine:
    def test_in_memory_sqlite(self):
        engine = build_engine("sqlite://")
        with engine.connect() as conn:
            assert conn.execute(text("select 1")).scalar() == 1
        engine.dispose()

    def test_file_sqlite(self, tmp_path):
        engine = build_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
        with engine.connect() as conn:
            assert conn.execute(text("select 1")).scalar() == 1
        engine.dispose()
        assert (tmp_path / "ledger.db").exists()

    def test_garbage_url_is_rejected(self):
        with pytest.raises(Exception):
            build_engine("not a url")


class TestModuleImport:
    @pytest.mark.parametrize("url", ["sqlite://", "sqlite:///./loyalty_ledger_import_check.db"])
    def test_module_imports_with_sqlite_url(self, url, tmp_path):
        env = {**os.environ, "DATABASE_URL": url}
        result = subprocess.run(
            [sys.executable, "-c", "import loyalty_ledger.db as d; print(d.engine.url.get_backend_name())"],
            cwd=tmp_path,
            env={**env, "PYTHONPATH": os.pathsep.join([str(ROOT), env.get("PYTHONPATH", "")])},
            capture_output=True,
            text=True,
        )
        assert result.returncode == 0, result.stderr
        assert result.stdout.strip() == "sqlite"
