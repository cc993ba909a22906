import importlib.util
import sys
from pathlib import Path

import pytest

SCRIPT = Path(__file__).resolve().parent.parent / "scripts" / "reset_store.py"


@pytest.fixture
def reset_script():
    module_spec = importlib.util.spec_from_file_location("reset_store_script", SCRIPT)
    module = importlib.util.module_from_spec(module_spec)
    module_spec.loader.exec_module(module)
    return module


def test_refuses_without_confirmation(reset_script, monkeypatch, capsys):
    monkeypatch.setattr(sys, "argv", ["reset_store.py"])
    assert reset_script.main() == 1
    assert "--yes" in capsys.readouterr().err


def test_dry_run_masks_password(reset_script, monkeypatch, capsys):
    monkeypatch.setenv("USE_MEMORY_STORE", "false")
    monkeypatch.setattr(
        sys,
        "argv",
        ["reset_store.py", "--dry-run", "--database-url", "postgresql://app:hunter2@db/records"],
    )
    from recordstore.config import reset_settings_cache

    reset_settings_cache()
    assert reset_script.main() == 0
    out = capsys.readouterr().out
    assert "[DRY RUN]" in out
    assert "hunter2" not in out
    reset_settings_cache()


async def test_reset_memory_store(reset_script):
    result = await reset_script.reset_store()
    assert result == {"target": "memory", "status": "dropped"}
