from __future__ import annotations

import os
import subprocess
import sys
from pathlib import Path


ROOT = Path(__file__).resolve().parents[2]
SCRIPT_PATH = ROOT / "scripts" / "seed_adverts.py"


def _run_script(*args: str, check: bool = True) -> subprocess.CompletedProcess[str]:
    env = dict(os.environ)
    env["PYTHONPATH"] = os.pathsep.join(filter(None, [str(ROOT / "api"), env.get("PYTHONPATH")]))
    return subprocess.run(
        [sys.executable, str(SCRIPT_PATH), *args],
        check=check,
        capture_output=True,
        text=True,
        env=env,
    )


def test_seed_script_emits_accounts_and_adverts() -> None:
    output = _run_script("--accounts", "2", "--adverts-per-account", "3").stdout

    assert output.count("insert into accounts") == 2
    assert output.count("insert into adverts") == 6
    assert "'seller2@example.com'" in output
    assert "'3d-printer-1'" in output
    assert "'looking-for-a-road-bike-3'" in output


def test_seed_script_is_deterministic() -> None:
    first = _run_script("--accounts", "1", "--adverts-per-account", "2").stdout
    second = _run_script("--accounts", "1", "--adverts-per-account", "2").stdout

    assert first == second


def test_seed_script_rejects_empty_account_set() -> None:
    completed = _run_script("--accounts", "0", check=False)

    assert completed.returncode != 0
    assert "--accounts must be >= 1" in completed.stderr
