"""Test eval runner execution."""

import os
import subprocess
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[2]


@pytest.fixture(scope="module")
def run() -> subprocess.CompletedProcess:
    env = {**os.environ, "PYTHONPATH": str(ROOT)}
    return subprocess.run(
        [sys.executable, "eval/runner.py"], capture_output=True, text=True, cwd=ROOT, env=env
    )


def test_eval_runner_executes(run) -> None:
    """Test that eval runner runs every scenario."""
    assert "Scenario: tokyo_three_days" in run.stdout
    assert "Scenario: anchor_and_arrival" in run.stdout
    assert "Scenario: tokyo_to_kyoto" in run.stdout


def test_all_predicates_pass(run) -> None:
    assert "✗" not in run.stdout, run.stdout
    assert run.returncode == 0, run.stderr


def test_runner_reports_summary(run) -> None:
    """Test that eval runner reports summary with pass counts."""
    assert "=== Summary ===" in run.stdout
    summary = run.stdout.split("=== Summary ===")[1]
    passed, total = summary.split("Total: ")[1].split(" ")[0].split("/")
    assert passed == total
