"""Tests for command-line argument parsing."""

import sys
from pathlib import Path

import pytest

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from pipeline_metrics.cli import parse_args


def test_parse_args_defaults_to_aggregate_text_report():
    """Verify CLI parsing defaults to the aggregate workspace and text output."""
    args = parse_args([])

    assert args.workspace == "all"
    assert args.json is False
    assert args.list_workspaces is False
    assert args.verbose is False


def test_parse_args_with_workspace_and_json(monkeypatch):
    """Verify CLI parsing reads flags from sys.argv when no argv is passed."""
    monkeypatch.setattr(
        sys,
        "argv",
        ["content-pipeline-metrics", "--workspace", "jozu", "--json", "--verbose"],
    )

    args = parse_args()

    assert args.workspace == "jozu"
    assert args.json is True
    assert args.verbose is True


def test_parse_args_unknown_flag_fails():
    """Verify CLI parsing exits with an error on unknown options."""
    with pytest.raises(SystemExit):
        parse_args(["--days", "30"])
