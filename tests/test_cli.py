"""Tests for the nodeclaimctl CLI."""

from unittest.mock import MagicMock

import pytest

from conftest import make_claim_body
from nodeclaim_cli import main as cli
from nodeclaim_operator.crd import NodeClaim


def test_translate(capsys):
    assert cli.main(["translate", "L40s"]) == 0
    assert capsys.readouterr().out.strip() == "L40S-1-48G"


def test_translate_unsupported(capsys):
    assert cli.main(["translate", "a100"]) == 1
    err = capsys.readouterr().err
    assert "a100" in err
    assert "l4, l40s" in err


def test_types(capsys):
    assert cli.main(["types"]) == 0
    out = capsys.readouterr().out
    assert "L4-1-24G" in out
    assert "L40S-1-48G" in out


def test_user_data_with_explicit_token(capsys):
    assert cli.main(["user-data", "--instance-type", "l4", "--token", "abc.def"]) == 0
    out = capsys.readouterr().out
    assert out.startswith("#!/bin/bash")
    assert "--token abc.def" in out


def test_list_shows_derived_state(monkeypatch, capsys):
    store = MagicMock()
    store.list.return_value = [
        NodeClaim.from_body(make_claim_body("gpu-a", finalizers=["scaleway.com/finalizer"])),
        NodeClaim.from_body(make_claim_body("spot-b", capacity_types=("spot",))),
    ]
    monkeypatch.setattr(cli, "_claim_store", lambda cfg: store)

    assert cli.main(["list"]) == 0
    out = capsys.readouterr().out
    assert "gpu-a" in out
    assert "ReadyToProvision" in out
    assert "spot-b" not in out


def test_get_reports_validation_problem(monkeypatch, capsys):
    store = MagicMock()
    store.get.return_value = NodeClaim.from_body(make_claim_body("gpu-a", instance_types=("a100",)))
    monkeypatch.setattr(cli, "_claim_store", lambda cfg: store)

    assert cli.main(["get", "gpu-a"]) == 0
    out = capsys.readouterr().out
    assert '"state": "PendingProvision"' in out
    assert "unsupported instance type: a100" in out


def test_requires_a_command():
    with pytest.raises(SystemExit):
        cli.main([])
