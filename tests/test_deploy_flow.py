from unittest import mock

import scripts.deploy_flow as deploy_mod


def test_prod_refused_off_main_branch(monkeypatch):
    monkeypatch.setattr(deploy_mod, "get_branch", lambda: "feature/x")
    run = mock.MagicMock(return_value=0)
    monkeypatch.setattr(deploy_mod, "run", run)

    assert deploy_mod.main(["--env", "prod", "--yes"]) == 2
    run.assert_not_called()


def test_prod_requires_confirmation(monkeypatch):
    monkeypatch.setattr(deploy_mod, "get_branch", lambda: "main")
    run = mock.MagicMock(return_value=0)
    monkeypatch.setattr(deploy_mod, "run", run)

    assert deploy_mod.main(["--env", "prod"]) == 2
    run.assert_not_called()


def test_failed_audit_deploys_nothing(monkeypatch):
    monkeypatch.setattr(deploy_mod, "audit", lambda env: False)
    run = mock.MagicMock(return_value=0)
    monkeypatch.setattr(deploy_mod, "run", run)

    assert deploy_mod.main(["--env", "dev"]) == 1
    run.assert_not_called()


def test_synth_then_deploy(monkeypatch):
    monkeypatch.setattr(deploy_mod, "audit", lambda env: True)
    run = mock.MagicMock(return_value=0)
    monkeypatch.setattr(deploy_mod, "run", run)

    assert deploy_mod.main(["--env", "staging"]) == 0
    commands = [c.args[0][:2] for c in run.call_args_list]
    assert commands == [["cdk", "synth"], ["cdk", "deploy"]]
    assert run.call_args_list[1].args[0][-1] == "environment=staging"
