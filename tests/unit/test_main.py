# tests/unit/test_main.py

from unittest.mock import MagicMock

import json

import pytest

from claimcheck_e2e import main as main_module
from claimcheck_e2e.exceptions import ConfigurationError


@pytest.fixture(autouse=True)
def no_powertools_setup(monkeypatch):
    monkeypatch.setattr(main_module, "configure_logging", MagicMock())


def test_parser_leaves_unset_flags_as_none():
    args = main_module.build_parser().parse_args([])

    assert args.keep_stack is None
    assert args.verbose is None
    assert args.stack_dir is None


def test_parser_maps_flags_to_config_fields():
    args = main_module.build_parser().parse_args(
        ["--stack-dir", "infra", "--tofu-binary", "terraform", "--keep-stack", "--aws-region", "eu-west-1", "-v"]
    )

    assert args.stack_dir == "infra"
    assert args.tofu_binary == "terraform"
    assert args.keep_stack is True
    assert args.aws_region == "eu-west-1"
    assert args.verbose is True


def test_bad_config_file_exits_two(tmp_path):
    assert main_module.main(["-c", str(tmp_path / "missing.json")]) == 2


def test_credential_failure_exits_two(monkeypatch):
    monkeypatch.setattr(
        main_module, "verify_credentials", MagicMock(side_effect=ConfigurationError("AWS credentials not found"))
    )
    runner_cls = MagicMock()
    monkeypatch.setattr(main_module, "ClaimCheckTestRunner", runner_cls)

    assert main_module.main([]) == 2
    runner_cls.assert_not_called()


def test_runner_exit_code_is_returned(monkeypatch):
    monkeypatch.setattr(main_module, "verify_credentials", MagicMock(return_value="000000000000"))
    runner_cls = MagicMock()
    runner_cls.return_value.run.return_value = 1
    monkeypatch.setattr(main_module, "ClaimCheckTestRunner", runner_cls)

    assert main_module.main([]) == 1
    runner_cls.assert_called_once()
    assert runner_cls.call_args.kwargs["fixture"] is None


def test_fixture_file_is_loaded_and_handed_to_runner(monkeypatch, tmp_path, tofu_output_json):
    path = tmp_path / "outputs.json"
    path.write_text(tofu_output_json)
    monkeypatch.setattr(main_module, "verify_credentials", MagicMock(return_value="000000000000"))
    runner_cls = MagicMock()
    runner_cls.return_value.run.return_value = 0
    monkeypatch.setattr(main_module, "ClaimCheckTestRunner", runner_cls)

    assert main_module.main(["--fixture-file", str(path)]) == 0
    assert runner_cls.call_args.args[0].fixture_file == str(path)
    assert runner_cls.call_args.kwargs["fixture"].bucket == "claimcheck-test-bucket"


def test_incomplete_fixture_file_fails_before_credential_check(monkeypatch, tmp_path, stack_output):
    del stack_output["claimcheck_sqs"]["url"]
    path = tmp_path / "outputs.json"
    path.write_text(json.dumps(stack_output))
    verify = MagicMock(return_value="000000000000")
    monkeypatch.setattr(main_module, "verify_credentials", verify)
    runner_cls = MagicMock()
    monkeypatch.setattr(main_module, "ClaimCheckTestRunner", runner_cls)

    assert main_module.main(["--fixture-file", str(path)]) == 2
    verify.assert_not_called()
    runner_cls.assert_not_called()
