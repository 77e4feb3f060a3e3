"""
Runs the whole harness against a real AWS account.

Provisions the stack in CLAIMCHECK_STACK_DIR (or reuses CLAIMCHECK_FIXTURE_FILE),
runs every phase and tears the stack down. Opt in with CLAIMCHECK_E2E=1; AWS
credentials come from the usual boto3 chain.
"""

import os

import pytest

from claimcheck_e2e.config import HarnessConfig
from claimcheck_e2e.runner import ClaimCheckTestRunner

pytestmark = [
    pytest.mark.live,
    pytest.mark.skipif(os.environ.get("CLAIMCHECK_E2E") != "1", reason="set CLAIMCHECK_E2E=1 to run against AWS"),
]


def test_claimcheck_stack_end_to_end():
    runner = ClaimCheckTestRunner(HarnessConfig.load_from_env())

    exit_code = runner.run()

    failed = [f"{r.name}: {r.details}" for r in runner.results if not r.passed]
    assert exit_code == 0, failed
