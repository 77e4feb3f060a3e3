# src/claimcheck_e2e/provisioning.py

"""
Stack lifecycle through the OpenTofu/Terraform CLI.

The harness never interprets the stack definition; it runs `init`, `apply`,
`output -json` and `destroy` in the stack directory and hands the output
document to the fixture loader. Known transient CLI failures (provider
downloads, state locking, flaky connections) are retried a bounded number of
times.
"""

import logging
import re
import subprocess
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterator, List, Optional, Sequence, Union

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_fixed,
)

from .exceptions import CleanupError, ProvisioningError
from .fixture import DEFAULT_OUTPUT_KEY, ResourceFixture, load_fixture

logger = logging.getLogger(__name__)

RETRYABLE_ERRORS = {
    r".*read: connection reset by peer.*": "Failed due to transient network error.",
    r".*TLS handshake timeout.*": "Failed due to transient network error.",
    r".*Error installing provider.*": "Failed to install provider.",
    r".*Failed to query available provider packages.*": "Failed to query provider registry.",
    r".*timeout while waiting for plugin to start.*": "Failed to start provider plugin.",
    r".*Failed to load state.*": "Failed to load state, possibly transient.",
    r".*Error acquiring the state lock.*": "State is locked by another run.",
    r".*Could not download module.*": "Failed to download module.",
    r".*RequestError: send request failed.*": "Failed due to transient network error.",
    r".*connection refused.*": "Failed due to transient network error.",
}
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_SLEEP_SECONDS = 5


def _retry_reason(output: str) -> Optional[str]:
    for pattern, reason in RETRYABLE_ERRORS.items():
        if re.search(pattern, output):
            return reason
    return None


def _is_transient(error: BaseException) -> bool:
    return isinstance(error, ProvisioningError) and _retry_reason(error.output) is not None


def _log_retry(retry_state: RetryCallState) -> None:
    error = retry_state.outcome.exception()
    logger.warning(
        "Retrying provisioning command after known transient error",
        extra={
            "command": error.context["command"],
            "reason": _retry_reason(error.output),
            "attempt": retry_state.attempt_number,
        },
    )


class TofuProvisioner:
    """Runs the IaC CLI against one stack directory."""

    def __init__(
        self,
        stack_dir: Union[str, Path] = ".",
        binary: str = "tofu",
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_sleep_seconds: float = DEFAULT_RETRY_SLEEP_SECONDS,
        runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
        sleep: Callable[[float], Any] = time.sleep,
    ):
        self.stack_dir = Path(stack_dir)
        self.binary = binary
        self.max_retries = max_retries
        self.retry_sleep_seconds = retry_sleep_seconds
        self._runner = runner
        self._sleep = sleep

    def _run_once(self, command: List[str]) -> str:
        printable = " ".join(command)
        logger.info("Running provisioning command", extra={"command": printable})
        try:
            result = self._runner(
                command,
                cwd=str(self.stack_dir),
                capture_output=True,
                text=True,
                check=False,
            )
        except FileNotFoundError as e:
            raise ProvisioningError(printable, 127, stderr=str(e)) from e

        if result.returncode != 0:
            raise ProvisioningError(
                printable,
                result.returncode,
                stderr=result.stderr[-4000:],
                output=result.stdout + result.stderr,
            )
        logger.debug("Provisioning command output", extra={"stdout": result.stdout[-4000:]})
        return result.stdout

    def _run(self, args: Sequence[str]) -> str:
        retrying = Retrying(
            retry=retry_if_exception(_is_transient),
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_fixed(self.retry_sleep_seconds),
            sleep=self._sleep,
            before_sleep=_log_retry,
            reraise=True,
        )
        return retrying(self._run_once, [self.binary, *args])

    def init_and_apply(self) -> None:
        self._run(["init", "-input=false", "-no-color"])
        self._run(["apply", "-auto-approve", "-input=false", "-no-color"])

    def output_json(self, name: str = DEFAULT_OUTPUT_KEY) -> str:
        return self._run(["output", "-no-color", "-json", name])

    def destroy(self) -> None:
        self._run(["destroy", "-auto-approve", "-input=false", "-no-color"])


@contextmanager
def provisioned_stack(
    provisioner: TofuProvisioner,
    output_name: str = DEFAULT_OUTPUT_KEY,
    keep_stack: bool = False,
    cleanup_errors: Optional[List[CleanupError]] = None,
) -> Iterator[ResourceFixture]:
    """
    Applies the stack and yields its fixture. Destroy is registered as soon
    as apply succeeds and runs however the body exits. A failed destroy is
    logged and appended to *cleanup_errors*; it never replaces an exception
    raised by the body.
    """
    provisioner.init_and_apply()
    try:
        yield load_fixture(provisioner.output_json(output_name), output_key=output_name)
    finally:
        if keep_stack:
            logger.warning("Keeping provisioned stack", extra={"stack_dir": str(provisioner.stack_dir)})
        else:
            try:
                provisioner.destroy()
                logger.info("Destroyed provisioned stack", extra={"stack_dir": str(provisioner.stack_dir)})
            except ProvisioningError as e:
                error = CleanupError("destroy", e.message, context=e.context)
                logger.error("Stack teardown failed", extra={"error": error.to_dict()})
                if cleanup_errors is not None:
                    cleanup_errors.append(error)
