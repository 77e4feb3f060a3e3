# src/claimcheck_e2e/runner.py

import logging
import shutil
import tempfile
import time
import uuid
from contextlib import ExitStack, contextmanager
from pathlib import Path
from typing import Any, Callable, Iterator, List, Optional, Set

from rich.console import Console
from rich.panel import Panel

from .clients import AwsClients, create_clients
from .config import MIB, HarnessConfig
from .envelopes import EnvelopeShape
from .exceptions import (
    AwsOperationError,
    CleanupError,
    PreconditionError,
    SubscriptionTimeoutError,
    VerificationError,
    get_error_context,
)
from .fixture import ResourceFixture, load_fixture_file
from .hygiene import purge_queues
from .payload import Payload, generate_payload, generate_payload_of_size
from .pipeline import PipelineDriver
from .poison import PoisonMessageDriver
from .pre_flight import verify_stack_access
from .provisioning import TofuProvisioner, provisioned_stack
from .readiness import wait_for_active_subscription
from .report import ERROR, FAIL, PASS, SKIPPED, PhaseResult, display_results, write_junit_report

logger = logging.getLogger(__name__)

STORAGE_SCENARIO_BYTES = 18 * MIB

PLANNED_PHASES = (
    "Stack fixture",
    "Pre-flight",
    "Subscription readiness",
    f"Claim check ({EnvelopeShape.EVENT.value})",
    f"Claim check ({EnvelopeShape.STORAGE_NOTIFICATION.value})",
    "Poison message redrive",
)


class ClaimCheckTestRunner:
    """Orchestrates one end-to-end run against a claim-check stack."""

    def __init__(
        self,
        config: HarnessConfig,
        console: Optional[Console] = None,
        client_factory: Callable[..., AwsClients] = create_clients,
        provisioner: Optional[TofuProvisioner] = None,
        fixture: Optional[ResourceFixture] = None,
        sleep: Callable[[float], Any] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config
        self.console = console or Console()
        self._client_factory = client_factory
        self._provisioner = provisioner
        self._fixture = fixture
        self._sleep = sleep
        self._clock = clock

        self.run_id = f"claimcheck-{uuid.uuid4().hex[:8]}"
        self.local_workspace = Path(tempfile.mkdtemp(prefix=f"{self.run_id}-"))

        self.clients: Optional[AwsClients] = None
        self.results: List[PhaseResult] = []
        self.cleanup_errors: List[CleanupError] = []
        self.uploaded_keys: List[str] = []
        self._started: Set[str] = set()

    # --- stack ---

    def _fixture_source(self):
        if not self.config.provisions_stack:
            return None
        provisioner = self._provisioner or TofuProvisioner(
            stack_dir=self.config.stack_dir, binary=self.config.tofu_binary
        )
        return provisioned_stack(
            provisioner,
            output_name=self.config.output_name,
            keep_stack=self.config.keep_stack,
            cleanup_errors=self.cleanup_errors,
        )

    def _acquire_fixture(self, stack: ExitStack) -> ResourceFixture:
        with self._phase("Stack fixture") as result:
            source = self._fixture_source()
            if source is not None:
                fixture = stack.enter_context(source)
                result.details = f"Provisioned from {self.config.stack_dir}"
            else:
                fixture = self._fixture or load_fixture_file(
                    self.config.fixture_file, output_key=self.config.output_name
                )
                result.details = f"Loaded from {self.config.fixture_file}"
            self.console.log(f"Bucket: [magenta]{fixture.bucket}[/magenta]")
            self.console.log(f"Queue: [magenta]{fixture.queue_url}[/magenta]")
            self.console.log(f"DLQ: [magenta]{fixture.dlq_url}[/magenta]")
            self.console.log(f"Topic: [magenta]{fixture.topic_arn}[/magenta]")
        return fixture

    # --- phases ---

    @contextmanager
    def _phase(self, name: str, key: Optional[str] = None) -> Iterator[PhaseResult]:
        """
        Times one phase and records its outcome. Verification failures are
        recorded and swallowed so later phases still run; anything else is
        recorded as an error and re-raised.
        """
        self._started.add(key or name)
        self.console.print(f"\n--- [bold green]{name}[/bold green] ---")
        result = PhaseResult(name=name, status=PASS, details="")
        started = self._clock()
        try:
            yield result
        except VerificationError as e:
            result.status = FAIL
            result.details = e.message
            logger.error("Phase failed", extra={"phase": name, "error": get_error_context(e)})
            self.console.print(f"[bold red]✗ {name} failed:[/bold red] {e.message}")
        except Exception as e:
            result.status = ERROR
            result.details = getattr(e, "message", str(e))
            logger.error("Phase errored", extra={"phase": name, "error": get_error_context(e)})
            raise
        else:
            self.console.print(f"[green]✓ {name} passed.[/green]")
        finally:
            result.duration_seconds = self._clock() - started
            self.results.append(result)

    def _skip_remaining(self, reason: str) -> None:
        """Reports every planned phase that never started as skipped."""
        for key in PLANNED_PHASES:
            if key not in self._started:
                self.results.append(PhaseResult(name=key, status=SKIPPED, details=reason))

    def _purge(self, fixture: ResourceFixture) -> None:
        try:
            purge_queues(
                self.clients.queue,
                [fixture.queue_url, fixture.dlq_url],
                settle_seconds=self.config.purge_settle_seconds,
                sleep=self._sleep,
            )
        except CleanupError as e:
            logger.error("Queue purge failed", extra={"error": e.to_dict()})
            self.cleanup_errors.append(e)

    def _check_subscription(self, fixture: ResourceFixture) -> None:
        with self._phase("Subscription readiness") as result:
            active = wait_for_active_subscription(
                self.clients.topic,
                fixture.topic_arn,
                fixture.queue_arn,
                timeout_seconds=self.config.subscription_timeout_seconds,
                poll_interval_seconds=self.config.subscription_poll_interval_seconds,
                sleep=self._sleep,
                clock=self._clock,
            )
            if not active:
                raise SubscriptionTimeoutError(
                    fixture.topic_arn, fixture.queue_arn, self.config.subscription_timeout_seconds
                )
            result.details = f"{fixture.queue_arn} subscribed"

    def _run_claim_check(self, fixture: ResourceFixture, shape: EnvelopeShape, payload: Payload) -> None:
        name = f"Claim check ({shape.value}, {payload.size / MIB:.1f} MiB)"
        driver = PipelineDriver(
            self.clients,
            fixture,
            receive_wait_seconds=self.config.receive_wait_seconds,
            receive_timeout_seconds=self.config.receive_timeout_seconds,
            sleep=self._sleep,
            clock=self._clock,
        )
        try:
            with self._phase(name, key=f"Claim check ({shape.value})") as result:
                run = driver.run(payload, shape=shape)
                result.details = f"Digest match {run.downloaded_digest[:10]}... for {run.locator}"
        finally:
            if driver.last_run is not None and driver.last_run.key:
                self.uploaded_keys.append(driver.last_run.key)
            payload.discard()

    def _run_poison(self, fixture: ResourceFixture) -> None:
        driver = PoisonMessageDriver(
            self.clients,
            fixture,
            receive_wait_seconds=self.config.poison_receive_wait_seconds,
            visibility_wait_seconds=self.config.visibility_wait_seconds,
            dlq_wait_seconds=self.config.dlq_wait_seconds,
            sleep=self._sleep,
        )
        with self._phase("Poison message redrive") as result:
            run = driver.run()
            result.details = f"'{run.message}' moved to DLQ"

    def _scenario_payloads(self):
        """Yields (shape, payload) lazily so only one payload sits on disk at a time."""
        yield EnvelopeShape.EVENT, generate_payload(
            self.config.payload_min_bytes,
            self.config.payload_max_bytes,
            directory=self.local_workspace,
        )
        size = min(max(STORAGE_SCENARIO_BYTES, self.config.payload_min_bytes), self.config.payload_max_bytes)
        yield EnvelopeShape.STORAGE_NOTIFICATION, generate_payload_of_size(size, directory=self.local_workspace)

    def _run_phases(self, fixture: ResourceFixture) -> None:
        self.clients = self._client_factory(region=self.config.aws_region)

        with self._phase("Pre-flight"):
            verify_stack_access(self.console, self.clients, fixture)

        self._check_subscription(fixture)

        try:
            for shape, payload in self._scenario_payloads():
                self._purge(fixture)
                self._run_claim_check(fixture, shape, payload)

            self._purge(fixture)
            self._run_poison(fixture)
        finally:
            self._delete_uploaded_objects(fixture)

    # --- cleanup ---

    def _delete_uploaded_objects(self, fixture: ResourceFixture) -> None:
        """Empties what this run put in the bucket; a non-empty bucket blocks destroy."""
        for key in self.uploaded_keys:
            try:
                self.clients.store.delete_object(fixture.bucket, key)
            except AwsOperationError as e:
                error = CleanupError("s3:DeleteObject", e.message, context={"key": key})
                logger.error("Object cleanup failed", extra={"error": error.to_dict()})
                self.cleanup_errors.append(error)
        if self.uploaded_keys:
            self.console.log(f"Deleted {len(self.uploaded_keys)} test object(s) from '{fixture.bucket}'.")

    def _cleanup_workspace(self) -> None:
        shutil.rmtree(self.local_workspace, ignore_errors=True)

    def _display_and_report(self) -> None:
        display_results(
            self.console,
            self.results,
            cleanup_notes=[e.message for e in self.cleanup_errors],
        )
        if self.config.report_file:
            write_junit_report(self.config.report_file, self.results)
            self.console.print(
                f"JUnit XML report saved to: [bold blue]{self.config.report_file}[/bold blue]"
            )

    def run(self) -> int:
        """Executes the full test lifecycle and returns the process exit code."""
        self.console.print(
            Panel(
                f"[cyan bold]{self.config.description}[/cyan bold]\n\n"
                f"Run ID: [bold blue]{self.run_id}[/bold blue]\n"
                f"Workspace: {self.local_workspace}",
                title="Test Case",
                expand=False,
            )
        )

        try:
            with ExitStack() as stack:
                fixture = self._acquire_fixture(stack)
                self._run_phases(fixture)
            exit_code = 0 if all(r.passed for r in self.results) else 1

        except PreconditionError as e:
            logger.error("Run aborted", extra={"error": get_error_context(e)})
            self._skip_remaining(f"Skipped after setup failure: {e.error_code}")
            self.console.print(
                Panel(e.message, title="Test Setup Failed", border_style="red")
            )
            exit_code = 2

        except Exception as e:
            logger.exception("Unexpected error during test run", extra={"error": get_error_context(e)})
            self._skip_remaining("Skipped after unexpected error")
            self.console.print(
                f"\n[bold red]An unexpected error occurred during the test run:[/bold red] {e}"
            )
            if self.config.verbose:
                self.console.print_exception()
            exit_code = 1

        finally:
            self._cleanup_workspace()

        self._display_and_report()
        return exit_code
