# src/claimcheck_e2e/report.py

"""Console table and JUnit XML output for a harness run."""

import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import List, Optional

from rich.console import Console
from rich.table import Table

PASS = "PASS"
FAIL = "FAIL"
ERROR = "ERROR"
SKIPPED = "SKIPPED"

STATUS_STYLES = {PASS: "green", FAIL: "red", ERROR: "bold red", SKIPPED: "yellow"}


@dataclass
class PhaseResult:
    name: str
    status: str
    details: str
    duration_seconds: float = 0.0

    @property
    def passed(self) -> bool:
        return self.status == PASS


def display_results(console: Console, results: List[PhaseResult], cleanup_notes: Optional[List[str]] = None) -> None:
    table = Table(title="Claim-Check Results")
    table.add_column("Phase", style="cyan", no_wrap=True)
    table.add_column("Status", justify="center")
    table.add_column("Time", justify="right")
    table.add_column("Details", style="yellow")

    for res in results:
        style = STATUS_STYLES.get(res.status, "white")
        table.add_row(
            res.name,
            f"[{style}]{res.status}[/{style}]",
            f"{res.duration_seconds:.1f}s",
            res.details,
        )
    console.print(table)

    for note in cleanup_notes or []:
        console.print(f"[bold yellow]Cleanup warning:[/bold yellow] {note}")


def write_junit_report(path: str, results: List[PhaseResult], suite_name: str = "ClaimCheckE2ETest") -> None:
    """Creates a JUnit XML file with one test case per phase."""
    failures = sum(1 for r in results if r.status == FAIL)
    errors = sum(1 for r in results if r.status == ERROR)
    skipped = sum(1 for r in results if r.status == SKIPPED)
    test_suite = ET.Element(
        "testsuite",
        name=suite_name,
        tests=str(len(results)),
        failures=str(failures),
        errors=str(errors),
        skipped=str(skipped),
        time=f"{sum(r.duration_seconds for r in results):.3f}",
    )
    for res in results:
        test_case = ET.SubElement(
            test_suite,
            "testcase",
            name=res.name,
            classname="ClaimCheckPhase",
            time=f"{res.duration_seconds:.3f}",
        )
        if res.status == FAIL:
            failure = ET.SubElement(test_case, "failure", message=res.details)
            failure.text = f"Phase: {res.name}\nDetails: {res.details}"
        elif res.status == ERROR:
            error = ET.SubElement(test_case, "error", message=res.details)
            error.text = f"Phase: {res.name}\nDetails: {res.details}"
        elif res.status == SKIPPED:
            ET.SubElement(test_case, "skipped", message=res.details)

    tree = ET.ElementTree(test_suite)
    ET.indent(tree, space="  ")
    tree.write(path, encoding="utf-8", xml_declaration=True)
