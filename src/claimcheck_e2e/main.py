#!/usr/bin/env python

# src/claimcheck_e2e/main.py

import argparse
import sys
from typing import List, Optional

from aws_lambda_powertools import Logger
from aws_lambda_powertools.logging.utils import copy_config_to_registered_loggers
from rich.console import Console
from rich.panel import Panel

from .config import HarnessConfig, load_configuration
from .exceptions import ConfigurationError, FixtureError, PreconditionError
from .fixture import load_fixture_file
from .pre_flight import verify_credentials
from .runner import ClaimCheckTestRunner


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="claimcheck-e2e",
        description="End-to-end test harness for an S3 + SNS + SQS claim-check stack.",
        formatter_class=argparse.RawTextHelpFormatter,
    )
    parser.add_argument("-c", "--config", help="Path to a JSON configuration file.")
    parser.add_argument("--stack-dir", dest="stack_dir", help="Directory holding the stack definition.")
    parser.add_argument("--tofu-binary", dest="tofu_binary", help="Provisioning CLI to run (tofu or terraform).")
    parser.add_argument(
        "--fixture-file",
        dest="fixture_file",
        help="Use an existing `output -json` document instead of provisioning a stack.",
    )
    parser.add_argument(
        "--keep-stack",
        dest="keep_stack",
        action="store_true",
        default=None,
        help="Do not destroy the provisioned stack after the run.",
    )
    parser.add_argument("--aws-region", dest="aws_region", help="AWS region to run against.")
    parser.add_argument("--report-file", dest="report_file", help="Write a JUnit XML report to this path.")
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=None,
        help="Enable verbose output, including full exception tracebacks.",
    )
    return parser


def configure_logging(config: HarnessConfig) -> Logger:
    """Routes the package's standard loggers through a structured JSON logger."""
    level = "DEBUG" if config.verbose else config.log_level
    logger = Logger(service=config.service_name, level=level)
    copy_config_to_registered_loggers(source_logger=logger, include={"claimcheck_e2e"})
    return logger


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the test harness."""
    args = build_parser().parse_args(argv)
    console = Console()

    # 1. Load the configuration object first.
    try:
        config = load_configuration(args)
    except ConfigurationError as e:
        console.print(Panel(e.message, title="Configuration Error", border_style="red"))
        return 2

    configure_logging(config)

    # 2. A saved fixture is validated before any AWS call.
    fixture = None
    if config.fixture_file:
        try:
            fixture = load_fixture_file(config.fixture_file, output_key=config.output_name)
        except FixtureError as e:
            console.print(Panel(e.message, title="Fixture Error", border_style="red"))
            return 2

    # 3. Credentials and region must resolve before anything is provisioned.
    try:
        verify_credentials(console, region=config.aws_region)
    except PreconditionError:
        return 2

    # 4. The runner maps its own failures to exit codes.
    runner = ClaimCheckTestRunner(config, console=console, fixture=fixture)
    return runner.run()


if __name__ == "__main__":
    sys.exit(main())
