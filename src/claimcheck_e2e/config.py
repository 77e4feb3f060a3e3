import argparse
import difflib
import json
import os
from dataclasses import dataclass, fields
from typing import Any, Dict, Optional

from .exceptions import ConfigurationError


ENV_PREFIX = "CLAIMCHECK_"
MIB = 1_048_576
ALLOWED_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


@dataclass(frozen=True, slots=True)
class HarnessConfig:
    """Configuration for the claim-check E2E harness."""

    # --- Provisioning ---
    stack_dir: str = "."
    tofu_binary: str = "tofu"
    output_name: str = "claimcheck"
    fixture_file: Optional[str] = None
    keep_stack: bool = False
    aws_region: Optional[str] = None

    # --- Payload ---
    payload_min_mib: int = 15
    payload_max_mib: int = 20

    # --- Waits (seconds) ---
    subscription_timeout_seconds: int = 300
    subscription_poll_interval_seconds: int = 5
    receive_wait_seconds: int = 20
    receive_timeout_seconds: int = 30
    visibility_wait_seconds: int = 5
    poison_receive_wait_seconds: int = 10
    dlq_wait_seconds: int = 10
    purge_settle_seconds: int = 5

    # --- Reporting ---
    description: str = "Claim-check E2E Test Run"
    service_name: str = "claimcheck-e2e"
    log_level: str = "INFO"
    report_file: Optional[str] = None
    verbose: bool = False

    # --- Derived Properties ---
    @property
    def payload_min_bytes(self) -> int:
        return self.payload_min_mib * MIB

    @property
    def payload_max_bytes(self) -> int:
        return self.payload_max_mib * MIB

    @property
    def provisions_stack(self) -> bool:
        """The harness only owns the stack lifecycle when no fixture file is given."""
        return self.fixture_file is None

    @classmethod
    def from_mapping(cls, values: Dict[str, Any]) -> "HarnessConfig":
        """
        Builds a config from loosely-typed values (env strings, JSON, CLI),
        performing validation and type casting.
        Fails fast with a ConfigurationError if anything is invalid.
        """
        known = {f.name: f for f in fields(cls)}
        unknown = sorted(set(values) - set(known))
        if unknown:
            raise ConfigurationError(f"Unknown configuration keys: {unknown}")

        kwargs: Dict[str, Any] = {}
        try:
            for name, raw in values.items():
                if raw is None:
                    kwargs[name] = None
                    continue
                default = known[name].default
                if isinstance(default, bool):
                    kwargs[name] = _as_bool(raw)
                elif isinstance(default, int):
                    kwargs[name] = int(raw)
                else:
                    kwargs[name] = str(raw)
            config = cls(**kwargs)
            config._validate()
        except (ValueError, TypeError) as e:
            raise ConfigurationError(f"Invalid configuration value: {e}") from e
        return config

    @classmethod
    def load_from_env(cls) -> "HarnessConfig":
        """Loads configuration from CLAIMCHECK_* environment variables."""
        values = {}
        for f in fields(cls):
            env_name = ENV_PREFIX + f.name.upper()
            if env_name in os.environ:
                values[f.name] = os.environ[env_name]
        return cls.from_mapping(values)

    def _validate(self) -> None:
        positive = (
            "payload_min_mib",
            "payload_max_mib",
            "subscription_timeout_seconds",
            "subscription_poll_interval_seconds",
            "receive_timeout_seconds",
        )
        for name in positive:
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be a positive integer.")

        non_negative = (
            "receive_wait_seconds",
            "poison_receive_wait_seconds",
            "visibility_wait_seconds",
            "dlq_wait_seconds",
            "purge_settle_seconds",
        )
        for name in non_negative:
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be a non-negative integer.")

        # SQS caps long polling at 20 seconds.
        for name in ("receive_wait_seconds", "poison_receive_wait_seconds", "dlq_wait_seconds"):
            if getattr(self, name) > 20:
                raise ValueError(f"{name} must not exceed 20 seconds.")

        if self.payload_min_mib > self.payload_max_mib:
            raise ValueError("payload_min_mib must not exceed payload_max_mib.")

        if self.subscription_poll_interval_seconds > self.subscription_timeout_seconds:
            raise ValueError(
                "subscription_poll_interval_seconds must not exceed "
                "subscription_timeout_seconds."
            )

        if self.log_level.upper() not in ALLOWED_LOG_LEVELS:
            raise ValueError(
                f"log_level must be one of {ALLOWED_LOG_LEVELS}, not '{self.log_level}'"
            )
        object.__setattr__(self, "log_level", self.log_level.upper())


def _as_bool(raw: Any) -> bool:
    if isinstance(raw, bool):
        return raw
    return str(raw).lower() in ("true", "1", "yes", "on")


def _missing_config_message(path: str) -> str:
    config_dir = os.path.dirname(path) or "./configs"
    if not os.path.exists(config_dir):
        return (
            f"Error: Configuration file '{path}' not found and config directory "
            f"'{config_dir}' does not exist."
        )

    available_configs = sorted(f for f in os.listdir(config_dir) if f.endswith(".json"))
    error_msg = f"Error: Configuration file '{path}' not found.\n"
    if available_configs:
        error_msg += f"\nAvailable configuration files in {config_dir}:\n"
        close_matches = difflib.get_close_matches(
            os.path.basename(path), available_configs, n=3, cutoff=0.6
        )
        for config_file in available_configs:
            if config_file in close_matches:
                error_msg += f"  - {config_file}  ← Did you mean this one?\n"
            else:
                error_msg += f"  - {config_file}\n"
    else:
        error_msg += f"\nNo configuration files found in {config_dir}/"
    error_msg += "\nPlease check the filename and try again."
    return error_msg


def load_configuration(args: argparse.Namespace) -> HarnessConfig:
    """
    Layers configuration sources: environment, then JSON file, then CLI
    arguments. Later sources win.
    """
    config_data: Dict[str, Any] = {}
    for f in fields(HarnessConfig):
        env_name = ENV_PREFIX + f.name.upper()
        if env_name in os.environ:
            config_data[f.name] = os.environ[env_name]

    config_path = getattr(args, "config", None)
    if config_path:
        try:
            with open(config_path) as f:
                config_data.update(json.load(f))
        except FileNotFoundError:
            raise ConfigurationError(_missing_config_message(config_path)) from None
        except json.JSONDecodeError as e:
            raise ConfigurationError(
                f"Configuration file '{config_path}' is not valid JSON: {e}"
            ) from e

    cli_args = {
        key: value
        for key, value in vars(args).items()
        if value is not None and key != "config"
    }
    config_data.update(cli_args)

    return HarnessConfig.from_mapping(config_data)
