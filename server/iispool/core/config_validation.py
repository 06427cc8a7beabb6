"""Configuration validation utilities."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from .config import (
    SUPPORTED_WINRM_TRANSPORTS,
    settings,
    set_config_validation_result,
    get_config_validation_result,
)


@dataclass
class ConfigIssue:
    """Represents a single configuration issue."""

    message: str
    hint: Optional[str] = None


@dataclass
class ConfigValidationResult:
    """Outcome of running configuration checks."""

    checked_at: datetime
    errors: List[ConfigIssue] = field(default_factory=list)
    warnings: List[ConfigIssue] = field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    @property
    def has_warnings(self) -> bool:
        return bool(self.warnings)


def _warn(result: ConfigValidationResult, message: str, hint: Optional[str] = None) -> None:
    result.warnings.append(ConfigIssue(message=message, hint=hint))


def _error(result: ConfigValidationResult, message: str, hint: Optional[str] = None) -> None:
    result.errors.append(ConfigIssue(message=message, hint=hint))


def run_config_checks(force: bool = False) -> ConfigValidationResult:
    """Validate configuration combinations and cache the result."""

    if not force:
        cached = get_config_validation_result()
        if cached is not None:
            return cached

    result = ConfigValidationResult(checked_at=datetime.now(timezone.utc))

    transport = (settings.winrm_transport or "").strip().lower()
    if transport not in SUPPORTED_WINRM_TRANSPORTS:
        _error(
            result,
            f"WINRM_TRANSPORT '{settings.winrm_transport}' is not supported.",
            "Use one of: " + ", ".join(SUPPORTED_WINRM_TRANSPORTS) + ".",
        )

    if settings.winrm_password and not settings.winrm_username:
        _error(
            result,
            "WINRM_PASSWORD is set but WINRM_USERNAME is missing.",
            "Set WINRM_USERNAME to the account the password belongs to.",
        )
    elif settings.winrm_username and not settings.winrm_password:
        if transport != "kerberos":
            _warn(
                result,
                "WINRM_USERNAME is set but WINRM_PASSWORD is missing.",
                "Provide WINRM_PASSWORD or pass a credential per call.",
            )
    elif not settings.has_default_credential() and transport in ("basic", "ntlm", "credssp"):
        _warn(
            result,
            f"No default WinRM credential configured for the {transport} transport.",
            "Remote calls will fail unless a credential is passed per call.",
        )

    if transport == "basic" and not settings.use_ssl():
        _warn(
            result,
            "Basic WinRM authentication is configured without SSL.",
            "Set WINRM_PORT=5986 or WINRM_SSL=true so credentials are not sent in clear text.",
        )

    if settings.use_ssl() and not settings.winrm_cert_validation:
        _warn(
            result,
            "WINRM_CERT_VALIDATION is disabled.",
            "Only disable certificate validation for controlled lab environments.",
        )

    if settings.winrm_port == 5986 and settings.winrm_ssl is False:
        _warn(
            result,
            "WINRM_PORT is 5986 but WINRM_SSL is false.",
            "Port 5986 is the HTTPS listener; enable WINRM_SSL or use port 5985.",
        )

    if not settings.api_token:
        _warn(
            result,
            "API_TOKEN is not configured; the HTTP API accepts unauthenticated requests.",
            "Set API_TOKEN to require a bearer token on pool actions.",
        )

    if settings.local_command_timeout is not None and settings.local_command_timeout <= 0:
        _error(
            result,
            "LOCAL_COMMAND_TIMEOUT must be positive when set.",
            "Unset LOCAL_COMMAND_TIMEOUT to wait for local PowerShell without a limit.",
        )

    set_config_validation_result(result)
    return result
