"""Configuration management using Pydantic settings."""

from typing import List, Optional, TYPE_CHECKING

from pydantic import SecretStr
from pydantic_settings import BaseSettings


SUPPORTED_WINRM_TRANSPORTS = (
    "negotiate",
    "ntlm",
    "kerberos",
    "basic",
    "credssp",
    "certificate",
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application settings
    app_name: str = "IIS Pool Control"
    debug: bool = False

    # WinRM connection settings
    winrm_port: int = 5985
    winrm_transport: str = "negotiate"
    winrm_ssl: Optional[bool] = None  # None -> SSL only on port 5986
    winrm_cert_validation: bool = True
    winrm_operation_timeout: float = 15.0  # seconds to wait for WinRM calls
    winrm_connection_timeout: float = 30.0  # network connect timeout in seconds
    winrm_read_timeout: float = 30.0  # HTTP read timeout in seconds
    winrm_poll_interval_seconds: float = 1.0  # how long to wait between poll cycles

    # Stored default credential for remote calls
    winrm_username: Optional[str] = None
    winrm_password: Optional[SecretStr] = None

    # Local execution settings
    powershell_exe: str = "powershell.exe"
    local_command_timeout: Optional[float] = None
    local_host_aliases: str = ""  # Comma-separated extra names treated as local

    # HTTP surface
    api_token: Optional[SecretStr] = None

    class Config:
        env_file = ".env"
        case_sensitive = False

    def get_local_host_aliases_list(self) -> List[str]:
        """Parse comma-separated local alias list."""
        if not self.local_host_aliases:
            return []
        return [h.strip() for h in self.local_host_aliases.split(",") if h.strip()]

    def use_ssl(self) -> bool:
        """Return True when WinRM connections should use HTTPS."""
        if self.winrm_ssl is not None:
            return self.winrm_ssl
        return self.winrm_port == 5986

    def has_default_credential(self) -> bool:
        """Check if a default WinRM credential is configured."""
        return bool(self.winrm_username and self.winrm_password)


settings = Settings()


if TYPE_CHECKING:  # pragma: no cover - only for type hints
    from .config_validation import ConfigValidationResult

# Cache of the configuration validation result so it can be reused across modules
_config_validation_result: Optional["ConfigValidationResult"] = None


def set_config_validation_result(result: "ConfigValidationResult") -> None:
    """Persist the configuration validation result for reuse."""

    global _config_validation_result
    _config_validation_result = result


def get_config_validation_result() -> Optional["ConfigValidationResult"]:
    """Return the cached configuration validation result, if available."""

    return _config_validation_result
