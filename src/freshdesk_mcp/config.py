import os
from typing import Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ConfigError

DEFAULT_TIMEOUT = 20.0
DEFAULT_CONNECT_TIMEOUT = 10.0

# Model field -> environment variable, for error messages
_ENV_NAMES = {
    "domain": "FRESHDESK_DOMAIN",
    "api_key": "FRESHDESK_API_KEY",
    "timeout": "FRESHDESK_TIMEOUT",
}


class FreshdeskConfig(BaseModel):
    """Credentials and connection settings, fixed for the life of a client."""

    model_config = ConfigDict(frozen=True)

    domain: str = Field(..., description="Account name (acme) or full host (acme.freshdesk.com)")
    api_key: str = Field(..., min_length=1, repr=False, description="Freshdesk API key")
    timeout: float = Field(default=DEFAULT_TIMEOUT, gt=0, description="Request timeout in seconds")
    connect_timeout: float = Field(default=DEFAULT_CONNECT_TIMEOUT, gt=0, description="Connect timeout in seconds")

    @field_validator("domain")
    @classmethod
    def validate_domain(cls, v: str) -> str:
        """Strip whitespace and reject empty values, schemes and paths."""
        v = v.strip()
        if not v:
            raise ValueError("domain must not be empty")
        if "://" in v:
            raise ValueError("domain should not include scheme; use e.g. 'yourcompany' or 'yourcompany.freshdesk.com'")
        if "/" in v:
            raise ValueError("domain should be a host name without a path")
        return v

    @property
    def host(self) -> str:
        # Bare account names get the freshdesk.com suffix
        if "." in self.domain:
            return self.domain
        return f"{self.domain}.freshdesk.com"

    @property
    def base_url(self) -> str:
        return f"https://{self.host}/api/v2"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "FreshdeskConfig":
        """Build the config from FRESHDESK_* environment variables.

        Raises:
            ConfigError: If a required variable is missing or a value is malformed
        """
        env = os.environ if environ is None else environ
        api_key = env.get("FRESHDESK_API_KEY")
        domain = env.get("FRESHDESK_DOMAIN")

        missing = []
        if not api_key:
            missing.append("FRESHDESK_API_KEY")
        if not domain:
            missing.append("FRESHDESK_DOMAIN")
        if missing:
            raise ConfigError(f"Missing required environment variables: {', '.join(missing)}")

        timeout = DEFAULT_TIMEOUT
        raw_timeout = env.get("FRESHDESK_TIMEOUT")
        if raw_timeout:
            try:
                timeout = float(raw_timeout)
            except ValueError:
                raise ConfigError(f"FRESHDESK_TIMEOUT must be a number, got {raw_timeout!r}") from None

        try:
            return cls(domain=domain, api_key=api_key, timeout=timeout)
        except ValidationError as e:
            problems = "; ".join(
                f"{_ENV_NAMES.get(str(err['loc'][0]), err['loc'][0])}: {err['msg']}" for err in e.errors()
            )
            raise ConfigError(f"Invalid Freshdesk configuration: {problems}") from None
