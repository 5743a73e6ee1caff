"""
Telephony backend configuration.

Single source of truth for vendor endpoints, credentials and timeouts.
Everything is read from the environment (prefix ``TELEPHONY_``) or ``.env``
and handed to the backends explicitly; nothing here is a module global.
"""

from enum import Enum

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BackendKind(str, Enum):
    """Closed set of outbound calling backends."""

    CLICK2CALL = "click2call"
    TWILIO = "twilio"
    AMI = "ami"
    MOCK = "mock"


DEFAULT_TWIML = (
    "<Response>"
    '<Say voice="alice" language="en-US">Hello! This is a call from your CRM system.</Say>'
    '<Pause length="2"/>'
    '<Say voice="alice" language="en-US">Thank you for using our CRM system. Goodbye!</Say>'
    "</Response>"
)


class TelephonyConfig(BaseSettings):
    """Telephony configuration from environment."""

    model_config = SettingsConfigDict(
        env_prefix="TELEPHONY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Backend selection
    default_backend: BackendKind = Field(default=BackendKind.CLICK2CALL)
    enabled_backends: str = Field(
        default="click2call,twilio,ami",
        description="Comma-separated backends built at startup.",
    )

    # Agent routing
    default_extension: str = Field(default="1000")
    min_extension_length: int = Field(default=3, ge=1)

    # Click2Call PBX HTTP API
    click2call_base_url: str = Field(default="https://pbx07.t-lan.co:3000")
    click2call_api_path: str = Field(default="/api/v1/manager/call")
    # The legacy PBX serves a self-signed certificate. Verification stays off
    # unless explicitly enabled; startup logs a warning while it is off.
    click2call_verify_tls: bool = Field(default=False)
    click2call_timeout_seconds: float = Field(default=60.0, gt=0, le=600)
    click2call_context: str = Field(default="clicktocall")
    click2call_ring_time_seconds: int = Field(default=30, ge=1, le=300)
    click2call_caller_id: str = Field(default="CRM System")
    click2call_display_name: str = Field(default="CRM User")

    # Twilio
    twilio_account_sid: str = Field(default="")
    twilio_auth_token: str = Field(default="")
    twilio_from_number: str = Field(default="")
    twilio_api_base: str = Field(default="https://api.twilio.com/2010-04-01")
    twilio_timeout_seconds: float = Field(default=60.0, gt=0, le=600)
    twilio_twiml: str = Field(default=DEFAULT_TWIML)

    # Asterisk AMI bridge script
    ami_command: str = Field(default="python3")
    ami_script_path: str = Field(default="scripts/ami_originate.py")
    ami_timeout_seconds: float = Field(default=30.0, gt=0, le=600)
    ami_host: str = Field(default="localhost")
    ami_port: int = Field(default=5038)
    ami_context: str = Field(default="from-internal")

    # Retry policy (vendor HTTP backends only)
    retry_max_attempts: int = Field(default=2, ge=1, le=5)
    retry_backoff_seconds: float = Field(default=5.0, ge=0, le=60)

    @property
    def enabled_backend_kinds(self) -> list[BackendKind]:
        kinds = []
        for raw in self.enabled_backends.split(","):
            raw = raw.strip().lower()
            if raw:
                kinds.append(BackendKind(raw))
        return kinds

    @property
    def click2call_call_url(self) -> str:
        return f"{self.click2call_base_url.rstrip('/')}{self.click2call_api_path}"


def get_telephony_config() -> TelephonyConfig:
    return TelephonyConfig()
