"""
Backend factory.

Builds the closed ``BackendKind -> CallBackend`` mapping from a TelephonyConfig.
Called once from the application lifespan; the result is owned by the
CallDispatcher and closed on shutdown.
"""

from __future__ import annotations

from callcenter.shared.logging import get_logger, mask_secret
from callcenter.telephony.adapters import (
    AmiScriptBackend,
    Click2CallBackend,
    MockBackend,
    TwilioBackend,
)
from callcenter.telephony.config import BackendKind, TelephonyConfig
from callcenter.telephony.interface import CallBackend

logger = get_logger(__name__)


def build_backend(kind: BackendKind, config: TelephonyConfig) -> CallBackend:
    """Build one backend.

    Raises:
        ValueError: ``kind`` has no backend implementation.
    """
    if kind == BackendKind.CLICK2CALL:
        return Click2CallBackend(config)
    if kind == BackendKind.TWILIO:
        return TwilioBackend(config)
    if kind == BackendKind.AMI:
        return AmiScriptBackend(config)
    if kind == BackendKind.MOCK:
        return MockBackend()
    raise ValueError(f"Unsupported backend: {kind}")


def build_backends(config: TelephonyConfig) -> dict[BackendKind, CallBackend]:
    """Create every enabled backend; the default backend is always included."""
    kinds = list(dict.fromkeys([*config.enabled_backend_kinds, config.default_backend]))

    logger.info(
        "Telephony config resolved",
        extra={
            "backends": [k.value for k in kinds],
            "default_backend": config.default_backend.value,
            "click2call_base_url": config.click2call_base_url,
            "click2call_verify_tls": config.click2call_verify_tls,
            "twilio_account_sid": mask_secret(config.twilio_account_sid),
            "ami_script_path": config.ami_script_path,
            "retry_max_attempts": config.retry_max_attempts,
        },
    )

    return {kind: build_backend(kind, config) for kind in kinds}
