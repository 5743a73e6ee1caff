"""
Asterisk AMI bridge backend.

Spawns the external originate script as ``<command> <script> <phone> <extension>``.
Asterisk calls the agent's extension first, then connects the destination.
Only the exit code decides success; stdout/stderr are kept for diagnostics.
"""

from __future__ import annotations

import asyncio
import shlex
import shutil
from pathlib import Path
from typing import Any

import anyio

from callcenter.shared.logging import get_logger
from callcenter.telephony.config import BackendKind, TelephonyConfig
from callcenter.telephony.interface import (
    BackendTimeoutError,
    BackendUnreachableError,
    CallBackend,
    CallRequest,
    ProcessOutcome,
)

logger = get_logger(__name__)

AMI_TEST_PHONE_NUMBER = "1234567890"
AMI_TEST_TIMEOUT_SECONDS = 10.0
AMI_CALLER_ID = "Anonymous"
# Upper bound on reaping a killed script before giving up on it.
KILL_WAIT_SECONDS = 2.0


def _decode(data: bytes | None) -> str:
    return (data or b"").decode("utf-8", errors="replace")


class AmiScriptBackend(CallBackend):
    """Subprocess backend driving the AMI originate script."""

    kind = BackendKind.AMI
    retryable = False

    def __init__(self, config: TelephonyConfig) -> None:
        """Initialize the backend.

        Args:
            config: Telephony configuration holding the script command, path
                and AMI connection details.
        """
        self._config = config

    @property
    def timeout_seconds(self) -> float:
        return self._config.ami_timeout_seconds

    def build_argv(self, phone_number: str, extension: str) -> list[str]:
        return [
            *shlex.split(self._config.ami_command),
            self._config.ami_script_path,
            phone_number,
            extension,
        ]

    def channel_for(self, extension: str) -> str:
        """Asterisk channel the script rings first for ``extension``."""
        return f"Local/{extension}@{self._config.ami_context}"

    async def attempt_call(
        self,
        phone_number: str,
        extension: str,
        request: CallRequest,
    ) -> ProcessOutcome:
        """Run the originate script and wait for it to exit.

        Args:
            phone_number: Canonical destination number.
            extension: Agent extension Asterisk rings first.
            request: Original call request (unused by the script).

        Returns:
            ProcessOutcome with the exit code and captured output.

        Raises:
            BackendUnreachableError: The script could not be spawned.
        """
        argv = self.build_argv(phone_number, extension)
        logger.info(
            "Spawning AMI originate script",
            extra={"argv": argv, "phone_number": phone_number, "extension": extension},
        )

        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise BackendUnreachableError(
                f"AMI script could not be executed: {e!s}",
                provider_response={"argv": argv},
            ) from e

        try:
            stdout, stderr = await process.communicate()
        except asyncio.CancelledError:
            # The dispatcher deadline fired; the script must not outlive the request.
            await self._kill(process)
            raise

        outcome = ProcessOutcome(
            backend=self.kind,
            exit_code=process.returncode if process.returncode is not None else -1,
            stdout=_decode(stdout),
            stderr=_decode(stderr),
        )
        logger.info(
            "AMI script exited",
            extra={"exit_code": outcome.exit_code, "stderr": outcome.stderr[-500:]},
        )
        return outcome

    async def _kill(self, process: asyncio.subprocess.Process) -> None:
        if process.returncode is not None:
            return
        process.kill()
        logger.warning("AMI script killed after deadline", extra={"pid": process.pid})
        # Reap the child so its pipes and transport close now.
        with anyio.CancelScope(shield=True):
            with anyio.move_on_after(KILL_WAIT_SECONDS):
                await process.wait()

    async def test_connection(
        self,
        extension: str,
        timeout_seconds: float = AMI_TEST_TIMEOUT_SECONDS,
    ) -> dict[str, Any]:
        """Run the script against a fixed test number and report how it went.

        Args:
            extension: Extension to ring for the test.
            timeout_seconds: Deadline for the whole run.

        Returns:
            Dict with ``success``, ``message``, ``exit_code``, ``output``,
            ``error`` and ``test_data``.

        Raises:
            BackendTimeoutError: The script did not exit before the deadline.
            BackendUnreachableError: The script could not be spawned.
        """
        request = CallRequest(raw_phone_number=AMI_TEST_PHONE_NUMBER, extension=extension)
        try:
            with anyio.fail_after(timeout_seconds):
                outcome = await self.attempt_call(AMI_TEST_PHONE_NUMBER, extension, request)
        except TimeoutError as e:
            raise BackendTimeoutError(
                "The AMI connection test took too long to complete",
                provider_response={"timeout_seconds": timeout_seconds},
            ) from e

        success = outcome.exit_code == 0
        logger.info(
            "AMI connection test finished",
            extra={"exit_code": outcome.exit_code, "success": success},
        )
        return {
            "success": success,
            "message": (
                "AMI connection test successful" if success else "AMI connection test failed"
            ),
            "exit_code": outcome.exit_code,
            "output": outcome.stdout,
            "error": outcome.stderr,
            "test_data": {
                "phone": AMI_TEST_PHONE_NUMBER,
                "extension": extension,
                "script_path": self._config.ami_script_path,
            },
        }

    async def check_status(self) -> dict[str, Any]:
        command = shlex.split(self._config.ami_command)
        command_found = bool(command) and shutil.which(command[0]) is not None
        script_exists = Path(self._config.ami_script_path).is_file()
        return {
            "backend": self.kind.value,
            "service_name": "AMI Click2Call",
            "method": "Asterisk Manager Interface",
            "script_path": self._config.ami_script_path,
            "script_exists": script_exists,
            "command": self._config.ami_command,
            "command_found": command_found,
            "host": self._config.ami_host,
            "port": self._config.ami_port,
            "context": self._config.ami_context,
            "timeout_seconds": self._config.ami_timeout_seconds,
            "status": "ready" if command_found and script_exists else "not_configured",
        }
