"""Command execution and logging helpers."""
import logging
import subprocess
from pathlib import Path
from typing import Any, List, Optional, Union

from .errors import CommandError

REDACT_KEYS = ("key", "cert", "password", "secret", "token")

def redact_sensitive_data(data: Any) -> Any:
    """Recursively redact sensitive data from dictionaries and lists.

    Args:
        data: Input data that might contain sensitive information

    Returns:
        Data with sensitive values redacted
    """
    if isinstance(data, dict):
        return {
            k: "[REDACTED]" if any(
                redact_key in k.lower()
                for redact_key in REDACT_KEYS
            ) and v else redact_sensitive_data(v)
            for k, v in data.items()
        }
    elif isinstance(data, (list, tuple)):
        return [redact_sensitive_data(item) for item in data]
    return data

def run_command(
    cmd: List[str],
    *,
    check: bool = True,
    capture_output: bool = True,
    input: Optional[str] = None,
    timeout: Optional[float] = None,
    cwd: Union[Path, str, None] = None,
) -> subprocess.CompletedProcess:
    """Run an external command.

    Raises:
        CommandError: if the command cannot be started, times out, or
            exits non-zero while ``check`` is set.
    """
    cmd_str = ' '.join(cmd)
    logging.getLogger("vastkmm.command").debug(f"💻 Running: {cmd_str}")
    try:
        result = subprocess.run(
            cmd,
            text=True,
            input=input,
            cwd=cwd,
            timeout=timeout,
            stdout=subprocess.PIPE if capture_output else None,
            stderr=subprocess.STDOUT if capture_output else None,
        )
    except FileNotFoundError as e:
        raise CommandError(cmd, output=f"{cmd[0]} not found: {e}") from e
    except subprocess.TimeoutExpired as e:
        output = e.output.decode() if isinstance(e.output, bytes) else (e.output or '')
        raise CommandError(cmd, output=f"timed out after {timeout}s\n{output}") from e

    if check and result.returncode != 0:
        raise CommandError(cmd, result.returncode, result.stdout or '')
    return result
