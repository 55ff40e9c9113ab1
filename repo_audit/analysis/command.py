"""
Build tool command execution.

Every command runs without a shell, in the validated project directory,
with its own timeout and a cap on the combined size of stdout and stderr.
Exceeding either limit kills the process and raises a dedicated error.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional

from repo_audit.core.exceptions import (
    CommandFailedError,
    CommandTimeoutError,
    OutputLimitExceededError,
)

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 64 * 1024


@dataclass
class CommandOutput:
    stdout: str
    stderr: str
    returncode: int


async def run_command(
    args: List[str],
    cwd: str,
    timeout: float,
    max_output_bytes: int,
    check: bool = True,
    log: Optional[logging.Logger] = None,
) -> CommandOutput:
    """
    Execute a command and collect its output.

    Args:
        args: Program and arguments
        cwd: Working directory
        timeout: Seconds before the process is killed
        max_output_bytes: Limit on combined stdout and stderr size
        check: Raise CommandFailedError on a non-zero exit status
        log: Logger to report to

    Returns:
        Decoded output and exit status

    Raises:
        CommandTimeoutError: If the command runs longer than ``timeout``
        OutputLimitExceededError: If the output grows past ``max_output_bytes``
        CommandFailedError: If the command cannot start, or exits non-zero with ``check``
    """
    log = log or logger
    log.debug(f"Running '{' '.join(args)}' in {cwd} (timeout {timeout}s)")

    try:
        process = await asyncio.create_subprocess_exec(
            *args,
            cwd=cwd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise CommandFailedError(args, None, reason=f"Could not start '{args[0]}': {str(e)}")

    stdout = bytearray()
    stderr = bytearray()

    async def drain(stream: asyncio.StreamReader, sink: bytearray) -> None:
        while True:
            chunk = await stream.read(READ_CHUNK_SIZE)
            if not chunk:
                return
            sink.extend(chunk)
            if len(stdout) + len(stderr) > max_output_bytes:
                raise OutputLimitExceededError(args, max_output_bytes)

    readers = [
        asyncio.ensure_future(drain(process.stdout, stdout)),
        asyncio.ensure_future(drain(process.stderr, stderr)),
    ]

    async def communicate() -> int:
        await asyncio.gather(*readers)
        return await process.wait()

    try:
        returncode = await asyncio.wait_for(communicate(), timeout)
    except asyncio.TimeoutError:
        log.error(f"Command '{' '.join(args)}' timed out after {timeout}s")
        raise CommandTimeoutError(args, timeout)
    except OutputLimitExceededError:
        log.error(f"Command '{' '.join(args)}' exceeded output buffer of {max_output_bytes} bytes")
        raise
    finally:
        for reader in readers:
            reader.cancel()
        if process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                pass
            await process.wait()

    output = CommandOutput(
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
        returncode=returncode,
    )

    if check and returncode != 0:
        raise CommandFailedError(args, returncode, output.stdout, output.stderr)

    return output
