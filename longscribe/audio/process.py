"""Bounded execution of the ffmpeg command-line tools."""

import asyncio
import logging
from typing import List, Tuple

logger = logging.getLogger(__name__)


async def run_tool(cmd: List[str], timeout: float) -> Tuple[int, bytes, bytes]:
    """Run an external tool and collect its output.

    The process is killed if the timeout expires or the caller is cancelled.

    Returns:
        Tuple of (return code, stdout, stderr)

    Raises:
        FileNotFoundError: The tool is not installed
        asyncio.TimeoutError: The tool did not finish in time
    """
    logger.debug(f"Running: {' '.join(cmd)}")
    proc = await asyncio.create_subprocess_exec(
        *cmd,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except (asyncio.TimeoutError, asyncio.CancelledError):
        if proc.returncode is None:
            proc.kill()
            await proc.wait()
        logger.warning(f"{cmd[0]} killed before completion")
        raise
    return proc.returncode, stdout, stderr
