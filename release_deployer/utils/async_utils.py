"""Asynchronous operation utilities"""

import asyncio
import functools
import logging
import os
from pathlib import Path
from typing import Any, Callable, Coroutine, Dict, List, Optional, TypeVar, Union

from ..models.result import CommandResult

T = TypeVar('T')

logger = logging.getLogger(__name__)


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """
    Run async coroutine in sync context

    Args:
        coro: Coroutine to run

    Returns:
        Coroutine result
    """
    loop = None
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        # No running loop
        pass

    if loop and loop.is_running():
        # Already in async context, create new thread
        import threading

        result = None
        exception = None

        def run_in_thread():
            nonlocal result, exception
            try:
                new_loop = asyncio.new_event_loop()
                asyncio.set_event_loop(new_loop)
                result = new_loop.run_until_complete(coro)
                new_loop.close()
            except Exception as e:
                exception = e

        thread = threading.Thread(target=run_in_thread)
        thread.start()
        thread.join()

        if exception:
            raise exception
        return result
    else:
        # No running loop, use asyncio.run
        return asyncio.run(coro)


def sync_to_async(func: Callable[..., T]) -> Callable[..., Coroutine[Any, Any, T]]:
    """
    Decorator to convert sync function to async

    Args:
        func: Sync function

    Returns:
        Async wrapper function
    """

    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(func, *args, **kwargs))

    return wrapper


async def run_command(cmd: List[str],
                      cwd: Optional[Union[str, Path]] = None,
                      env: Optional[Dict[str, str]] = None,
                      timeout: Optional[float] = None,
                      stdout_path: Optional[Path] = None) -> CommandResult:
    """
    Run an external command and capture its output

    stderr is merged into the captured output. When ``stdout_path`` is given,
    stdout is written to that file and only stderr is captured.

    Args:
        cmd: Command and arguments
        cwd: Working directory
        env: Extra environment variables
        timeout: Seconds before the process is killed

    Returns:
        CommandResult (never raises for a failing or missing command)
    """
    full_env = os.environ.copy()
    if env:
        full_env.update(env)

    logger.debug(f"Running: {' '.join(cmd)} (cwd={cwd})")

    stdout_file = None
    try:
        if stdout_path is not None:
            stdout_file = open(stdout_path, 'wb')
            stdout_target = stdout_file
            stderr_target = asyncio.subprocess.PIPE
        else:
            stdout_target = asyncio.subprocess.PIPE
            stderr_target = asyncio.subprocess.STDOUT

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                cwd=str(cwd) if cwd else None,
                env=full_env,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=stdout_target,
                stderr=stderr_target
            )
        except FileNotFoundError:
            return CommandResult(
                success=False,
                output=f"Command not found: {cmd[0]}",
                returncode=127
            )
        except PermissionError as e:
            return CommandResult(success=False, output=str(e), returncode=126)

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            logger.error(f"Command timed out after {timeout}s: {' '.join(cmd)}")
            return CommandResult(
                success=False,
                output=f"Timed out after {timeout}s",
                returncode=process.returncode,
                timed_out=True
            )
        except asyncio.CancelledError:
            process.kill()
            await process.wait()
            raise

        captured = stdout if stdout_path is None else stderr
        output = captured.decode(errors='replace').strip() if captured else ""

        return CommandResult(
            success=process.returncode == 0,
            output=output,
            returncode=process.returncode
        )
    finally:
        if stdout_file is not None:
            stdout_file.close()
