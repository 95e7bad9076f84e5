"""
Scoped child-process execution for toolchain invocations.

Every external tool (cargo, rustup, lipo, git, cmake) is run through
run_command so output handling and cancellation behave the same at every
stage.
"""

import os
import subprocess
from pathlib import Path
from typing import Optional

# Seconds to wait after terminate() before kill()
TERMINATE_GRACE = 5.0


def build_env(extra: Optional[dict[str, str]] = None) -> dict[str, str]:
    """Environment for child processes that prevents git credential prompts."""
    env = os.environ.copy()
    env["GIT_TERMINAL_PROMPT"] = "0"
    if extra:
        env.update(extra)
    return env


def _stop(process: subprocess.Popen) -> None:
    """Terminate a child, escalating to kill if it ignores the request."""
    if process.poll() is not None:
        return
    process.terminate()
    try:
        process.wait(timeout=TERMINATE_GRACE)
    except subprocess.TimeoutExpired:
        process.kill()
        process.wait()


def run_command(
    cmd: list[str],
    cwd: Optional[Path] = None,
    verbose: bool = False,
    env: Optional[dict[str, str]] = None,
) -> subprocess.CompletedProcess[str]:
    """
    Run a subprocess command to completion with optional output streaming.

    The child is always reaped before this returns. If the caller is
    interrupted (KeyboardInterrupt) or any other exception escapes while
    the child runs, the child is terminated first and the exception
    re-raised.

    Args:
        cmd: Command and arguments to run.
        cwd: Working directory for the command.
        verbose: If True, stream combined output in real-time.
        env: Environment for the child (defaults to build_env()).

    Returns:
        CompletedProcess with captured output.

    Raises:
        FileNotFoundError: If the executable does not exist.
    """
    if env is None:
        env = build_env()

    if verbose:
        with subprocess.Popen(
            cmd,
            cwd=cwd,
            env=env,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
        ) as process:
            output_lines = []
            try:
                assert process.stdout is not None
                for line in process.stdout:
                    print(line, end="")
                    output_lines.append(line)
                process.wait()
            except BaseException:
                _stop(process)
                raise

        # Streamed output is merged; keep it in both fields so callers that
        # report stderr still see the diagnostics.
        combined = "".join(output_lines)
        return subprocess.CompletedProcess(
            args=cmd,
            returncode=process.returncode,
            stdout=combined,
            stderr=combined,
        )

    with subprocess.Popen(
        cmd,
        cwd=cwd,
        env=env,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
    ) as process:
        try:
            stdout, stderr = process.communicate()
        except BaseException:
            _stop(process)
            raise

    return subprocess.CompletedProcess(
        args=cmd,
        returncode=process.returncode,
        stdout=stdout,
        stderr=stderr,
    )


def diagnostics_of(result: subprocess.CompletedProcess[str]) -> str:
    """Raw toolchain diagnostics: stderr, falling back to stdout."""
    if result.stderr and result.stderr.strip():
        return result.stderr
    return result.stdout or ""
