"""Time-bounded ollama subprocess execution.

Provides run_ollama() - a thin wrapper around subprocess.run that enforces a
timeout and turns every failure mode into ToolInvocationError, plus parsers
for the three ollama calls the completion needs.

Usage:
    from ollama_completion.ollama_executor import detect_version, list_models

    version = detect_version(timeout=2.0)      # "0.3.12" or "unknown"
    models = list_models(timeout=2.0)          # ["llama3.1:latest", ...]
"""

import logging
import re
import subprocess

from ollama_completion.errors import ToolInvocationError

logger = logging.getLogger(__name__)

UNKNOWN_VERSION = "unknown"
_VERSION_PATTERN = re.compile(r"[0-9]+\.[0-9]+\.[0-9]+(-[a-zA-Z0-9.]+)?")
_NAME_LINE = re.compile(r"^[a-zA-Z0-9]")


def run_ollama(
    args: list[str],
    *,
    timeout: float,
    ollama_bin: str = "ollama",
) -> subprocess.CompletedProcess[str]:
    """Execute an ollama command with a hard timeout.

    Args:
        args: Arguments after the program name, e.g. ["list"]
        timeout: Subprocess timeout in seconds
        ollama_bin: ollama executable

    Returns:
        subprocess.CompletedProcess with stdout/stderr

    Raises:
        ToolInvocationError: Binary missing, timeout, or non-zero exit
    """
    if timeout <= 0:
        raise ToolInvocationError(f"No time left to run: ollama {' '.join(args)}")

    cmd = [ollama_bin, *args]
    try:
        return subprocess.run(cmd, capture_output=True, text=True, check=True, timeout=timeout)
    except FileNotFoundError as e:
        raise ToolInvocationError(f"{ollama_bin} not found") from e
    except subprocess.TimeoutExpired as e:
        raise ToolInvocationError(f"{' '.join(cmd)} timed out after {timeout:.1f}s") from e
    except subprocess.CalledProcessError as e:
        raise ToolInvocationError(f"{' '.join(cmd)} exited with {e.returncode}") from e
    except OSError as e:
        raise ToolInvocationError(f"Failed to run {' '.join(cmd)}: {e}") from e


def parse_version(output: str) -> str:
    """Extract x.y.z(-suffix) from `ollama --version` output.

    Example:
        >>> parse_version("ollama version is 0.3.12")
        '0.3.12'
    """
    match = _VERSION_PATTERN.search(output)
    return match.group(0) if match else UNKNOWN_VERSION


def parse_name_column(output: str) -> list[str]:
    """First column of a tabular ollama listing, header skipped.

    Example:
        >>> parse_name_column("NAME  ID  SIZE\\nllama3.1:latest  42182419e950  4.7 GB\\n")
        ['llama3.1:latest']
    """
    names = []
    for line in output.splitlines()[1:]:
        if not _NAME_LINE.match(line):
            continue
        name = line.split()[0]
        if name:
            names.append(name)
    return names


def detect_version(timeout: float, ollama_bin: str = "ollama") -> str:
    """Detected ollama version, or "unknown" when it cannot be determined."""
    try:
        result = run_ollama(["--version"], timeout=timeout, ollama_bin=ollama_bin)
    except ToolInvocationError as e:
        logger.debug(f"Version detection failed: {e}")
        return UNKNOWN_VERSION
    # With the server down the client version is reported on a warning line
    return parse_version(result.stdout + "\n" + result.stderr)


def list_models(timeout: float, ollama_bin: str = "ollama") -> list[str]:
    """Installed models from `ollama list`, sorted.

    Raises:
        ToolInvocationError: If ollama cannot be queried
    """
    result = run_ollama(["list"], timeout=timeout, ollama_bin=ollama_bin)
    return sorted(parse_name_column(result.stdout))


def list_running_models(timeout: float, ollama_bin: str = "ollama") -> list[str]:
    """Currently loaded models from `ollama ps`.

    Raises:
        ToolInvocationError: If ollama cannot be queried
    """
    result = run_ollama(["ps"], timeout=timeout, ollama_bin=ollama_bin)
    return parse_name_column(result.stdout)


__all__ = [
    "UNKNOWN_VERSION",
    "detect_version",
    "list_models",
    "list_running_models",
    "parse_name_column",
    "parse_version",
    "run_ollama",
]
