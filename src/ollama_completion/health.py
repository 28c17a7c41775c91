"""Dependency validation and system health checks.

Dependency validation runs before the completion is registered: a missing
required tool means nothing is registered at all. The system health check
runs before every refresh so completion never adds load to a struggling
machine.
"""

import logging
import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path

from ollama_completion.config import CompletionConfig
from ollama_completion.errors import MissingDependency, ToolInvocationError
from ollama_completion.ollama_executor import run_ollama

logger = logging.getLogger(__name__)

MIN_FREE_BYTES = 1024 * 1024
MAX_LOAD_AVERAGE = 10.0


@dataclass
class DependencyReport:
    """Outcome of dependency validation."""

    missing: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.missing


def _parser_available(config: CompletionConfig) -> bool:
    parser = Path(config.parser_bin)
    if parser.is_file():
        return os.access(parser, os.X_OK)
    return shutil.which(config.parser_bin) is not None


def check_dependencies(config: CompletionConfig) -> DependencyReport:
    """Validate required and optional tools.

    Required: ollama on PATH and answering --version, the metadata generator.
    Optional: a responding ollama server (completion then uses cached data).
    """
    report = DependencyReport()
    timeout = config.operation_timeout

    if shutil.which(config.ollama_bin) is None:
        report.missing.append(f"{config.ollama_bin} - install from https://ollama.com")
        return report

    try:
        run_ollama(["--version"], timeout=timeout, ollama_bin=config.ollama_bin)
    except ToolInvocationError as e:
        report.missing.append(f"{config.ollama_bin} --version fails ({e}) - check installation")
        return report

    if not _parser_available(config):
        report.missing.append(
            f"ollama-cmd-parser at {config.parser_bin} - install the metadata generator"
        )

    try:
        run_ollama(["list"], timeout=timeout, ollama_bin=config.ollama_bin)
    except ToolInvocationError:
        report.warnings.append("ollama server not responding - completion will use cached data only")

    return report


def require_dependencies(config: CompletionConfig) -> DependencyReport:
    """check_dependencies() that raises when anything required is missing.

    Raises:
        MissingDependency: If a required tool is absent
    """
    report = check_dependencies(config)
    if not report.ok:
        raise MissingDependency(report.missing)
    return report


def tools_available(config: CompletionConfig) -> bool:
    """Quick check (no subprocess) that a refresh could run at all."""
    return shutil.which(config.ollama_bin) is not None and _parser_available(config)


def system_healthy(
    path: Path,
    min_free_bytes: int = MIN_FREE_BYTES,
    max_load: float = MAX_LOAD_AVERAGE,
) -> bool:
    """False when disk space is nearly exhausted or the system is heavily loaded."""
    try:
        if shutil.disk_usage(path).free < min_free_bytes:
            logger.debug(f"Insufficient disk space at {path}")
            return False
    except OSError:
        return False

    try:
        load = os.getloadavg()[0]
    except (AttributeError, OSError):
        # Not available on this platform
        return True
    if load > max_load:
        logger.debug(f"System load {load:.1f} too high for refresh")
        return False
    return True


__all__ = [
    "DependencyReport",
    "check_dependencies",
    "require_dependencies",
    "system_healthy",
    "tools_available",
]
