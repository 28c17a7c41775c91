"""Remote Fetcher - ollama source retrieval and metadata generation.

Downloads ollama's cmd/cmd.go for the detected version (falling back once to
the main branch) and hands it to the external ollama-cmd-parser, whose JSON
output becomes a MetadataSnapshot. The fetcher never interprets Go source
itself.

Failure handling:
- Not found / timeout / connection error on both references -> RemoteFetchFailure
- Generator missing, non-zero exit, timeout, non-JSON or empty output -> ParseFailure
"""

import json
import logging
import os
import subprocess
import tempfile

import requests

from ollama_completion.config import CompletionConfig
from ollama_completion.errors import ParseFailure, RemoteFetchFailure
from ollama_completion.models import MetadataSnapshot
from ollama_completion.ollama_executor import UNKNOWN_VERSION

logger = logging.getLogger(__name__)


class RemoteFetcher:
    """Fetch ollama source and run the metadata generator against it.

    Example:
        >>> fetcher = RemoteFetcher(config)
        >>> snapshot = fetcher.fetch_snapshot("0.3.12")
        >>> snapshot.command("run").min_args
        1
    """

    def __init__(self, config: CompletionConfig, session: requests.Session | None = None):
        self.config = config
        self.session = session or requests.Session()

    def source_urls(self, version: str) -> list[str]:
        """Candidate source references, most specific first."""
        urls = []
        if version and version != UNKNOWN_VERSION:
            urls.append(self.config.source_url_template.format(version=version))
        urls.append(self.config.fallback_source_url)
        return urls

    def fetch_source(self, version: str) -> str:
        """Download cmd.go for version, retrying once against the fallback.

        Raises:
            RemoteFetchFailure: If no reference could be retrieved
        """
        errors = []
        for url in self.source_urls(version):
            try:
                response = self.session.get(url, timeout=self.config.fetch_timeout)
            except requests.RequestException as e:
                logger.debug(f"Fetch of {url} failed: {e}")
                errors.append(f"{url}: {e}")
                continue

            if response.status_code == 200 and response.text.strip():
                logger.debug(f"Fetched {len(response.text)} bytes from {url}")
                return response.text

            logger.debug(f"Fetch of {url} returned HTTP {response.status_code}")
            errors.append(f"{url}: HTTP {response.status_code}")

        raise RemoteFetchFailure("Failed to fetch ollama source: " + "; ".join(errors))

    def run_generator(self, source_text: str) -> dict:
        """Run the metadata generator on source text.

        Raises:
            ParseFailure: If the generator fails or emits non-JSON output
        """
        fd, source_path = tempfile.mkstemp(prefix="ollama-cmd-", suffix=".go")
        try:
            with os.fdopen(fd, "w") as f:
                f.write(source_text)

            try:
                result = subprocess.run(
                    [self.config.parser_bin, source_path],
                    capture_output=True,
                    text=True,
                    check=True,
                    timeout=self.config.operation_timeout,
                )
            except FileNotFoundError as e:
                raise ParseFailure(f"Generator not found: {self.config.parser_bin}") from e
            except subprocess.TimeoutExpired as e:
                raise ParseFailure("Generator timed out") from e
            except subprocess.CalledProcessError as e:
                stderr = (e.stderr or "").strip()[:200]
                raise ParseFailure(f"Generator exited with {e.returncode}: {stderr}") from e

            try:
                data = json.loads(result.stdout)
            except ValueError as e:
                raise ParseFailure(f"Generator produced malformed JSON: {e}") from e
            if not isinstance(data, dict):
                raise ParseFailure("Generator output is not a JSON object")
            return data
        finally:
            try:
                os.unlink(source_path)
            except OSError as e:
                logger.debug(f"Failed to remove {source_path}: {e}")

    def fetch_snapshot(self, version: str) -> MetadataSnapshot:
        """Fetch, generate and validate a snapshot stamped with version.

        Raises:
            RemoteFetchFailure: If the source cannot be downloaded
            ParseFailure: If the generator output is unusable
        """
        source = self.fetch_source(version)
        data = self.run_generator(source)
        snapshot = MetadataSnapshot.from_dict(data, tool_version=version)
        logger.debug(
            f"Parsed {len(snapshot.commands)} commands for ollama {version} "
            f"(generator {snapshot.schema_version})"
        )
        return snapshot


__all__ = ["RemoteFetcher"]
