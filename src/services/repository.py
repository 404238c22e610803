"""Repository resolution and payload enumeration for import runs."""

import ipaddress
import logging
import os
import subprocess
import tempfile
import time
from collections.abc import Mapping
from pathlib import Path
from typing import Any
from urllib.parse import unquote, urlparse

import httpx

from src.config import Settings, get_settings
from src.models.enums import PayloadFormat
from src.services.errors import (
    ItemNormalizationError,
    RepositoryFetchError,
    RepositoryTimeoutError,
)
from src.services.normalizer import RawPayload, load_structured

logger = logging.getLogger(__name__)

GIT_HOSTS = ("github.com", "gitlab.com", "bitbucket.org", "codeberg.org")
SKIPPED_DIRECTORIES = {".git", ".github", "node_modules", "__pycache__", ".venv"}
LOCAL_HOSTNAMES = ("localhost", "localhost.localdomain", "ip6-localhost")


class Deadline:
    """Monotonic time budget shared by every step of one enumeration."""

    def __init__(self, seconds: float):
        self.seconds = seconds
        self.expires_at = time.monotonic() + seconds

    @property
    def remaining(self) -> float:
        return max(0.0, self.expires_at - time.monotonic())

    def check(self, what: str) -> None:
        if time.monotonic() >= self.expires_at:
            raise RepositoryTimeoutError(
                f"Timed out after {self.seconds:g}s while {what}"
            )


class RepositorySource:
    """Base class for a readable recipe repository."""

    def __init__(self, url: str, settings: Settings | None = None):
        self.url = url
        self.settings = settings or get_settings()

    def enumerate(self, deadline: Deadline) -> list[RawPayload]:
        raise NotImplementedError

    def _allowed_format(self, path: Path) -> PayloadFormat | None:
        extension = path.suffix.lower().lstrip(".")
        if extension not in self.settings.import_file_extensions:
            return None
        return PayloadFormat.from_extension(extension)


class LocalDirectorySource(RepositorySource):
    """Recipes stored as files under a local directory (or a single file)."""

    def __init__(self, url: str, path: Path, settings: Settings | None = None):
        super().__init__(url, settings)
        self.path = path

    def enumerate(self, deadline: Deadline) -> list[RawPayload]:
        if not self.path.exists():
            raise RepositoryFetchError(f"Repository path does not exist: {self.path}")
        if self.path.is_file():
            return self._read_file(self.path, self.path.name)

        payloads: list[RawPayload] = []
        base = self.path.resolve()
        try:
            for root, dirs, files in os.walk(self.path):
                dirs[:] = sorted(d for d in dirs if d not in SKIPPED_DIRECTORIES)
                for filename in sorted(files):
                    deadline.check("scanning repository files")
                    file_path = Path(root) / filename
                    if file_path.is_symlink() and not file_path.resolve().is_relative_to(base):
                        logger.warning(f"Skipping symlink leaving the repository: {file_path}")
                        continue
                    relative = file_path.relative_to(self.path).as_posix()
                    payloads.extend(self._read_file(file_path, relative))
        except OSError as e:
            raise RepositoryFetchError(f"Failed to scan repository: {e}") from e
        return payloads

    def _read_file(self, file_path: Path, origin: str) -> list[RawPayload]:
        payload_format = self._allowed_format(file_path)
        if payload_format is None:
            return []
        try:
            size = file_path.stat().st_size
            if size > self.settings.import_max_file_bytes:
                return [
                    RawPayload(
                        origin,
                        payload_format,
                        None,
                        error=f"file is {size} bytes, limit is "
                        f"{self.settings.import_max_file_bytes}",
                    )
                ]
            text = file_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Failed to read file {file_path}: {e}")
            return [RawPayload(origin, payload_format, None, error=f"unreadable file: {e}")]
        return expand_document(origin, payload_format, text)


class GitRepositorySource(RepositorySource):
    """A git repository shallow-cloned into a temporary working directory."""

    def enumerate(self, deadline: Deadline) -> list[RawPayload]:
        os.makedirs(self.settings.import_work_dir, exist_ok=True)
        with tempfile.TemporaryDirectory(
            prefix="recipe-import-", dir=self.settings.import_work_dir
        ) as work_dir:
            target = Path(work_dir) / "repo"
            self._clone(target, deadline)
            logger.info(f"Repository {self.url} cloned to {target}")
            return LocalDirectorySource(self.url, target, self.settings).enumerate(deadline)

    def _clone(self, target: Path, deadline: Deadline) -> None:
        deadline.check("starting git clone")
        # Never block on credential prompts
        env = {**os.environ, "GIT_TERMINAL_PROMPT": "0"}
        try:
            result = subprocess.run(
                ["git", "clone", "--depth", "1", "--quiet", self.url, str(target)],
                capture_output=True,
                text=True,
                timeout=deadline.remaining,
                env=env,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            raise RepositoryTimeoutError(
                f"Timed out after {deadline.seconds:g}s while cloning {self.url}"
            ) from e
        except OSError as e:
            raise RepositoryFetchError(f"Git clone failed: {e}") from e
        if result.returncode != 0:
            detail = result.stderr.strip() or f"exit status {result.returncode}"
            raise RepositoryFetchError(f"Git clone failed: {detail}")


class HttpDocumentSource(RepositorySource):
    """A JSON or YAML document served over HTTP holding one or more recipes."""

    def __init__(
        self,
        url: str,
        settings: Settings | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        super().__init__(url, settings)
        self.transport = transport

    def enumerate(self, deadline: Deadline) -> list[RawPayload]:
        deadline.check("requesting repository document")
        try:
            with httpx.Client(
                timeout=deadline.remaining,
                follow_redirects=True,
                transport=self.transport,
                event_hooks={"request": [self._check_request]},
            ) as client:
                response = client.get(self.url)
                response.raise_for_status()
        except httpx.TimeoutException as e:
            raise RepositoryTimeoutError(
                f"Timed out after {deadline.seconds:g}s while fetching {self.url}"
            ) from e
        except httpx.HTTPStatusError as e:
            raise RepositoryFetchError(
                f"Repository returned HTTP {e.response.status_code} for {self.url}"
            ) from e
        except httpx.HTTPError as e:
            raise RepositoryFetchError(f"Failed to fetch {self.url}: {e}") from e

        payload_format = self._document_format(response)
        origin = Path(urlparse(self.url).path).name or self.url
        return expand_document(origin, payload_format, response.text)

    def _check_request(self, request: httpx.Request) -> None:
        # Runs for every hop, so redirects cannot reach a refused host
        check_remote_host(request.url.host, self.settings)

    def _document_format(self, response: httpx.Response) -> PayloadFormat:
        content_type = response.headers.get("content-type", "").lower()
        by_extension = PayloadFormat.from_extension(Path(urlparse(self.url).path).suffix)
        if by_extension is not None:
            return by_extension
        if "yaml" in content_type:
            return PayloadFormat.YAML
        if "markdown" in content_type:
            return PayloadFormat.MARKDOWN
        if content_type.startswith("text/plain"):
            return PayloadFormat.TEXT
        return PayloadFormat.JSON


def expand_document(origin: str, payload_format: PayloadFormat, text: str) -> list[RawPayload]:
    """Split one file into payloads.

    A JSON/YAML file may hold a single recipe, a list of recipes or a
    ``{"recipes": [...]}`` collection. Files that fail to decode are kept as
    a single payload so the failure is counted against the batch.
    """
    if not payload_format.is_structured:
        return [RawPayload(origin, payload_format, text)]
    try:
        document = load_structured(text, payload_format)
    except ItemNormalizationError as e:
        return [RawPayload(origin, payload_format, text, error=e.message)]

    records = _records_in(document)
    if records is None:
        return [RawPayload(origin, payload_format, document)]
    return [
        RawPayload(f"{origin}#{index}", payload_format, record)
        for index, record in enumerate(records)
    ]


def _records_in(document: Any) -> list[Any] | None:
    if isinstance(document, list):
        return document
    if isinstance(document, Mapping) and isinstance(document.get("recipes"), list):
        return document["recipes"]
    return None


def check_remote_host(host: str | None, settings: Settings) -> None:
    """Refuse loopback, private and link-local hosts unless explicitly allowed.

    Only literal addresses and local names are checked; DNS is not resolved here.
    """
    if settings.import_allow_private_hosts:
        return
    if not host:
        raise RepositoryFetchError("Repository URL has no host")
    name = host.lower().strip("[]").rstrip(".")
    if name in LOCAL_HOSTNAMES or name.endswith(".localhost"):
        raise RepositoryFetchError(f"Repository host is not allowed: {host}")
    try:
        address = ipaddress.ip_address(name)
    except ValueError:
        return
    if not address.is_global:
        raise RepositoryFetchError(f"Repository host is not allowed: {host}")


def _local_source(url: str, path: Path, settings: Settings) -> LocalDirectorySource:
    resolved = path.expanduser().resolve()
    for root in settings.import_local_roots:
        root_path = Path(root).expanduser().resolve()
        if resolved == root_path or resolved.is_relative_to(root_path):
            return LocalDirectorySource(url, resolved, settings)
    raise RepositoryFetchError(f"Local repository path is not allowed: {path}")


def _scp_host(url: str) -> str:
    # git@host:owner/repo.git
    return url.split("@", 1)[1].split(":", 1)[0]


def resolve_repository(
    repository_url: str,
    settings: Settings | None = None,
    transport: httpx.BaseTransport | None = None,
) -> RepositorySource:
    """Pick the source implementation for a repository reference.

    Raises:
        RepositoryFetchError: the reference is malformed, unsupported, or points
            at a local path or host that imports may not read from.
    """
    settings = settings or get_settings()
    url = repository_url.strip()
    parsed = urlparse(url)
    scheme = parsed.scheme.lower()

    if scheme == "file":
        return _local_source(url, Path(unquote(parsed.path)), settings)
    if url.startswith("git@"):
        check_remote_host(_scp_host(url), settings)
        return GitRepositorySource(url, settings)
    if scheme in ("git", "ssh"):
        check_remote_host(parsed.hostname, settings)
        return GitRepositorySource(url, settings)
    if scheme in ("http", "https"):
        if not parsed.netloc:
            raise RepositoryFetchError(f"Invalid repository URL: {url}")
        check_remote_host(parsed.hostname, settings)
        has_document_extension = PayloadFormat.from_extension(Path(parsed.path).suffix) is not None
        if parsed.path.endswith(".git") or (
            parsed.hostname in GIT_HOSTS and not has_document_extension
        ):
            return GitRepositorySource(url, settings)
        return HttpDocumentSource(url, settings, transport=transport)
    if not scheme and url:
        return _local_source(url, Path(url), settings)
    raise RepositoryFetchError(f"Unsupported repository URL: {url}")


def enumerate_repository(
    repository_url: str,
    settings: Settings | None = None,
    transport: httpx.BaseTransport | None = None,
) -> list[RawPayload]:
    """Resolve a repository and list every candidate payload within the time budget.

    Raises:
        RepositoryFetchError: the source is unreachable, unreadable or empty.
        RepositoryTimeoutError: fetching or scanning exceeded the budget.
    """
    settings = settings or get_settings()
    deadline = Deadline(settings.import_fetch_timeout_seconds)
    source = resolve_repository(repository_url, settings, transport=transport)
    payloads = source.enumerate(deadline)
    deadline.check("enumerating recipes")
    if not payloads:
        raise RepositoryFetchError(f"No recipe files found in {repository_url}")
    logger.info(f"Found {len(payloads)} candidate recipes in {repository_url}")
    return payloads
