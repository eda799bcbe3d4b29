"""Instag.com job-based download backend (submit, poll, fetch)."""

import asyncio
import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable, Optional

import httpx
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_result,
    stop_after_attempt,
    wait_fixed,
)

from ...logging_config import get_logger
from ..base import FetchedFile, FetchRequest, ProviderKind
from ..client import HTTPBackend
from ..exceptions import (
    DownloadIOError,
    JobCancelledError,
    JobTimeoutError,
    MediaGrabError,
    ValidationError,
)
from ..parser import JobResultItem, parse_results_response, parse_submit_response

logger = get_logger(__name__)

SleepFunc = Callable[[float], Awaitable[None]]


class JobState(str, Enum):
    """Lifecycle of one submitted job."""

    IDLE = "idle"
    SUBMITTED = "submitted"
    RESULTS_READY = "results_ready"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class JobSession:
    """Diagnostics for the job of the latest fetch() call."""

    handle: Optional[str] = None
    state: JobState = JobState.IDLE
    polls: int = 0
    items: list[JobResultItem] = field(default_factory=list)
    files: list[Path] = field(default_factory=list)


class InstagBackend(HTTPBackend):
    """Downloads through Instag.com's asynchronous job API."""

    BASE_URL = "https://instag.com/api/v1"
    PROVIDER_TAG = "instag"

    def __init__(
        self,
        api_key: str,
        base_url: Optional[str] = None,
        timeout: float = 30.0,
        poll_interval: float = 5.0,
        max_polls: int = 300,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Optional[SleepFunc] = None,
        cancel_event: Optional[asyncio.Event] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize the Instag backend.

        Args:
            api_key: Instag.com API key
            base_url: API root, defaults to BASE_URL
            timeout: Per-request timeout in seconds
            poll_interval: Seconds between result polls
            max_polls: Poll attempts before giving up
            transport: Optional httpx transport
            sleep: Replacement for asyncio.sleep between polls
            cancel_event: When set, the wait between polls aborts the job
            clock: Source of the timestamp used in file names

        Raises:
            ValidationError: If the API key is empty
        """
        if not api_key or not api_key.strip():
            raise ValidationError(
                "Instag API key not configured (set INSTAG_API_KEY)"
            )
        if max_polls < 1:
            raise ValidationError("max_polls must be at least 1")

        super().__init__(timeout=timeout, transport=transport)
        self.api_key = api_key.strip()
        self.base_url = (base_url or self.BASE_URL).rstrip("/")
        self.poll_interval = poll_interval
        self.max_polls = max_polls
        self._sleep = sleep or asyncio.sleep
        self.cancel_event = cancel_event
        self._clock = clock or datetime.now
        self.session = JobSession()

    @classmethod
    def create(cls, api_key: str, settings, **options) -> "InstagBackend":
        return cls(
            api_key=api_key,
            base_url=settings.instag_base_url,
            timeout=settings.request_timeout,
            poll_interval=settings.poll_interval,
            max_polls=settings.max_polls,
            transport=options.get("transport"),
            sleep=options.get("sleep"),
            cancel_event=options.get("cancel_event"),
            clock=options.get("clock"),
        )

    @property
    def provider(self) -> ProviderKind:
        return ProviderKind.INSTAG

    def _auth_headers(self) -> dict[str, str]:
        return {"Authorization": self.api_key}

    async def submit(self, url: str) -> str:
        """Submit a URL and return the job uuid."""
        body = await self.request(
            "POST",
            f"{self.base_url}/submit/",
            label="Instag submit",
            data={"url": url},
            headers=self._auth_headers(),
        )
        return parse_submit_response(body)

    async def poll(self, handle: str) -> list[JobResultItem]:
        """Fetch the current results of a job; empty means still running."""
        self.session.polls += 1
        body = await self.request(
            "POST",
            f"{self.base_url}/results/",
            label="Instag results",
            data={"uuid": handle},
            headers=self._auth_headers(),
        )
        return parse_results_response(body)

    async def _wait(self, seconds: float) -> None:
        """Sleep between polls, aborting early if the cancel event fires."""
        if self.cancel_event is None:
            await self._sleep(seconds)
            return

        if self.cancel_event.is_set():
            raise JobCancelledError("Job cancelled while waiting for results")

        waiter = asyncio.ensure_future(self.cancel_event.wait())
        sleeper = asyncio.ensure_future(self._sleep(seconds))
        try:
            done, _ = await asyncio.wait(
                {waiter, sleeper}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            for task in (waiter, sleeper):
                if not task.done():
                    task.cancel()

        if waiter in done:
            raise JobCancelledError("Job cancelled while waiting for results")

    async def wait_for_results(self, handle: str) -> list[JobResultItem]:
        """
        Poll until the job yields results.

        The first non-empty poll ends the loop.

        Raises:
            JobTimeoutError: If max_polls polls all came back empty
            JobCancelledError: If the cancel event fired during a wait
            ProviderError: On any failed poll request
            ResponseParseError: On a malformed poll response
        """

        def log_empty_poll(retry_state) -> None:
            logger.debug(
                "job_poll_empty",
                handle=handle,
                attempt=retry_state.attempt_number,
                max_polls=self.max_polls,
            )

        retrying = AsyncRetrying(
            sleep=self._wait,
            stop=stop_after_attempt(self.max_polls),
            wait=wait_fixed(self.poll_interval),
            retry=retry_if_result(lambda items: not items),
            before_sleep=log_empty_poll,
        )

        try:
            return await retrying(self.poll, handle)
        except RetryError:
            raise JobTimeoutError(
                f"Timeout waiting for Instag results after {self.max_polls} polls "
                f"(job {handle})"
            )

    def item_path(
        self, output_dir: Path, timestamp: int, index: int, item: JobResultItem
    ) -> Path:
        """{timestamp}__{index}__{type}__instag{ext} inside output_dir (suffixed if taken)."""
        item_type = re.sub(r"[^\w.-]", "_", item.type) or "unknown"
        name = f"{timestamp}__{index}__{item_type}__{self.PROVIDER_TAG}{item.extension}"
        return output_dir / name

    async def fetch(self, request: FetchRequest) -> list[FetchedFile]:
        """
        Submit, poll and download every result, one item at a time.

        Files already written stay on disk when a later step fails.

        Returns:
            One FetchedFile per job result, in result order
        """
        self.session = session = JobSession()

        try:
            request.output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise DownloadIOError(
                f"Cannot create output directory {request.output_dir}: {e}",
                path=request.output_dir,
            )

        try:
            session.handle = await self.submit(request.url)
            session.state = JobState.SUBMITTED
            logger.info("job_submitted", handle=session.handle, url=request.url)

            session.items = await self.wait_for_results(session.handle)
            session.state = JobState.RESULTS_READY
            logger.info(
                "job_results_ready",
                handle=session.handle,
                items=len(session.items),
                polls=session.polls,
            )

            timestamp = int(self._clock().timestamp())
            fetched = []
            for index, item in enumerate(session.items):
                path = self.item_path(request.output_dir, timestamp, index, item)
                path = await self.stream_to_file(
                    item.url, path, label=f"item {index}", overwrite=False
                )
                session.files.append(path)
                fetched.append(FetchedFile(path=path))

            session.state = JobState.COMPLETED
            return fetched

        except JobTimeoutError:
            session.state = JobState.TIMED_OUT
            raise
        except JobCancelledError:
            session.state = JobState.CANCELLED
            raise
        except asyncio.CancelledError:
            session.state = JobState.CANCELLED
            raise
        except MediaGrabError as e:
            session.state = JobState.FAILED
            logger.error("job_failed", handle=session.handle, error=e.message)
            raise
