"""
Siteadmin - Update Checker
==========================
Periodically fetches the latest release descriptor and announces newer
versions to the admin console.

States:
    - "idle"         : No check in progress
    - "checking"     : Waiting for the release metadata request
    - "up_to_date"   : Latest release is not newer than the running version
    - "update_found" : A newer release exists
    - "failed"       : The request or the response was unusable

A check always ends back in "idle"; the outcome of the last check is kept
in `last_result`.

Outcomes:
    update_found -> "update" notification (pushed as a "notification" event)
                    plus a separate "update_available" broadcast
    failed       -> "error" notification and an error in the statistics
    up_to_date   -> log line only

Checks run one at a time. A manual check requested while the periodic
check is running waits for it to finish, then performs its own request.
The periodic task re-arms after every check, whatever the outcome.

Usage:
    checker = UpdateChecker(store, ws_manager, stats, current_version="1.0.0",
                            release_url="https://api.github.com/repos/o/r/releases/latest")
    checker.start()             # Background interval task (inside a running loop)
    result = await checker.check()
    await checker.stop()
"""

import re
import asyncio
import logging
import httpx
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from server.notifications import NotificationStore
from server.stats import StatisticsRecorder
from server.websocket import WebSocketManager


logger = logging.getLogger(__name__)

USER_AGENT = "siteadmin-update-checker"

IDLE = "idle"
CHECKING = "checking"
UP_TO_DATE = "up_to_date"
UPDATE_FOUND = "update_found"
FAILED = "failed"

_VERSION_RE = re.compile(r"^(\d+)(?:\.(\d+))?(?:\.(\d+))?")


class UpdateCheckError(Exception):
    """Raised when the release metadata cannot be fetched or understood."""


@dataclass
class UpdateCheckResult:
    status: str
    current_version: str
    latest_version: str | None = None
    release_url: str | None = None
    error: str | None = None
    checked_at: str = ""

    @property
    def ok(self) -> bool:
        return self.status != FAILED

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "currentVersion": self.current_version,
            "latestVersion": self.latest_version,
            "releaseUrl": self.release_url,
            "error": self.error,
            "checkedAt": self.checked_at,
        }


def parse_version(tag: str) -> tuple[int, int, int]:
    """
    Turn a release tag into a (major, minor, patch) tuple.

    Any non-digit prefix is dropped ("v1.2.3" -> (1, 2, 3)) and missing
    trailing components count as zero ("2.1" -> (2, 1, 0)). Anything after
    the patch number ("-beta", "+build") is ignored.

    Raises:
        ValueError: If the tag contains no leading version number.
    """
    stripped = re.sub(r"^[^0-9]+", "", (tag or "").strip())
    match = _VERSION_RE.match(stripped)
    if not match:
        raise ValueError(f"Not a version tag: {tag!r}")
    major, minor, patch = (int(part) if part else 0 for part in match.groups())
    return major, minor, patch


def compare_versions(a: tuple[int, int, int], b: tuple[int, int, int]) -> int:
    """Return 1 if a is newer than b, -1 if older, 0 if equal."""
    for left, right in zip(a, b):
        if left != right:
            return 1 if left > right else -1
    return 0


def is_newer(remote: str, current: str) -> bool:
    """True if the remote tag names a later version than the current one."""
    return compare_versions(parse_version(remote), parse_version(current)) > 0


class UpdateChecker:
    """
    Polls the release endpoint and reports new versions.

    Attributes:
        notifications:   Store receiving "update" and "error" notifications.
        ws:              WebSocket manager for the "update_available" event.
        stats:           Recorder for check failures.
        current_version: Version of the running server.
        release_url:     URL of the latest-release JSON descriptor.
        interval:        Seconds between periodic checks.
        timeout:         Request timeout in seconds.
        state:           Current state string (see module docstring).
        last_result:     Result of the most recent completed check.
    """

    def __init__(
        self,
        notifications: NotificationStore,
        ws_manager: WebSocketManager,
        stats: StatisticsRecorder,
        current_version: str,
        release_url: str,
        interval: float = 3600,
        timeout: float = 10,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.notifications = notifications
        self.ws = ws_manager
        self.stats = stats
        self.current_version = current_version
        self.release_url = release_url
        self.interval = interval
        self.timeout = timeout
        self.state: str = IDLE
        self.last_result: UpdateCheckResult | None = None

        # Tests swap in httpx.MockTransport here
        self._transport = transport
        self._lock = asyncio.Lock()
        self._task: asyncio.Task | None = None

    @property
    def is_running(self) -> bool:
        """Check if the periodic task is active."""
        return self._task is not None and not self._task.done()

    @property
    def status(self) -> dict[str, Any]:
        return {
            "state": self.state,
            "currentVersion": self.current_version,
            "interval": self.interval,
            "periodic": self.is_running,
            "lastResult": self.last_result.to_dict() if self.last_result else None,
        }

    async def check(self) -> UpdateCheckResult:
        """
        Run one complete update check.

        Side effects depend on the outcome (see module docstring). Failures
        are reported through the result, never raised.

        Returns:
            The UpdateCheckResult of this check.
        """
        async with self._lock:
            self.state = CHECKING
            try:
                result = await self._check_once()
            finally:
                self.state = IDLE
            self.last_result = result
            return result

    async def _check_once(self) -> UpdateCheckResult:
        checked_at = datetime.now(timezone.utc).isoformat()
        try:
            release = await self._fetch_latest()
            tag = release.get("tag_name")
            if not isinstance(tag, str):
                raise UpdateCheckError("Release metadata has no tag_name")
            try:
                newer = is_newer(tag, self.current_version)
            except ValueError as e:
                raise UpdateCheckError(str(e)) from e
        except UpdateCheckError as e:
            await self._report_failure(str(e))
            return UpdateCheckResult(
                status=FAILED,
                current_version=self.current_version,
                error=str(e),
                checked_at=checked_at,
            )

        latest = re.sub(r"^[^0-9]+", "", tag)
        release_url = release.get("html_url") or ""
        notes = release.get("body") or ""

        if not newer:
            logger.info("[UPDATE] Up to date (running %s, latest %s)", self.current_version, latest)
            return UpdateCheckResult(
                status=UP_TO_DATE,
                current_version=self.current_version,
                latest_version=latest,
                release_url=release_url,
                checked_at=checked_at,
            )

        logger.info("[UPDATE] New version available: %s (running %s)", latest, self.current_version)
        await self.notifications.add(
            "update",
            title="Update available",
            message=f"Version {latest} is available (running {self.current_version}).",
            description=notes,
            url=release_url,
        )
        await self.ws.broadcast("update_available", {
            "currentVersion": self.current_version,
            "newVersion": latest,
            "releaseUrl": release_url,
            "releaseNotes": notes,
        })
        return UpdateCheckResult(
            status=UPDATE_FOUND,
            current_version=self.current_version,
            latest_version=latest,
            release_url=release_url,
            checked_at=checked_at,
        )

    async def _fetch_latest(self) -> dict:
        """
        GET the latest-release descriptor.

        Raises:
            UpdateCheckError: On transport errors, non-2xx status or a body
                              that is not a JSON object.
        """
        headers = {
            "User-Agent": USER_AGENT,
            "Accept": "application/vnd.github+json",
        }
        try:
            async with httpx.AsyncClient(
                transport=self._transport,
                timeout=self.timeout,
                headers=headers,
                follow_redirects=True,
            ) as client:
                response = await client.get(self.release_url)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            raise UpdateCheckError(
                f"Release check failed: HTTP {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise UpdateCheckError(f"Release check failed: {e}") from e
        except ValueError as e:
            raise UpdateCheckError("Release check failed: invalid JSON response") from e

        if not isinstance(data, dict):
            raise UpdateCheckError("Release check failed: unexpected response format")
        return data

    async def _report_failure(self, message: str) -> None:
        logger.error("[UPDATE] %s", message)
        self.stats.record_error(message)
        await self.notifications.add(
            "error",
            title="Update check failed",
            message=message,
        )

    # -- Periodic task ---------------------------------------------------------

    async def _run_loop(self) -> None:
        """Check now, then once per interval, until cancelled."""
        while True:
            try:
                await self.check()
            except asyncio.CancelledError:
                raise
            except Exception:
                # Never let one bad round end the periodic task
                logger.exception("[UPDATE] Unexpected error during update check")
            await asyncio.sleep(self.interval)

    def start(self) -> None:
        """
        Start the periodic task on the running event loop.

        Raises:
            RuntimeError: If the task is already running.
        """
        if self.is_running:
            raise RuntimeError("Update checker is already running")
        self._task = asyncio.get_running_loop().create_task(
            self._run_loop(), name="siteadmin-update-checker",
        )
        logger.info("[UPDATE] Periodic check started (every %ss)", self.interval)

    async def stop(self) -> None:
        """Cancel the periodic task and wait for it to exit."""
        if not self._task:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("[UPDATE] Periodic check stopped")
