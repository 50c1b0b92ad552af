"""Notarization client for Apple's notary service (``xcrun notarytool``).

``submit()`` is synchronous for the caller: it archives the signed bundle,
uploads it, and polls ``notarytool info`` with exponential backoff until the
service returns a terminal verdict. Tool failures while polling are treated
as transient service unavailability and retried; an explicit rejected
verdict ends polling at once and is never retried within the run.

The transient zip is deleted when ``submit()`` returns or raises. An archive
left behind by a killed process is removed before the next submission.
"""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Callable
from pathlib import Path

from tenacity import (
    RetryCallState,
    RetryError,
    Retrying,
    retry_if_exception_type,
    retry_if_result,
    stop_after_attempt,
    stop_after_delay,
    stop_when_event_set,
    wait_exponential,
)

from notaryforge.config import ReleaseSettings
from notaryforge.core.errors import NotarizationError
from notaryforge.core.toolchain import ToolRunner, ToolUnavailableError
from notaryforge.models.artifacts import (
    Bundle,
    NotaryCredentials,
    SubmissionResult,
    SubmissionStatus,
)

logger = logging.getLogger(__name__)


class ServiceUnavailable(RuntimeError):
    """Transient notary failure. Retried, never treated as a verdict."""


class NotarizationClient:
    """Submits bundles and waits for the notary verdict.

    Parameters
    ----------
    runner:
        Tool runner used for ``ditto`` and ``xcrun notarytool``.
    initial_interval, max_interval:
        Bounds of the exponential polling interval, in seconds.
    timeout:
        Give up polling after this many seconds.
    max_polls:
        Give up polling after this many status requests.
    submit_attempts:
        Upload attempts before a failing submission is fatal.
    sleep:
        Sleep function between polls. Defaults to waiting on the cancel
        event, so ``cancel()`` interrupts a sleeping poll loop.
    """

    def __init__(
        self,
        runner: ToolRunner,
        *,
        initial_interval: float = 15.0,
        max_interval: float = 120.0,
        timeout: float = 3600.0,
        max_polls: int = 200,
        submit_attempts: int = 3,
        sleep: Callable[[float], object] | None = None,
        cancel_event: threading.Event | None = None,
    ) -> None:
        self._runner = runner
        self._initial = initial_interval
        self._max_interval = max_interval
        self._timeout = timeout
        self._max_polls = max_polls
        self._submit_attempts = submit_attempts
        self._cancel = cancel_event or threading.Event()
        self._sleep = sleep or self._cancel.wait

    @classmethod
    def from_settings(
        cls, runner: ToolRunner, settings: ReleaseSettings, **kwargs: object
    ) -> NotarizationClient:
        return cls(
            runner,
            initial_interval=settings.poll_initial_interval,
            max_interval=settings.poll_max_interval,
            timeout=settings.notarization_timeout,
            max_polls=settings.max_polls,
            submit_attempts=settings.submit_attempts,
            **kwargs,
        )

    def cancel(self) -> None:
        """Stop a running poll loop at its next check."""
        self._cancel.set()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def submit(
        self,
        bundle: Bundle,
        credentials: NotaryCredentials,
        *,
        archive_path: Path | None = None,
    ) -> SubmissionResult:
        """Notarize ``bundle`` and return the terminal verdict.

        Raises ``NotarizationError`` if the bundle cannot be archived or
        uploaded, or if no verdict arrives before the timeout.
        """
        archive = archive_path or bundle.path.parent.parent / f"{bundle.path.stem}-notarize.zip"
        if archive.exists():
            logger.info("Removing stale notarization archive %s", archive)
            archive.unlink()

        try:
            self._archive(bundle, archive)
            submission_id = self._upload(archive, credentials)
            logger.info("Submitted %s for notarization: id %s", bundle.path.name, submission_id)
            status, polls = self._wait(submission_id, credentials)
            log = ""
            if status == SubmissionStatus.REJECTED:
                log = self.fetch_log(submission_id, credentials)
            return SubmissionResult(
                submission_id=submission_id, status=status, polls=polls, log=log
            )
        finally:
            archive.unlink(missing_ok=True)

    def fetch_log(self, submission_id: str, credentials: NotaryCredentials) -> str:
        """Fetch the developer log for a submission."""
        args = ["xcrun", "notarytool", "log", submission_id, *credentials.as_args()]
        try:
            result = self._runner.run(args)
        except ToolUnavailableError as exc:
            return f"(log unavailable: {exc})"
        if not result.ok:
            logger.warning("Could not fetch notarization log for %s", submission_id)
            return f"(log unavailable: {result.diagnostic})"
        return result.stdout.strip()

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _archive(self, bundle: Bundle, archive: Path) -> None:
        archive.parent.mkdir(parents=True, exist_ok=True)
        try:
            result = self._runner.run(
                ["ditto", "-c", "-k", "--keepParent", bundle.path, archive]
            )
        except ToolUnavailableError as exc:
            raise NotarizationError("Cannot archive bundle for notarization", str(exc)) from exc
        if not result.ok:
            raise NotarizationError("ditto failed to archive the bundle", result.diagnostic)

    def _upload(self, archive: Path, credentials: NotaryCredentials) -> str:
        retrying = Retrying(
            stop=stop_after_attempt(self._submit_attempts),
            wait=wait_exponential(multiplier=1, min=1, max=8),
            retry=retry_if_exception_type(ServiceUnavailable),
            sleep=self._sleep,
            reraise=True,
        )
        try:
            return retrying(self._upload_once, archive, credentials)
        except ServiceUnavailable as exc:
            raise NotarizationError(
                f"Submission failed after {self._submit_attempts} attempt(s)", str(exc)
            ) from exc

    def _upload_once(self, archive: Path, credentials: NotaryCredentials) -> str:
        args = [
            "xcrun", "notarytool", "submit", archive,
            *credentials.as_args(),
            "--output-format", "json",
        ]
        payload = self._notarytool_json(args)
        submission_id = str(payload.get("id", "")).strip()
        if not submission_id:
            raise NotarizationError(
                "notarytool submit returned no submission id", json.dumps(payload)
            )
        return submission_id

    def _wait(
        self, submission_id: str, credentials: NotaryCredentials
    ) -> tuple[SubmissionStatus, int]:
        polls = 0

        def poll() -> SubmissionStatus:
            nonlocal polls
            polls += 1
            payload = self._notarytool_json([
                "xcrun", "notarytool", "info", submission_id,
                *credentials.as_args(),
                "--output-format", "json",
            ])
            return SubmissionStatus.from_notary(str(payload.get("status", "")))

        retrying = Retrying(
            stop=(
                stop_after_delay(self._timeout)
                | stop_after_attempt(self._max_polls)
                | stop_when_event_set(self._cancel)
            ),
            wait=wait_exponential(
                multiplier=self._initial, min=self._initial, max=self._max_interval
            ),
            retry=(
                retry_if_result(lambda status: status == SubmissionStatus.PENDING)
                | retry_if_exception_type(ServiceUnavailable)
            ),
            sleep=self._sleep,
            before_sleep=self._log_poll,
        )
        try:
            status = retrying(poll)
        except RetryError as exc:
            last = exc.last_attempt
            detail = str(last.exception()) if last.failed else "status still in progress"
            if self._cancel.is_set():
                raise NotarizationError(
                    f"Notarization wait for {submission_id} cancelled", detail
                ) from exc
            raise NotarizationError(
                f"No notarization verdict for {submission_id} after {polls} poll(s)", detail
            ) from exc

        logger.info("Notarization %s: %s after %d poll(s)", submission_id, status.value, polls)
        return status, polls

    def _notarytool_json(self, args: list) -> dict:
        try:
            result = self._runner.run(args)
        except ToolUnavailableError as exc:
            raise NotarizationError("notarytool is not available", str(exc)) from exc
        if not result.ok:
            raise ServiceUnavailable(result.diagnostic or f"exit code {result.exit_code}")
        try:
            payload = json.loads(result.stdout)
        except json.JSONDecodeError as exc:
            raise ServiceUnavailable(f"unreadable notarytool output: {result.stdout[:200]!r}") from exc
        if not isinstance(payload, dict):
            raise ServiceUnavailable(f"unexpected notarytool output: {result.stdout[:200]!r}")
        return payload

    @staticmethod
    def _log_poll(retry_state: RetryCallState) -> None:
        outcome = retry_state.outcome
        if outcome is not None and outcome.failed:
            logger.warning(
                "Notary service unavailable (%s); retrying in %.0fs",
                outcome.exception(),
                retry_state.next_action.sleep if retry_state.next_action else 0.0,
            )
        else:
            logger.info(
                "Notarization in progress; checking again in %.0fs",
                retry_state.next_action.sleep if retry_state.next_action else 0.0,
            )
