"""Reporting side: charts, ACMI files and webhook posts for finalized attempts."""

from __future__ import annotations

import json
import logging
import queue
import threading
from contextlib import ExitStack
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

import requests

from .acmi import TrackBuffer, write_attempt_acmi
from .domain import FinalizedAttempt
from .render import save_attempt_figure

logger = logging.getLogger(__name__)

FILENAME_DATETIME_FORMAT = "%Y%m%d-%H%M%S"
EMBED_COLOR = 0x22C55E


def load_user_map(path: Union[str, Path]) -> Dict[str, int]:
    """
    Read a {"player name": user_id} JSON object used for webhook mentions.

    Raises:
        ValueError: file is not a JSON object of integer ids
    """
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a JSON object of player name -> user id")

    users = {}
    for name, user_id in data.items():
        try:
            users[str(name)] = int(user_id)
        except (TypeError, ValueError):
            raise ValueError(f"{path}: user id for {name!r} is not an integer: {user_id!r}") from None
    return users


def attempt_basename(attempt: FinalizedAttempt, now: Optional[datetime] = None) -> str:
    """LSO-YYYYmmdd-HHMMSS-<pilot>, pilot reduced to ASCII letters and digits."""
    now = now or datetime.now()
    pilot = "".join(c for c in attempt.pilot_name if c.isascii() and c.isalnum())
    return f"LSO-{now.strftime(FILENAME_DATETIME_FORMAT)}-{pilot}"


def build_summary(attempt: FinalizedAttempt, users: Optional[Mapping[str, int]] = None) -> Dict[str, Any]:
    """Discord-style webhook payload for one attempt."""
    users = users or {}
    user_id = users.get(attempt.pilot_name)
    pilot = f"<@{user_id}>" if user_id is not None else attempt.pilot_name

    fields = [
        {"name": "Pilot", "value": pilot, "inline": True},
        {"name": "Grading", "value": attempt.outcome.label, "inline": True},
        {"name": "Aircraft", "value": attempt.aircraft_type, "inline": True},
        {"name": "Carrier", "value": attempt.carrier_id, "inline": True},
    ]
    if attempt.lso_comment:
        fields.append({"name": "DCS LSO", "value": attempt.lso_comment, "inline": True})

    return {"embeds": [{"color": EMBED_COLOR, "fields": fields}]}


def post_summary(
    webhook_url: str,
    attempt: FinalizedAttempt,
    files: Sequence[Union[str, Path]] = (),
    users: Optional[Mapping[str, int]] = None,
    session: Optional[requests.Session] = None,
    timeout: float = 10.0,
) -> bool:
    """
    Post the attempt summary (and attached files) to a webhook.

    Delivery problems are logged and reported as False; they never propagate
    into the caller's loop.
    """
    payload = build_summary(attempt, users)
    http = session or requests

    try:
        with ExitStack() as stack:
            multipart = {}
            for i, path in enumerate(files):
                path = Path(path)
                multipart[f"files[{i}]"] = (path.name, stack.enter_context(open(path, "rb")))
            response = http.post(
                webhook_url,
                data={"payload_json": json.dumps(payload)},
                files=multipart or None,
                timeout=timeout,
            )
            response.raise_for_status()
    except requests.RequestException as e:
        logger.warning("webhook post for %s failed: %s", attempt.aircraft_id, e)
        return False
    except OSError as e:
        logger.warning("webhook attachment for %s unreadable: %s", attempt.aircraft_id, e)
        return False

    logger.info("posted %s (%s) to webhook", attempt.pilot_name, attempt.outcome.label)
    return True


@dataclass(frozen=True)
class ReportResult:
    attempt: FinalizedAttempt
    chart: Optional[Path] = None
    acmi: Optional[Path] = None
    posted: bool = False


class ReportDispatcher:
    """
    Drains the engine's hand-off queue and produces the reports for each
    finalized attempt. Runs inline via process_pending() or on its own
    thread via start()/stop().
    """

    def __init__(
        self,
        handoff: queue.Queue,
        out_dir: Union[str, Path],
        tracks: Optional[TrackBuffer] = None,
        webhook_url: Optional[str] = None,
        users: Optional[Mapping[str, int]] = None,
        session: Optional[requests.Session] = None,
        min_points: int = 1,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.handoff = handoff
        self.out_dir = Path(out_dir)
        self.tracks = tracks
        self.webhook_url = webhook_url
        self.users = dict(users or {})
        self.session = session
        self.min_points = min_points
        self._clock = clock

        self.results: List[ReportResult] = []
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def handle(self, attempt: FinalizedAttempt) -> Optional[ReportResult]:
        if len(attempt.trace) < self.min_points:
            logger.debug("%s: %s with %d point(s), no report",
                         attempt.aircraft_id, attempt.outcome, len(attempt.trace))
            return None

        base = self.out_dir / attempt_basename(attempt, self._clock())
        chart = save_attempt_figure(attempt, base)

        acmi_path = None
        if self.tracks is not None:
            samples = self.tracks.for_attempt(attempt)
            if samples:
                acmi_path = write_attempt_acmi(base, attempt, samples)

        posted = False
        if self.webhook_url:
            files = [p for p in (chart, acmi_path) if p is not None]
            posted = post_summary(self.webhook_url, attempt, files, self.users, self.session)

        result = ReportResult(attempt=attempt, chart=chart, acmi=acmi_path, posted=posted)
        self.results.append(result)
        logger.info("report for %s: %s", attempt.pilot_name, chart.name)
        return result

    def process_pending(self) -> List[ReportResult]:
        done = []
        while True:
            try:
                attempt = self.handoff.get_nowait()
            except queue.Empty:
                return done
            result = self._handle_one(attempt)
            if result is not None:
                done.append(result)

    def _handle_one(self, attempt: FinalizedAttempt) -> Optional[ReportResult]:
        try:
            return self.handle(attempt)
        except Exception:
            # one broken report must not stop the ones after it
            logger.exception("report for %s failed", attempt.aircraft_id)
            return None
        finally:
            self.handoff.task_done()

    # -----------------------------
    # Worker thread
    # -----------------------------
    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="report-dispatcher", daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
        self._thread = None

    def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                attempt = self.handoff.get(timeout=0.5)
            except queue.Empty:
                continue
            self._handle_one(attempt)
