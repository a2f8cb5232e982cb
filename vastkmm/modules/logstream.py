"""Live log streaming from module worker pods.

One thread per worker follows that worker's logs, retrying a fixed number
of times with a fixed backoff. All threads share one cancellation event;
cancelling also closes every open stream so blocked reads return, and
backoff waits on the event so no retry timer outlives the session by more
than one interval.
"""
import logging
import threading
from typing import Callable, Iterable, Optional

from .cluster import ClusterClient
from .errors import StreamRetryExhausted
from .models import LogSession, LogSessionReport

logger = logging.getLogger("vastkmm.logstream")

MAX_ATTEMPTS = 10
BACKOFF_SECONDS = 3
TAIL_LINES = 50


def _print_line(line: str) -> None:
    print(line, flush=True)


class LogStreamSupervisor:
    """Follows several worker log streams as one cancellable session."""

    def __init__(
        self,
        cluster: ClusterClient,
        namespace: str,
        max_attempts: int = MAX_ATTEMPTS,
        backoff: float = BACKOFF_SECONDS,
        tail_lines: int = TAIL_LINES,
        sink: Callable[[str], None] = _print_line,
        join_interval: float = 0.5,
    ):
        self.cluster = cluster
        self.namespace = namespace
        self.max_attempts = max_attempts
        self.backoff = backoff
        self.tail_lines = tail_lines
        self.sink = sink
        self.join_interval = join_interval
        self.session: Optional[LogSession] = None

    def run(self, workers: Iterable[str]) -> LogSessionReport:
        """Stream all workers until every stream ends or the caller interrupts.

        Blocks the caller. Ctrl+C (KeyboardInterrupt) cancels the session and
        returns a report flagged ``cancelled`` instead of propagating.
        """
        session = LogSession(workers=list(workers))
        self.session = session
        report = LogSessionReport()
        if not session.workers:
            return report

        threads = [
            threading.Thread(
                target=self._follow, args=(session, name, report),
                name=f"logs-{name}", daemon=True,
            )
            for name in session.workers
        ]
        for thread in threads:
            logger.info(f"Starting log stream for {thread.name[len('logs-'):]}...")
            thread.start()
        logger.info("Log streaming started for all pods. Press Ctrl+C to stop.")

        try:
            for thread in threads:
                while thread.is_alive():
                    thread.join(timeout=self.join_interval)
        except KeyboardInterrupt:
            logger.info("Interrupted, stopping log streams...")
            self.cancel()
            report.cancelled = True
            for thread in threads:
                thread.join(timeout=self.backoff + self.join_interval)
                if thread.is_alive():
                    logger.warning(f"⚠️  {thread.name} did not stop within {self.backoff}s")

        with session.lock:
            report.attempts = dict(session.attempts)
        return report

    def cancel(self) -> None:
        """Stop every stream and retry timer of the current session."""
        session = self.session
        if session is None:
            return
        session.cancel_event.set()
        with session.lock:
            streams = list(session.open_streams.values())
        for stream in streams:
            stream.close()

    def _follow(self, session: LogSession, name: str, report: LogSessionReport) -> None:
        last_error: Optional[Exception] = None
        for attempt in range(1, self.max_attempts + 1):
            if session.cancelled:
                return
            with session.lock:
                session.attempts[name] = attempt

            try:
                stream = self.cluster.follow_logs(name, self.namespace, tail_lines=self.tail_lines)
            except Exception as e:
                last_error = e
            else:
                with session.lock:
                    session.open_streams[name] = stream
                try:
                    # cancel() may have run before the stream was registered
                    if session.cancelled:
                        return
                    for line in stream.lines():
                        if session.cancelled:
                            break
                        self.sink(f"[{name}] {line}")
                    if session.cancelled:
                        return
                    with session.lock:
                        report.completed.append(name)
                    return
                except Exception as e:
                    if session.cancelled:
                        return
                    last_error = e
                finally:
                    with session.lock:
                        session.open_streams.pop(name, None)
                    stream.close()

            logger.debug(f"Log stream for {name} failed: {last_error}")
            if attempt < self.max_attempts:
                logger.info(f"Retrying log stream for {name}... ({attempt}/{self.max_attempts})")
                if session.cancel_event.wait(self.backoff):
                    return

        failure = StreamRetryExhausted(
            f"Gave up streaming logs for {name} after {self.max_attempts} attempts: {last_error}"
        )
        logger.warning(f"⚠️  {failure}")
        with session.lock:
            report.exhausted.append(name)
