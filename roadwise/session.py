"""Navigation session: owns the advisory state and talks to the speech sink."""

from __future__ import annotations

import threading
from concurrent.futures import CancelledError, Future, InvalidStateError, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeout
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional, Protocol, Sequence

from roadwise import config
from roadwise.advisory import DEFAULT_POLICY, AdvisoryPolicy, CopilotSessionState, evaluate, route_summary_message
from roadwise.domain import (
    AdvisoryCategory,
    AdvisoryMessage,
    AdvisoryPriority,
    RoadRisk,
    RouteProgress,
    RouteWeatherSegment,
    SafePlace,
    Telemetry,
)
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="session")


class SpeechSink(Protocol):
    """Audio output collaborator."""

    def speak(self, message: AdvisoryMessage) -> None:
        """Render the message (text, priority and language)."""

    def stop_speaking(self) -> None:
        """Cut off whatever is currently being spoken."""


@dataclass(frozen=True)
class EnhancementContext:
    """Structured context handed to the text enhancer with a critical message."""
    lat: float
    lng: float
    speed_kmh: float
    distance_remaining_km: float | None = None


class TextEnhancer(Protocol):
    """Best-effort rephrasing collaborator; may raise anything."""

    def enhance(self, base_message: str, context: EnhancementContext) -> str:
        ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _relay(outcome: Future, job: Future) -> None:
    """Copy a finished enhancement job into the outcome the tick waits on."""
    try:
        if job.cancelled():
            outcome.cancel()
        elif job.exception() is not None:
            outcome.set_exception(job.exception())
        else:
            outcome.set_result(job.result())
    except InvalidStateError:
        # outcome was cancelled by stop() or a timeout; the late result is dropped
        pass


class NavigationCopilot:
    """One active navigation session.

    All evaluation happens in `tick()`, which the host calls on its own timer.
    The evaluate-and-mutate step runs under a single lock; overlapping ticks
    are skipped rather than queued. Critical messages may be reworded by the
    optional enhancer in a background future that is bounded by a timeout
    and cancelled by `stop()`; on any failure the base message is spoken.
    """

    def __init__(
        self,
        speech: SpeechSink,
        enhancer: TextEnhancer | None = None,
        *,
        policy: AdvisoryPolicy = DEFAULT_POLICY,
        language: str = "en",
        clock: Callable[[], datetime] = _utcnow,
        enhancement_timeout: float = 8.0,
        evaluation_interval: float = 30.0,
        muted: bool = False,
    ) -> None:
        self.speech = speech
        self.enhancer = enhancer
        self.policy = policy
        self.language = language
        self.enhancement_timeout = enhancement_timeout
        # seconds between tick() calls; the host owns the timer
        self.evaluation_interval = evaluation_interval
        self._clock = clock

        self._lock = threading.Lock()
        self._tick_lock = threading.Lock()
        self._active = False
        self._muted = muted
        self._state = CopilotSessionState()
        self._telemetry: Optional[Telemetry] = None
        self._progress: Optional[RouteProgress] = None
        self._segments: List[RouteWeatherSegment] = []
        self._safe_places: List[SafePlace] = []
        self._last_message: Optional[str] = None
        self._executor: Optional[ThreadPoolExecutor] = None
        self._pending: Optional[Future] = None

    @classmethod
    def from_settings(cls, speech: SpeechSink, settings: config.Settings | None = None, *,
                      language: str = "en") -> "NavigationCopilot":
        settings = settings or config.settings
        enhancer = None
        if settings.enhancement_enabled:
            from roadwise.enhancement import OllamaClient, OllamaEnhancer

            enhancer = OllamaEnhancer(OllamaClient(settings))
        return cls(
            speech,
            enhancer,
            policy=AdvisoryPolicy.from_settings(settings),
            language=language,
            enhancement_timeout=settings.enhancement_timeout_seconds,
            evaluation_interval=settings.evaluation_interval_seconds,
        )

    # -- lifecycle ---------------------------------------------------------

    def start(self) -> None:
        """Begin a session with a clean state."""
        with self._lock:
            self._state = CopilotSessionState()
            self._last_message = None
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="roadwise-enhance")
            self._active = True
        logger.info("Navigation copilot started", extra={"language": self.language})

    def stop(self) -> None:
        """End the session. Safe to call repeatedly."""
        with self._lock:
            was_active = self._active
            self._active = False
            self._state = CopilotSessionState()
            pending, self._pending = self._pending, None
            executor, self._executor = self._executor, None
        if pending is not None:
            pending.cancel()
        if executor is not None:
            executor.shutdown(wait=False, cancel_futures=True)
        if was_active:
            logger.info("Navigation copilot stopped")

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def is_muted(self) -> bool:
        return self._muted

    @property
    def is_enhancing(self) -> bool:
        return self._pending is not None

    @property
    def last_message(self) -> Optional[str]:
        return self._last_message

    @property
    def state(self) -> CopilotSessionState:
        return self._state

    def mute(self) -> None:
        self._muted = True

    def unmute(self) -> None:
        self._muted = False

    def toggle_mute(self) -> bool:
        self._muted = not self._muted
        return self._muted

    # -- inputs ------------------------------------------------------------

    def update_telemetry(self, telemetry: Telemetry) -> None:
        with self._lock:
            self._telemetry = telemetry

    def update_progress(self, progress: RouteProgress) -> None:
        with self._lock:
            self._progress = progress

    def update_weather_segments(self, segments: Sequence[RouteWeatherSegment]) -> None:
        with self._lock:
            self._segments = list(segments)

    def update_safe_places(self, places: Sequence[SafePlace]) -> None:
        with self._lock:
            self._safe_places = list(places)

    # -- evaluation --------------------------------------------------------

    def tick(self) -> Optional[AdvisoryMessage]:
        """Evaluate once and deliver the resulting message, if any.

        Returns the message handed to the speech sink (reworded when
        enhancement succeeded), or None.
        """
        if not self._tick_lock.acquire(blocking=False):
            logger.debug("Previous tick still running; skipping")
            return None
        try:
            with self._lock:
                if not self._active:
                    return None
                self._state, message = evaluate(
                    self._state,
                    self._telemetry,
                    self._progress,
                    self._segments,
                    self._safe_places,
                    now=self._clock(),
                    language=self.language,
                    policy=self.policy,
                )
                telemetry, progress = self._telemetry, self._progress

            if message is None:
                return None
            self._last_message = message.text
            logger.info(
                "Advisory emitted",
                extra={"category": message.category.value, "priority": message.priority.value,
                       "key": message.message_key},
            )

            if self._muted:
                return None

            if message.priority == AdvisoryPriority.CRITICAL and self.enhancer is not None and telemetry is not None:
                context = EnhancementContext(
                    lat=telemetry.lat,
                    lng=telemetry.lng,
                    speed_kmh=telemetry.speed_kmh,
                    distance_remaining_km=progress.remaining_km if progress is not None else None,
                )
                try:
                    text = self._enhance(message.text, context)
                except CancelledError:
                    logger.info("Session stopped during enhancement; dropping advisory")
                    return None
                if text != message.text:
                    message = message.model_copy(update={"text": text})
                    self._last_message = text

            self._deliver(message)
            return message
        finally:
            self._tick_lock.release()

    def _enhance(self, base_message: str, context: EnhancementContext) -> str:
        """Reword via the enhancer; returns the base message on any failure.

        Raises CancelledError when the session is stopped while waiting.
        """
        outcome: Future = Future()
        with self._lock:
            if not self._active or self._executor is None:
                raise CancelledError()
            self._pending = outcome
            job = self._executor.submit(self.enhancer.enhance, base_message, context)
        job.add_done_callback(lambda done: _relay(outcome, done))

        try:
            return outcome.result(timeout=self.enhancement_timeout)
        except CancelledError:
            raise
        except FuturesTimeout:
            logger.warning("Advisory enhancement timed out; using base message",
                           extra={"timeout_s": self.enhancement_timeout})
            outcome.cancel()
            if not job.cancel():
                self._replace_executor()
            return base_message
        except Exception as exc:
            logger.warning("Advisory enhancement failed; using base message", extra={"error": str(exc)})
            return base_message
        finally:
            with self._lock:
                if self._pending is outcome:
                    self._pending = None

    def _replace_executor(self) -> None:
        """Retire a worker still stuck on a timed-out enhancement; its result is never read."""
        with self._lock:
            stuck = self._executor
            if stuck is None or not self._active:
                return
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="roadwise-enhance")
        stuck.shutdown(wait=False, cancel_futures=True)
        logger.info("Replaced enhancement worker after timeout")

    def _deliver(self, message: AdvisoryMessage) -> None:
        if message.interrupts_speech:
            self.speech.stop_speaking()
        self.speech.speak(message)

    # -- manual announcements ---------------------------------------------

    def announce(self, text: str, priority: AdvisoryPriority = AdvisoryPriority.MEDIUM) -> Optional[AdvisoryMessage]:
        """Speak a host-supplied route update."""
        if self._muted:
            return None
        message = AdvisoryMessage(
            category=AdvisoryCategory.ROUTE_UPDATE,
            priority=priority,
            text=text,
            message_key="route.update",
            language=self.language,
            created_at=self._clock(),
        )
        self._last_message = text
        self._deliver(message)
        return message

    def announce_route_summary(self, distance_km: float, duration_minutes: int,
                               risk: RoadRisk) -> Optional[AdvisoryMessage]:
        if self._muted:
            return None
        message = route_summary_message(distance_km, duration_minutes, risk, language=self.language,
                                        now=self._clock())
        self._last_message = message.text
        self._deliver(message)
        return message
