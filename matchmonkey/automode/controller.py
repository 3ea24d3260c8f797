"""Auto-trigger controller: re-runs discovery when the play queue runs low"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Optional

from matchmonkey.interfaces import SettingsProvider
from matchmonkey.models.records import AutoModeState, PlaybackEvent
from matchmonkey.monitoring.metrics import record_auto_trigger
from matchmonkey.settings import AUTO_MODE_KEY


logger = logging.getLogger(__name__)

STATE_IDLE = "idle"
STATE_LISTENING = "listening"
STATE_TRIGGERING = "triggering"

PipelineRunner = Callable[..., Awaitable[Any]]


class AutoTriggerController:
    """Watches playback events and launches auto-mode pipeline runs.

    At most one pipeline runs at a time; events that arrive while a run is
    in flight, or within the cooldown window after the last trigger, are
    dropped rather than queued.
    """

    def __init__(
        self,
        run_pipeline: PipelineRunner,
        settings: Optional[SettingsProvider] = None,
        threshold: int = 2,
        cooldown_ms: int = 5000,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize controller.

        Args:
            run_pipeline: Coroutine function called as run_pipeline(None, True)
            settings: Provider of the auto-mode enable flag
            threshold: Trigger when remaining entries <= threshold
            cooldown_ms: Minimum milliseconds between triggers
            clock: Monotonic time source in seconds
        """
        self.run_pipeline = run_pipeline
        self.settings = settings
        self.threshold = threshold
        self.state = AutoModeState(cooldown_ms=cooldown_ms)
        self._clock = clock
        self._task: Optional[asyncio.Task] = None

    @property
    def phase(self) -> str:
        if self.state.running:
            return STATE_TRIGGERING
        if self.state.listening:
            return STATE_LISTENING
        return STATE_IDLE

    def enable(self) -> None:
        if not self.state.listening:
            logger.info("Auto-mode enabled (threshold %d, cooldown %d ms)",
                        self.threshold, self.state.cooldown_ms)
        self.state.listening = True

    def disable(self) -> None:
        if self.state.listening:
            logger.info("Auto-mode disabled")
        self.state.listening = False

    def sync_with_settings(self) -> bool:
        """Attach or detach according to the auto-mode setting.

        Returns:
            Whether the controller is listening afterwards
        """
        if self.settings is None:
            return self.state.listening
        if self.settings.get_bool(AUTO_MODE_KEY, False):
            self.enable()
        else:
            self.disable()
        return self.state.listening

    def _cooldown_elapsed(self, now: float) -> bool:
        last = self.state.last_trigger_time
        return last is None or (now - last) * 1000.0 >= self.state.cooldown_ms

    async def handle_event(self, event: PlaybackEvent) -> bool:
        """Process one playback-position event.

        Args:
            event: Queue position snapshot

        Returns:
            True if a pipeline run was started
        """
        if not self.state.listening:
            return False

        remaining = event.estimate_remaining()
        if remaining is None:
            logger.debug("Playback event without queue information, ignoring")
            return False
        if remaining > self.threshold:
            return False

        if self.state.running:
            logger.debug("Auto-mode run already in progress, dropping trigger")
            record_auto_trigger("busy")
            return False

        now = self._clock()
        if not self._cooldown_elapsed(now):
            logger.debug("Auto-mode cooldown active, dropping trigger")
            record_auto_trigger("cooldown")
            return False

        self.state.running = True
        self.state.last_trigger_time = now
        record_auto_trigger("triggered")
        logger.info("Queue nearly empty (%d remaining), starting auto-mode run", remaining)
        self._task = asyncio.create_task(self._execute())
        return True

    async def _execute(self) -> None:
        try:
            result = await self.run_pipeline(None, True)
            if result is not None and not getattr(result, "success", False):
                logger.info("Auto-mode run added nothing: %s", getattr(result, "error", None))
        except Exception as e:
            logger.error("Auto-mode run failed: %s", e, exc_info=True)
        finally:
            self.state.running = False

    async def wait_idle(self) -> None:
        """Wait for the in-flight run, if any, to finish."""
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    async def run(self, channel: "asyncio.Queue[Optional[PlaybackEvent]]") -> None:
        """Consume playback events until a None sentinel arrives.

        Args:
            channel: Queue fed by the host's playback poller
        """
        self.sync_with_settings()
        while True:
            event = await channel.get()
            if event is None:
                break
            self.sync_with_settings()
            try:
                await self.handle_event(event)
            except Exception as e:
                logger.error("Error handling playback event: %s", e, exc_info=True)
        await self.shutdown()

    async def shutdown(self) -> None:
        self.disable()
        await self.wait_idle()
        self._task = None
