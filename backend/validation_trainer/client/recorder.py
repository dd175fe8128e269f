"""
Microphone capture with automatic stop after the speaker goes quiet.

The actual device is behind ``AudioBackend`` so tests and headless runs can
plug in their own source. A backend signals device problems with the
built-in exception it maps to: ``PermissionError`` for a denied microphone,
``FileNotFoundError`` when no device exists, ``ConnectionError`` for network
backed sources and any other ``OSError`` when the device cannot be read.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from typing import Awaitable, Callable, Protocol

from validation_trainer.core.errors import RecorderError

logger = logging.getLogger("validation.recorder")

SILENCE_THRESHOLD = 30.0
SILENCE_DURATION_S = 2.5
POLL_INTERVAL_S = 0.05

ERROR_MESSAGES = {
    "network": "Network connection issue. Please check your internet connection and try again.",
    "not-allowed": "Microphone access denied. Please allow microphone access in your settings.",
    "not-found": "Microphone not found. Please check your microphone connection.",
    "audio-capture": "Microphone not found or access denied. Please check your microphone permissions.",
}


def error_message(category: str) -> str:
    return ERROR_MESSAGES.get(category, f"Audio recording error: {category}. Please try again.")


def _category_for(exc: Exception) -> str | None:
    if isinstance(exc, PermissionError):
        return "not-allowed"
    if isinstance(exc, FileNotFoundError):
        return "not-found"
    if isinstance(exc, ConnectionError):
        return "network"
    if isinstance(exc, OSError):
        return "audio-capture"
    return None


class AudioCapture(Protocol):
    def level(self) -> float:
        """Current average volume on a 0-255 scale."""
        ...

    def stop(self) -> bytes: ...

    def close(self) -> None: ...


class AudioBackend(Protocol):
    def open(self) -> AudioCapture: ...


class SilenceDetector:
    """Fires once the level stays at or below the threshold for long enough after speech."""

    def __init__(
        self,
        threshold: float = SILENCE_THRESHOLD,
        duration_s: float = SILENCE_DURATION_S,
    ) -> None:
        self.threshold = threshold
        self.duration_s = duration_s
        self.heard_speech = False
        self._silence_started: float | None = None

    def observe(self, level: float, now: float) -> bool:
        if level > self.threshold:
            self.heard_speech = True
            self._silence_started = None
            return False
        if not self.heard_speech:
            return False
        if self._silence_started is None:
            self._silence_started = now
            return False
        return now - self._silence_started >= self.duration_s


SilenceCallback = Callable[[], Awaitable[None] | None]


class VoiceRecorder:
    def __init__(
        self,
        backend: AudioBackend,
        *,
        poll_interval_s: float = POLL_INTERVAL_S,
        silence_threshold: float = SILENCE_THRESHOLD,
        silence_duration_s: float = SILENCE_DURATION_S,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._backend = backend
        self._poll_interval_s = poll_interval_s
        self._silence_threshold = silence_threshold
        self._silence_duration_s = silence_duration_s
        self._clock = clock
        self._capture: AudioCapture | None = None
        self._monitor: asyncio.Task | None = None

    @property
    def recording(self) -> bool:
        return self._capture is not None

    async def start(self, on_silence: SilenceCallback | None = None) -> None:
        self.abort()
        try:
            capture = self._backend.open()
        except Exception as exc:
            category = _category_for(exc)
            if category is None:
                raise
            logger.warning("audio device error (%s): %s", category, exc)
            raise RecorderError(error_message(category), category=category) from exc

        self._capture = capture
        if on_silence is not None:
            self._monitor = asyncio.create_task(self._watch_silence(capture, on_silence))

    async def _watch_silence(self, capture: AudioCapture, on_silence: SilenceCallback) -> None:
        detector = SilenceDetector(self._silence_threshold, self._silence_duration_s)
        while self._capture is capture:
            await asyncio.sleep(self._poll_interval_s)
            if self._capture is not capture:
                return
            if detector.observe(capture.level(), self._clock()):
                logger.debug("silence detected, stopping capture")
                result = on_silence()
                if inspect.isawaitable(result):
                    await result
                return

    def _cancel_monitor(self) -> None:
        monitor, self._monitor = self._monitor, None
        if monitor is not None and monitor is not asyncio.current_task() and not monitor.done():
            monitor.cancel()

    async def stop(self) -> bytes:
        capture = self._capture
        if capture is None:
            raise RecorderError("Recorder is not recording", category="inactive")
        self._cancel_monitor()
        self._capture = None
        try:
            return capture.stop()
        finally:
            capture.close()

    def abort(self) -> None:
        self._cancel_monitor()
        capture, self._capture = self._capture, None
        if capture is not None:
            capture.close()
