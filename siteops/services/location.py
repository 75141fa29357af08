"""
Location acquisition service.

Takes several readings from a positioning source and keeps the most precise one,
and runs a lower-accuracy continuous watch for live tracking displays.
"""
import asyncio
import inspect
import time
from dataclasses import dataclass, replace
from typing import Awaitable, Callable, List, Optional, Protocol, Union

import structlog

from ..config import settings

logger = structlog.get_logger(__name__)


class SensorError(Exception):
    """Raised by a position source when a reading cannot be produced."""


class PermissionDenied(SensorError):
    pass


class PositionUnavailable(SensorError):
    pass


class LocationError(Exception):
    pass


class SensorUnavailable(LocationError):
    """No reading could be obtained at all."""


@dataclass(frozen=True)
class PositionRequest:
    high_accuracy: bool
    timeout_s: float
    maximum_age_s: float


@dataclass(frozen=True)
class Position:
    latitude: float
    longitude: float
    accuracy_m: float
    timestamp_ms: Optional[int] = None


@dataclass(frozen=True)
class LocationSample:
    latitude: float
    longitude: float
    accuracy_m: float
    captured_at_ms: int
    degraded: bool = False

    def coordinates_text(self) -> str:
        return f"{self.latitude:.6f}, {self.longitude:.6f}"

    def as_geo(self) -> dict:
        return {
            "lat": self.latitude,
            "lng": self.longitude,
            "accuracy": self.accuracy_m,
            "captured_at_ms": self.captured_at_ms,
            "degraded": self.degraded,
        }


class PositionSource(Protocol):
    async def get_position(self, request: PositionRequest) -> Position:
        ...


class StaticPositionSource:
    """Fixed position, for kiosk devices installed at a known site."""

    def __init__(self, latitude: float, longitude: float, accuracy_m: float = 10.0):
        self._position = Position(latitude, longitude, accuracy_m)

    async def get_position(self, request: PositionRequest) -> Position:
        return self._position


WatchCallback = Callable[[LocationSample], Union[None, Awaitable[None]]]


def _now_ms() -> int:
    return int(time.time() * 1000)


class LocationService:
    def __init__(
        self,
        source: Optional[PositionSource],
        *,
        timeout_s: Optional[float] = None,
        accuracy_target_m: Optional[float] = None,
        max_samples: Optional[int] = None,
        retry_delay_s: Optional[float] = None,
        watch_interval_s: Optional[float] = None,
        watch_timeout_s: Optional[float] = None,
        watch_max_age_s: Optional[float] = None,
        clock: Callable[[], int] = _now_ms,
    ):
        self._source = source
        self.timeout_s = timeout_s if timeout_s is not None else settings.location_timeout_s
        self.accuracy_target_m = (
            accuracy_target_m if accuracy_target_m is not None else settings.location_accuracy_target_m
        )
        self.max_samples = max_samples if max_samples is not None else settings.location_max_samples
        self.retry_delay_s = retry_delay_s if retry_delay_s is not None else settings.location_retry_delay_s
        self.watch_interval_s = watch_interval_s if watch_interval_s is not None else settings.watch_interval_s
        self.watch_timeout_s = watch_timeout_s if watch_timeout_s is not None else settings.watch_timeout_s
        self.watch_max_age_s = watch_max_age_s if watch_max_age_s is not None else settings.watch_max_age_s
        self._clock = clock
        self._watch_task: Optional[asyncio.Task] = None
        self._last_known: Optional[LocationSample] = None

    @property
    def last_known_location(self) -> Optional[LocationSample]:
        return self._last_known

    @property
    def is_watching(self) -> bool:
        return self._watch_task is not None and not self._watch_task.done()

    def _to_sample(self, position: Position) -> LocationSample:
        return LocationSample(
            latitude=position.latitude,
            longitude=position.longitude,
            accuracy_m=float(position.accuracy_m),
            captured_at_ms=position.timestamp_ms or self._clock(),
        )

    async def _read(self, request: PositionRequest) -> LocationSample:
        try:
            position = await asyncio.wait_for(self._source.get_position(request), timeout=request.timeout_s)
        except asyncio.TimeoutError as exc:
            raise PositionUnavailable(f"no position within {request.timeout_s:g}s") from exc
        return self._to_sample(position)

    async def acquire_location(self) -> LocationSample:
        """
        Best-effort high accuracy fix.

        Samples until a reading is better than the accuracy target or the sample cap
        is reached, then returns the most precise reading seen. A sensor error after
        at least one reading returns the best reading flagged as degraded.

        Raises:
            SensorUnavailable: if no reading could be obtained
        """
        if self._source is None:
            raise SensorUnavailable("Geolocation is not supported on this device")

        request = PositionRequest(high_accuracy=True, timeout_s=self.timeout_s, maximum_age_s=0)
        readings: List[LocationSample] = []

        while True:
            try:
                sample = await self._read(request)
            except SensorError as exc:
                if not readings:
                    reason = str(exc) or exc.__class__.__name__
                    logger.warning("location_unavailable", error=reason)
                    raise SensorUnavailable(f"Location error: {reason}") from exc
                best = min(readings, key=lambda s: s.accuracy_m)
                logger.info(
                    "location_degraded",
                    readings=len(readings),
                    accuracy_m=best.accuracy_m,
                    error=str(exc),
                )
                best = replace(best, degraded=True)
                self._last_known = best
                return best

            readings.append(sample)
            logger.debug("location_reading", sample=len(readings), accuracy_m=sample.accuracy_m)

            if sample.accuracy_m < self.accuracy_target_m or len(readings) >= self.max_samples:
                break
            await asyncio.sleep(self.retry_delay_s)

        best = min(readings, key=lambda s: s.accuracy_m)
        self._last_known = best
        return best

    def start_watching(self, callback: WatchCallback) -> None:
        """
        Poll the source in low-accuracy mode and hand each sample to callback.

        Must be called from a running event loop and stopped with stop_watching().
        """
        if self._source is None:
            raise SensorUnavailable("Geolocation is not supported on this device")
        self.stop_watching()
        self._watch_task = asyncio.get_running_loop().create_task(self._watch(callback))

    def stop_watching(self) -> None:
        if self._watch_task is not None:
            self._watch_task.cancel()
            self._watch_task = None

    async def _watch(self, callback: WatchCallback) -> None:
        request = PositionRequest(
            high_accuracy=False, timeout_s=self.watch_timeout_s, maximum_age_s=self.watch_max_age_s
        )
        while True:
            try:
                sample = await self._read(request)
            except SensorError as exc:
                logger.warning("location_watch_error", error=str(exc))
            else:
                self._last_known = sample
                try:
                    result = callback(sample)
                    if inspect.isawaitable(result):
                        await result
                except Exception as exc:
                    logger.warning("location_watch_callback_failed", error=str(exc))
            await asyncio.sleep(self.watch_interval_s)
