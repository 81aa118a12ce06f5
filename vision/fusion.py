"""Source selection with in-cycle fallback for one camera stream."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from config.settings import Settings
from core.errors import (
    ConfigurationError,
    DetectionExhaustedError,
    DetectionInFlightError,
    ModelLoadError,
    SourceError,
    SourceErrorKind,
)
from core.logging import logger
from vision.detections import DetectionSource, FusionResult, SourceAttempt, renumber
from vision.device import DetectionFilter
from vision.frames import Frame
from vision.sources.base import DetectionAdapter


def _as_source(value: str | DetectionSource) -> DetectionSource:
    if isinstance(value, DetectionSource):
        return value
    return DetectionSource(str(value).strip().lower())


@dataclass(frozen=True)
class FusionConfig:
    use_cloud_detection: bool = False
    fallback_order: tuple[DetectionSource, ...] = (DetectionSource.LOCAL,)
    failure_alert_threshold: int = 3
    call_timeout_s: float = 10.0

    @classmethod
    def from_config(cls, config: Mapping[str, Any], settings: Settings) -> "FusionConfig":
        detection_cfg = config.get("detection") or {}
        request_timeout_s = float(detection_cfg.get("request_timeout_s", 5.0))
        load_timeout_s = float(detection_cfg.get("model_load_timeout_s", 5.0))
        return cls(
            use_cloud_detection=settings.use_cloud_detection,
            fallback_order=tuple(_as_source(name) for name in settings.fallback_order),
            failure_alert_threshold=int(detection_cfg.get("failure_alert_threshold", 3)),
            call_timeout_s=max(request_timeout_s, load_timeout_s) * 2,
        )


class DetectionFusionPolicy:
    """Chooses which source answers for a frame and falls back on failure.

    Order: cloud first when cloud detection is enabled, then the preferred
    source, then ``fallback_order``, always ending at local. Errors and empty
    results fall through within the same call. Local is the last resort: its
    empty result is a valid "nothing detected" answer, and its failure raises
    ``DetectionExhaustedError``. Only one ``detect`` may run at a time.
    """

    def __init__(
        self,
        adapters: Iterable[DetectionAdapter],
        detection_filter: DetectionFilter,
        *,
        mobile_filter: DetectionFilter | None = None,
        config: FusionConfig | None = None,
    ) -> None:
        self._adapters: dict[DetectionSource, DetectionAdapter] = {
            adapter.source: adapter for adapter in adapters
        }
        self._filter = detection_filter
        self._mobile_filter = mobile_filter or detection_filter.for_mobile()
        self.config = config or FusionConfig()
        self._in_flight = False
        self._reported_config_errors: set[DetectionSource] = set()
        self._recommendation_sent = False
        self.consecutive_failures = 0
        self.last_source: DetectionSource | None = None

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    def chain(self, preferred: str | DetectionSource) -> list[DetectionSource]:
        """Return the de-duplicated source order for ``preferred``."""

        order: list[DetectionSource] = []
        if self.config.use_cloud_detection:
            order.append(DetectionSource.CLOUD)
        order.append(_as_source(preferred))
        order.extend(self.config.fallback_order)
        order.append(DetectionSource.LOCAL)

        chain: list[DetectionSource] = []
        for source in order:
            if source not in chain:
                chain.append(source)
        # Local stays last regardless of where it appeared earlier.
        chain.remove(DetectionSource.LOCAL)
        chain.append(DetectionSource.LOCAL)
        return chain

    async def detect(
        self,
        frame: Frame,
        preferred: str | DetectionSource = DetectionSource.LOCAL,
        *,
        is_mobile: bool = False,
    ) -> FusionResult:
        if self._in_flight:
            raise DetectionInFlightError("A detection cycle is already running")
        self._in_flight = True
        try:
            return await self._run(frame, self.chain(preferred), is_mobile=is_mobile)
        finally:
            self._in_flight = False

    async def _run(
        self,
        frame: Frame,
        chain: list[DetectionSource],
        *,
        is_mobile: bool,
    ) -> FusionResult:
        detection_filter = self._mobile_filter if is_mobile else self._filter
        attempts: list[SourceAttempt] = []
        last_error: Exception | None = None

        for index, source in enumerate(chain):
            adapter = self._adapters.get(source)
            if adapter is None:
                attempts.append(SourceAttempt(source=source, ok=False, error="no adapter"))
                continue

            try:
                detections = await asyncio.wait_for(
                    adapter.detect(frame, is_mobile=is_mobile),
                    self.config.call_timeout_s,
                )
            except ConfigurationError as exc:
                if source not in self._reported_config_errors:
                    self._reported_config_errors.add(source)
                    logger.warning("[FUSION] %s not configured: %s", source.value, exc)
                attempts.append(SourceAttempt(source=source, ok=False, error=str(exc)))
                last_error = exc
                continue
            except (SourceError, ModelLoadError) as exc:
                logger.warning("[FUSION] %s failed: %s", source.value, exc)
                attempts.append(SourceAttempt(source=source, ok=False, error=str(exc)))
                last_error = exc
                continue
            except asyncio.TimeoutError:
                timeout_error = SourceError(
                    f"No answer within {self.config.call_timeout_s:.1f}s",
                    source=source.value,
                    kind=SourceErrorKind.TIMEOUT,
                )
                logger.warning("[FUSION] %s", timeout_error)
                attempts.append(SourceAttempt(source=source, ok=False, error=str(timeout_error)))
                last_error = timeout_error
                continue
            except Exception as exc:
                unexpected = SourceError(
                    f"Unexpected failure: {exc!r}", source=source.value, kind=SourceErrorKind.UNKNOWN
                )
                unexpected.__cause__ = exc
                logger.exception("[FUSION] %s", unexpected)
                attempts.append(SourceAttempt(source=source, ok=False, error=str(unexpected)))
                last_error = unexpected
                continue

            kept = renumber(detection_filter.apply(detections))
            attempts.append(SourceAttempt(source=source, ok=True, count=len(kept)))
            if not kept and source is not DetectionSource.LOCAL:
                logger.debug("[FUSION] %s returned nothing; trying next source", source.value)
                continue

            fell_back = index > 0
            recommendation = self._record_outcome(first_choice_ok=not fell_back, first=chain[0])
            self.last_source = source
            if fell_back:
                logger.info("[FUSION] Fell back to %s", source.value)
            return FusionResult(
                detections=kept,
                source=source,
                attempts=tuple(attempts),
                fell_back=fell_back,
                recommendation=recommendation,
            )

        recommendation = self._record_outcome(first_choice_ok=False, first=chain[0])
        raise DetectionExhaustedError(
            "All detection sources failed",
            attempts=attempts,
            recommendation=recommendation,
        ) from last_error

    def _record_outcome(self, *, first_choice_ok: bool, first: DetectionSource) -> str | None:
        if first_choice_ok:
            self.consecutive_failures = 0
            self._recommendation_sent = False
            return None

        self.consecutive_failures += 1
        if (
            self.consecutive_failures >= self.config.failure_alert_threshold
            and not self._recommendation_sent
        ):
            self._recommendation_sent = True
            return (
                f"Detection via {first.value} failed {self.consecutive_failures} times in a row. "
                "Consider switching the detection source in settings."
            )
        return None
