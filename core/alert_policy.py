"""Alert policy: cooldowns and one-time notifications onto the event bus."""

from __future__ import annotations

from dataclasses import dataclass, field
import time
from typing import Callable, Mapping

from core.event_bus import Event, EventBus


_SEVERITY_PRIORITY = {
    "critical": "critical",
    "high": "high",
    "warning": "high",
    "info": "normal",
    "low": "low",
}


@dataclass(frozen=True)
class Alert:
    """Alert payload definition."""

    key: str
    title: str
    message: str
    severity: str = "warning"
    metadata: Mapping[str, object] = field(default_factory=dict)
    ttl_s: float | None = None
    cooldown_s: float | None = None
    once: bool = False


class AlertPolicy:
    """Emits alerts at most once per cooldown window, or once per session."""

    def __init__(
        self,
        *,
        cooldown_s: float = 60.0,
        ttl_s: float = 120.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._cooldown_s = float(cooldown_s)
        self._ttl_s = float(ttl_s)
        self._clock = clock
        self._last_emitted: dict[str, float] = {}
        self._once_sent: set[str] = set()

    @classmethod
    def from_config(cls, config: Mapping[str, object]) -> "AlertPolicy":
        alerts_cfg = config.get("alerts") if isinstance(config, Mapping) else None
        if not isinstance(alerts_cfg, Mapping):
            return cls()
        cooldown_s = float(alerts_cfg.get("cooldown_s", 60.0))
        ttl_s = float(alerts_cfg.get("ttl_s", 120.0))
        return cls(cooldown_s=cooldown_s, ttl_s=ttl_s)

    def already_sent(self, key: str) -> bool:
        return key in self._once_sent

    def reset(self, key: str) -> None:
        """Allow a one-time alert to fire again."""

        self._once_sent.discard(key)
        self._last_emitted.pop(key, None)

    def emit(self, event_bus: EventBus, alert: Alert) -> bool:
        if alert.once and alert.key in self._once_sent:
            return False
        now = self._clock()
        cooldown = alert.cooldown_s if alert.cooldown_s is not None else self._cooldown_s
        last_sent = self._last_emitted.get(alert.key)
        if last_sent is not None and (now - last_sent) < cooldown:
            return False
        self._last_emitted[alert.key] = now
        if alert.once:
            self._once_sent.add(alert.key)
        severity = alert.severity.lower()
        event = Event(
            source="alert",
            kind="alert",
            title=alert.title,
            content=alert.message,
            priority=_SEVERITY_PRIORITY.get(severity, "normal"),
            metadata={"severity": severity, **dict(alert.metadata)},
            dedupe_key=alert.key,
            ttl_s=alert.ttl_s if alert.ttl_s is not None else self._ttl_s,
        )
        event_bus.publish(event, coalesce=True)
        return True
