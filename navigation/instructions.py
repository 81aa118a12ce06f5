"""Turn a prioritized detection list into spoken guidance."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
import time
from typing import Any, Mapping, Sequence

from vision.detections import DetectedObject
from vision.labels import AccessType, classify_access, is_access_hazard, normalize_label


PATH_CLEAR = "Path is clear"
PATH_CLEAR_AHEAD = "Path is clear ahead"


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Position(str, Enum):
    LEFT = "left"
    CENTER = "center"
    RIGHT = "right"


class DescriptionMode(str, Enum):
    """``directive`` speaks qualitative guidance; ``distance`` adds meters."""

    DIRECTIVE = "directive"
    DISTANCE = "distance"


_LOCATION_PHRASES = {
    Position.LEFT: "to your left",
    Position.RIGHT: "to your right",
    Position.CENTER: "ahead",
}

_PRIORITY_RANK = {Priority.HIGH: 0, Priority.MEDIUM: 1, Priority.LOW: 2}


class InstructionIdSource:
    """Millisecond timestamps, bumped when two instructions share a millisecond."""

    def __init__(self, clock=time.time) -> None:
        self._clock = clock
        self._last = 0

    def next(self) -> int:
        candidate = int(self._clock() * 1000)
        if candidate <= self._last:
            candidate = self._last + 1
        self._last = candidate
        return candidate


@dataclass(frozen=True)
class Instruction:
    text: str
    priority: Priority
    type: AccessType = AccessType.GENERAL


@dataclass(frozen=True)
class NavigationInstruction:
    """Immutable record kept in the instruction history."""

    text: str
    priority: Priority
    type: AccessType | None = None
    id: int = 0
    timestamp: datetime = field(default_factory=datetime.now)

    @classmethod
    def from_instruction(cls, instruction: Instruction, id: int = 0) -> "NavigationInstruction":
        return cls(text=instruction.text, priority=instruction.priority, type=instruction.type, id=id)

    @property
    def priority_rank(self) -> int:
        return _PRIORITY_RANK[self.priority]

    def age_text(self, now: datetime | None = None) -> str:
        now = now or datetime.now()
        seconds = max(0, int((now - self.timestamp).total_seconds()))
        if seconds < 60:
            return "just now"
        minutes = seconds // 60
        if minutes < 60:
            return f"{minutes} min ago"
        return self.timestamp.strftime("%H:%M")


@dataclass(frozen=True)
class InstructionConfig:
    description_mode: DescriptionMode = DescriptionMode.DIRECTIVE
    relevance_cutoff_m: float = 11.0
    default_distance_m: float = 5.0
    max_described: int = 3
    left_edge: float = 0.4
    right_edge: float = 0.6
    stop_distance_m: float = 1.5
    pass_around_distance_m: float = 3.5
    side_step_distance_m: float = 5.0
    high_priority_m: float = 3.0
    low_priority_m: float = 8.0

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "InstructionConfig":
        section = config.get("instructions") or {}
        mode = str(section.get("description_mode", "directive")).strip().lower()
        try:
            description_mode = DescriptionMode(mode)
        except ValueError:
            description_mode = DescriptionMode.DIRECTIVE
        return cls(
            description_mode=description_mode,
            relevance_cutoff_m=float(section.get("relevance_cutoff_m", 11.0)),
            default_distance_m=float(section.get("default_distance_m", 5.0)),
            max_described=int(section.get("max_described", 3)),
        )


@dataclass(frozen=True)
class _Candidate:
    detection: DetectedObject
    distance: float


class InstructionGenerator:
    """Builds the single-object instruction and the multi-object description."""

    def __init__(self, config: InstructionConfig | None = None) -> None:
        self.config = config or InstructionConfig()
        self.ids = InstructionIdSource()

    def record(self, instruction: Instruction) -> NavigationInstruction:
        """History entry for ``instruction`` with an id from this generator."""

        return NavigationInstruction.from_instruction(instruction, id=self.ids.next())

    def position(self, detection: DetectedObject) -> Position:
        center_x, _ = detection.bbox.center
        if center_x < self.config.left_edge:
            return Position.LEFT
        if center_x > self.config.right_edge:
            return Position.RIGHT
        return Position.CENTER

    def directive(self, position: Position, distance: float) -> str | None:
        cfg = self.config
        if position is Position.CENTER:
            if distance < cfg.stop_distance_m:
                return "stop"
            if distance < cfg.pass_around_distance_m:
                return "pass around"
            return None
        if distance < cfg.side_step_distance_m:
            return "move right" if position is Position.LEFT else "move left"
        return None

    def priority(self, detection: DetectedObject, distance: float) -> Priority:
        if distance < self.config.high_priority_m or is_access_hazard(detection.label):
            return Priority.HIGH
        if distance > self.config.low_priority_m:
            return Priority.LOW
        return Priority.MEDIUM

    def phrase(self, detection: DetectedObject, distance: float) -> str:
        position = self.position(detection)
        label = normalize_label(detection.label)
        text = f"{label} {_LOCATION_PHRASES[position]}"
        if self.config.description_mode is DescriptionMode.DISTANCE:
            text = f"{text}, about {distance:.1f} meters"
        directive = self.directive(position, distance)
        if directive:
            text = f"{text}, {directive}"
        return text

    def relevant(self, detections: Sequence[DetectedObject]) -> list[_Candidate]:
        """Default missing distances, drop far objects, sort nearest first."""

        candidates = [
            _Candidate(
                detection=detection,
                distance=(
                    detection.distance
                    if detection.distance is not None
                    else self.config.default_distance_m
                ),
            )
            for detection in detections
        ]
        candidates = [c for c in candidates if c.distance <= self.config.relevance_cutoff_m]
        return sorted(candidates, key=lambda candidate: candidate.distance)

    def generate(self, detections: Sequence[DetectedObject]) -> Instruction:
        if not detections:
            return Instruction(text=PATH_CLEAR, priority=Priority.LOW)

        candidates = self.relevant(detections)
        if not candidates:
            return Instruction(text=PATH_CLEAR_AHEAD, priority=Priority.LOW)

        closest = candidates[0]
        return Instruction(
            text=self.phrase(closest.detection, closest.distance),
            priority=self.priority(closest.detection, closest.distance),
            type=classify_access(closest.detection.label),
        )

    def describe(self, detections: Sequence[DetectedObject]) -> str:
        if not detections:
            return PATH_CLEAR

        candidates = self.relevant(detections)
        if not candidates:
            return PATH_CLEAR_AHEAD

        phrases = [
            self.phrase(candidate.detection, candidate.distance)
            for candidate in candidates[: self.config.max_described]
        ]
        return join_phrases(phrases)


def join_phrases(phrases: Sequence[str]) -> str:
    """Join as "A", "A and B", or "A, B, and C"."""

    if not phrases:
        return ""
    if len(phrases) == 1:
        return phrases[0]
    if len(phrases) == 2:
        return f"{phrases[0]} and {phrases[1]}"
    return f"{', '.join(phrases[:-1])}, and {phrases[-1]}"
