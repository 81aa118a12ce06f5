"""Label normalization for speech and display."""

from __future__ import annotations

from enum import Enum


GENERIC_LABEL = "object"

# Raw class names (lowercase) to spoken names. Anything absent is spoken as
# the generic label.
SPOKEN_LABELS: dict[str, str] = {
    "person": "person",
    "bicycle": "bicycle",
    "car": "car",
    "motorcycle": "motorcycle",
    "airplane": "airplane",
    "bus": "bus",
    "train": "train",
    "truck": "truck",
    "boat": "boat",
    "traffic light": "traffic light",
    "fire hydrant": "fire hydrant",
    "stop sign": "stop sign",
    "parking meter": "parking meter",
    "bench": "bench",
    "bird": "bird",
    "cat": "cat",
    "dog": "dog",
    "horse": "horse",
    "sheep": "sheep",
    "cow": "cow",
    "elephant": "elephant",
    "bear": "bear",
    "zebra": "zebra",
    "giraffe": "giraffe",
    "backpack": "backpack",
    "umbrella": "umbrella",
    "handbag": "handbag",
    "tie": "tie",
    "suitcase": "suitcase",
    "frisbee": "frisbee",
    "skis": "skis",
    "snowboard": "snowboard",
    "sports ball": "sports ball",
    "kite": "kite",
    "baseball bat": "baseball bat",
    "baseball glove": "baseball glove",
    "skateboard": "skateboard",
    "surfboard": "surfboard",
    "tennis racket": "tennis racket",
    "bottle": "bottle",
    "wine glass": "wine glass",
    "cup": "cup",
    "fork": "fork",
    "knife": "knife",
    "spoon": "spoon",
    "bowl": "bowl",
    "banana": "banana",
    "apple": "apple",
    "sandwich": "sandwich",
    "orange": "orange",
    "broccoli": "broccoli",
    "carrot": "carrot",
    "hot dog": "hot dog",
    "pizza": "pizza",
    "donut": "donut",
    "cake": "cake",
    "chair": "chair",
    "couch": "couch",
    "potted plant": "potted plant",
    "bed": "bed",
    "dining table": "table",
    "toilet": "toilet",
    "tv": "tv",
    "laptop": "laptop",
    "mouse": "mouse",
    "remote": "remote",
    "keyboard": "keyboard",
    "cell phone": "phone",
    "microwave": "microwave",
    "oven": "oven",
    "toaster": "toaster",
    "sink": "sink",
    "refrigerator": "refrigerator",
    "book": "book",
    "clock": "clock",
    "vase": "vase",
    "scissors": "scissors",
    "teddy bear": "teddy bear",
    "hair drier": "hair dryer",
    "toothbrush": "toothbrush",
    "door": "door",
    "doorway": "doorway",
    "steps": "steps",
    "stairs": "stairs",
}


class AccessType(str, Enum):
    """Coarse classes used for instruction iconography and hazard priority."""

    DOOR = "door"
    DOORWAY = "doorway"
    STEPS = "steps"
    GENERAL = "general"


_STEP_MARKERS = ("step", "stair")
_DOORWAY_MARKERS = ("doorway", "threshold", "entry")


def _clean(label: str | None) -> str:
    return " ".join(str(label or "").replace("_", " ").replace("-", " ").lower().split())


def normalize_label(label: str | None) -> str:
    """Return the spoken name for ``label``; unknown labels become "object"."""

    cleaned = _clean(label)
    if not cleaned:
        return GENERIC_LABEL
    return SPOKEN_LABELS.get(cleaned, GENERIC_LABEL)


def lookup_key(label: str | None) -> str:
    """Return the size-table key for ``label`` (lowercase, underscores)."""

    return _clean(label).replace(" ", "_")


def classify_access(label: str | None) -> AccessType:
    """Classify a raw label as a door, doorway, steps, or general object."""

    cleaned = _clean(label)
    if any(marker in cleaned for marker in _STEP_MARKERS):
        return AccessType.STEPS
    if any(marker in cleaned for marker in _DOORWAY_MARKERS):
        return AccessType.DOORWAY
    if "door" in cleaned or cleaned == "entrance":
        return AccessType.DOOR
    return AccessType.GENERAL


def is_access_hazard(label: str | None) -> bool:
    """Steps and stairs are announced at high priority regardless of distance."""

    return classify_access(label) is AccessType.STEPS
