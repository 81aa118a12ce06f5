"""Cloud detection adapters: a generic JSON endpoint and Azure Computer Vision."""

from __future__ import annotations

import asyncio
from dataclasses import replace
import http.client
import json
import socket
from typing import Any, Callable, Mapping
from urllib import error, parse, request

from core.errors import ConfigurationError, SourceError, SourceErrorKind
from core.logging import logger
from config.settings import is_placeholder_url
from vision.detections import BoundingBox, DetectedObject, DetectionSource
from vision.device import DetectionFilter
from vision.distance import DistanceEstimator
from vision.frames import Frame
from vision.sources.base import DetectionAdapter, RawDetection


# (request, timeout_s) -> (status, body)
Transport = Callable[[request.Request, float], tuple[int, bytes]]


def has_http_scheme(url: str) -> bool:
    parts = parse.urlsplit(url)
    return parts.scheme.lower() in ("http", "https") and bool(parts.netloc)


def urllib_transport(req: request.Request, timeout_s: float) -> tuple[int, bytes]:
    with request.urlopen(req, timeout=timeout_s) as response:
        return int(response.status), response.read()


class HttpDetectionAdapter(DetectionAdapter):
    """Shared request plumbing and error mapping for HTTP sources."""

    def __init__(
        self,
        api_url: str,
        api_key: str,
        estimator: DistanceEstimator,
        detection_filter: DetectionFilter,
        *,
        mobile_filter: DetectionFilter | None = None,
        timeout_s: float = 5.0,
        jpeg_max_dimension: int = 640,
        jpeg_quality: int = 70,
        transport: Transport | None = None,
    ) -> None:
        super().__init__(estimator, detection_filter, mobile_filter=mobile_filter)
        self._api_url = (api_url or "").strip()
        self._api_key = (api_key or "").strip()
        self._timeout_s = float(timeout_s)
        self._jpeg_max_dimension = int(jpeg_max_dimension)
        self._jpeg_quality = int(jpeg_quality)
        self._transport = transport or urllib_transport

    @property
    def is_configured(self) -> bool:
        return (
            bool(self._api_url)
            and not is_placeholder_url(self._api_url)
            and has_http_scheme(self._api_url)
        )

    def _require_configured(self) -> None:
        if not self._api_url:
            raise ConfigurationError(
                f"{self.source.value} API URL not configured", source=self.source.value
            )
        if is_placeholder_url(self._api_url):
            raise ConfigurationError(
                f"{self.source.value} API URL is still the sample endpoint",
                source=self.source.value,
            )
        if not has_http_scheme(self._api_url):
            raise ConfigurationError(
                f"{self.source.value} API URL must be an http(s) URL: {self._api_url}",
                source=self.source.value,
            )

    async def _post(
        self, body: bytes, headers: Mapping[str, str], *, url: str | None = None
    ) -> Any:
        """POST ``body`` and return the decoded JSON payload."""

        try:
            req = request.Request(
                url or self._api_url, data=body, headers=dict(headers), method="POST"
            )
        except ValueError as exc:
            raise ConfigurationError(
                f"Invalid {self.source.value} API URL: {exc}", source=self.source.value
            ) from exc
        try:
            status, raw = await asyncio.wait_for(
                asyncio.to_thread(self._transport, req, self._timeout_s),
                self._timeout_s + 0.5,
            )
        except asyncio.TimeoutError as exc:
            raise self._error("Request timed out", SourceErrorKind.TIMEOUT) from exc
        except error.HTTPError as exc:
            kind = SourceErrorKind.AUTH if exc.code in (401, 403) else SourceErrorKind.NETWORK
            raise self._error(f"HTTP {exc.code}", kind) from exc
        except error.URLError as exc:
            if isinstance(exc.reason, (socket.timeout, TimeoutError)):
                raise self._error("Request timed out", SourceErrorKind.TIMEOUT) from exc
            raise self._error(f"Unreachable: {exc.reason}", SourceErrorKind.NETWORK) from exc
        except (socket.timeout, TimeoutError) as exc:
            raise self._error("Request timed out", SourceErrorKind.TIMEOUT) from exc
        except http.client.HTTPException as exc:
            raise self._error(f"Bad HTTP response: {exc!r}", SourceErrorKind.NETWORK) from exc
        except OSError as exc:
            raise self._error(f"Network failure: {exc}", SourceErrorKind.NETWORK) from exc

        if status in (401, 403):
            raise self._error(f"HTTP {status}", SourceErrorKind.AUTH)
        if not 200 <= status < 300:
            raise self._error(f"HTTP {status}", SourceErrorKind.NETWORK)

        try:
            return json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise self._parse_error(f"Malformed response body: {exc}") from exc

    def _error(self, message: str, kind: SourceErrorKind) -> SourceError:
        return SourceError(message, source=self.source.value, kind=kind)

    def _objects(self, payload: Any) -> list[Any]:
        if not isinstance(payload, dict):
            raise self._parse_error("Response is not a JSON object")
        objects = payload.get("objects")
        if objects is None:
            return []
        if not isinstance(objects, list):
            raise self._parse_error("'objects' is not a list")
        return objects


_DOOR_HINTS = ("shape", "panel")
_STEP_HINTS = ("line", "horizontal", "edge")


def enhance_architectural_features(raw: list[RawDetection]) -> list[RawDetection]:
    """Relabel generic shape detections that look like doors or steps.

    A tall "rectangle" box, or any "shape"/"panel" label, becomes a Door. A low,
    flat box in the lower part of the frame with a line-like label becomes Steps.
    """

    enhanced: list[RawDetection] = []
    for item in raw:
        label = item.label.lower()
        bbox = item.bbox
        if (bbox.height > bbox.width * 1.8 and "rectangle" in label) or any(
            hint in label for hint in _DOOR_HINTS
        ):
            item = replace(item, label="Door", confidence=min(item.confidence + 0.1, 0.95))
        if (
            bbox.height < bbox.width * 0.3
            and bbox.y > 0.6
            and any(hint in label for hint in _STEP_HINTS)
        ):
            item = replace(item, label="Steps", confidence=min(item.confidence + 0.05, 0.9))
        enhanced.append(item)
    return enhanced


def _box_from_mapping(rect: Any) -> tuple[float, float, float, float]:
    if isinstance(rect, (list, tuple)) and len(rect) == 4:
        x, y, width, height = rect
        return float(x), float(y), float(width), float(height)
    if isinstance(rect, dict):
        width = rect.get("width", rect.get("w"))
        height = rect.get("height", rect.get("h"))
        return float(rect["x"]), float(rect["y"]), float(width), float(height)
    raise TypeError(f"Unsupported box shape: {type(rect).__name__}")


class CloudApiAdapter(HttpDetectionAdapter):
    """Generic detection endpoint returning boxes already normalized to [0, 1].

    Request: ``{"image": <base64 jpeg>, "options": {"confidenceThreshold",
    "maxDetections"}}`` with a bearer token when a key is configured.
    Response: ``{"objects": [{"bbox"|"rectangle", "class"|"object",
    "confidence", "distance"?}]}``.
    """

    source = DetectionSource.CLOUD

    async def detect(self, frame: Frame, *, is_mobile: bool = False) -> list[DetectedObject]:
        self._require_configured()
        detection_filter = self.filter_for(is_mobile)
        image = await asyncio.to_thread(
            frame.to_base64_jpeg,
            max_dimension=self._jpeg_max_dimension,
            quality=self._jpeg_quality,
        )
        body = json.dumps(
            {
                "image": image,
                "options": {
                    "confidenceThreshold": detection_filter.confidence_threshold,
                    "maxDetections": detection_filter.max_detections,
                },
            }
        ).encode("utf-8")
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"

        payload = await self._post(body, headers)
        raw: list[RawDetection] = []
        for item in self._objects(payload):
            try:
                rect = item.get("bbox", item.get("rectangle"))
                label = item.get("class", item.get("object"))
                if rect is None or label is None:
                    raise KeyError("bbox/class")
                x, y, width, height = _box_from_mapping(rect)
                distance = item.get("distance")
                raw.append(
                    RawDetection(
                        label=str(label),
                        confidence=float(item.get("confidence", 0.0)),
                        bbox=BoundingBox(x=x, y=y, width=width, height=height),
                        distance=float(distance) if distance else None,
                    )
                )
            except (AttributeError, KeyError, TypeError, ValueError) as exc:
                raise self._parse_error(f"Malformed object entry: {exc}") from exc

        detections = self._finalize(enhance_architectural_features(raw), is_mobile=is_mobile)
        logger.debug("[CLOUD] %s objects, %s kept", len(raw), len(detections))
        return detections


class AzureVisionAdapter(HttpDetectionAdapter):
    """Azure Computer Vision ``analyze`` with ``visualFeatures=Objects``.

    Boxes arrive in pixels and are normalized by ``metadata.width/height``.
    """

    source = DetectionSource.AZURE

    @property
    def is_configured(self) -> bool:
        return super().is_configured and bool(self._api_key)

    def _require_configured(self) -> None:
        super()._require_configured()
        if not self._api_key:
            raise ConfigurationError("azure API key not configured", source=self.source.value)

    def _request_url(self) -> str:
        if "visualFeatures" in self._api_url:
            return self._api_url
        separator = "&" if "?" in self._api_url else "?"
        return f"{self._api_url}{separator}visualFeatures=Objects"

    async def detect(self, frame: Frame, *, is_mobile: bool = False) -> list[DetectedObject]:
        self._require_configured()
        body = await asyncio.to_thread(
            frame.to_jpeg,
            max_dimension=self._jpeg_max_dimension,
            quality=self._jpeg_quality,
        )
        headers = {
            "Content-Type": "application/octet-stream",
            "Ocp-Apim-Subscription-Key": self._api_key,
        }
        payload = await self._post(body, headers, url=self._request_url())

        objects = self._objects(payload)
        metadata = payload.get("metadata") or {}
        try:
            image_width = float(metadata.get("width") or frame.width or 1)
            image_height = float(metadata.get("height") or frame.height or 1)
        except (AttributeError, TypeError, ValueError) as exc:
            raise self._parse_error(f"Malformed metadata: {exc}") from exc

        raw: list[RawDetection] = []
        for item in objects:
            try:
                x, y, width, height = _box_from_mapping(item["rectangle"])
                raw.append(
                    RawDetection(
                        label=str(item["object"]),
                        confidence=float(item.get("confidence", 0.0)),
                        bbox=BoundingBox.from_pixels(
                            x,
                            y,
                            width,
                            height,
                            frame_width=image_width,
                            frame_height=image_height,
                        ),
                    )
                )
            except (AttributeError, KeyError, TypeError, ValueError) as exc:
                raise self._parse_error(f"Malformed object entry: {exc}") from exc

        detections = self._finalize(raw, is_mobile=is_mobile)
        logger.debug("[AZURE] %s objects, %s kept", len(raw), len(detections))
        return detections
