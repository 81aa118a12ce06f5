"""Detection source adapters."""

from vision.sources.base import DetectionAdapter, RawDetection
from vision.sources.cloud import AzureVisionAdapter, CloudApiAdapter
from vision.sources.local import DeepSeekAdapter, LocalModelAdapter, ModelCache, RawPrediction

__all__ = [
    "AzureVisionAdapter",
    "CloudApiAdapter",
    "DeepSeekAdapter",
    "DetectionAdapter",
    "LocalModelAdapter",
    "ModelCache",
    "RawDetection",
    "RawPrediction",
]
