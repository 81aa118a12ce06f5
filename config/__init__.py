"""Configuration package utilities."""

__all__ = ["ConfigController", "Settings", "load_settings"]


def __getattr__(name: str):
    if name == "ConfigController":
        from config.controller import ConfigController

        return ConfigController
    if name in {"Settings", "load_settings"}:
        from config import settings

        return getattr(settings, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
