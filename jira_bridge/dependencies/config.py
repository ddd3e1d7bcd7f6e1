"""Settings injection for route handlers."""

from typing import Annotated

from fastapi import Depends

from jira_bridge.core.config import AppSettings, get_settings


def get_app_settings() -> AppSettings:
    """Return the process-wide settings; override in tests via ``dependency_overrides``."""
    return get_settings()


SettingsDependency = Annotated[AppSettings, Depends(get_app_settings)]

__all__ = ["SettingsDependency", "get_app_settings"]
