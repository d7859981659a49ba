from .app_config import (
    AppConfig,
    ChainSettings,
    ExplorerSettings,
    MonitorSettings,
    StorageSettings,
    LoggingSettings,
)

__all__ = [
    "AppConfig",
    "ChainSettings",
    "ExplorerSettings",
    "MonitorSettings",
    "StorageSettings",
    "LoggingSettings",
]
