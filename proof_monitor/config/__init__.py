from .settings import MonitorSettings

__all__ = ['MonitorSettings']
