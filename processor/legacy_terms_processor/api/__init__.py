"""
HTTP surface of the processor (health only).
"""

from .health import HealthServer, create_health_app

__all__ = ["HealthServer", "create_health_app"]
