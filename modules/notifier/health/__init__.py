"""
Queue backend connectivity monitoring.
"""

from modules.notifier.health.monitor import QueueHealthMonitor

__all__ = ["QueueHealthMonitor"]
