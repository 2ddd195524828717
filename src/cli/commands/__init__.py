"""CLI command modules.

Command Groups:
- cluster: up, status, health, restart (registered at the top level)
- backup: create, list, restore, cleanup
"""

from .backup import app as backup_app
from .cluster import health, restart, status, up

__all__ = [
    "backup_app",
    "health",
    "restart",
    "status",
    "up",
]
