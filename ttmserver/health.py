"""
Service health, shared by the API and the admin CLI.
"""

import logging
from typing import Any, Dict, List

from .exceptions import ConfigurationError, TTMServerError
from .registry import BackendRegistry

logger = logging.getLogger(__name__)

HEALTHY = ("green", "available")


def check_services(registry: BackendRegistry) -> List[Dict[str, Any]]:
    """One entry per service: name, status and optional error."""
    rows = []
    for name in registry.list_names():
        try:
            backend = registry.get(name)
            health = getattr(backend, "health", None)
            status = health() if callable(health) else {"status": "available"}
        except ConfigurationError as e:
            status = {"status": "misconfigured", "error": str(e)}
        except TTMServerError as e:
            logger.warning("Health check of %s failed: %s", name, e)
            status = {"status": "unknown", "error": str(e)}
        rows.append({"name": name, **status})
    return rows


def overall_status(rows: List[Dict[str, Any]]) -> str:
    if all(row["status"] in HEALTHY for row in rows):
        return "healthy"
    return "degraded"
