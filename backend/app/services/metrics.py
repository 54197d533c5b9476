"""
API request metrics.
"""

from typing import Optional

from app.database import db
from app.config import logger
from app.utils.serialization import to_iso, utc_now


async def log_api_metric(endpoint: str, method: str, response_time_ms: int,
                         status_code: int, error_type: Optional[str],
                         ip_address: Optional[str]):
    """Record one request in api_metrics. Never raises."""
    try:
        await db.api_metrics.insert_one({
            "endpoint": endpoint,
            "method": method,
            "response_time_ms": response_time_ms,
            "status_code": status_code,
            "error_type": error_type,
            "ip_address": ip_address,
            "timestamp": to_iso(utc_now())
        })
    except Exception as e:
        logger.error(f"Failed to log API metric: {e}")
