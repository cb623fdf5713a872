# ============================================
# TIMESTAMP TOOL
# ============================================

from datetime import datetime, timezone
from typing import Any, Dict
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from stepforce.core.interfaces.tools import ExecutionContext
from stepforce.infrastructure.tools.native.base import Tool


class TimestampTool(Tool):
    """Returns the current date and time"""

    @property
    def name(self) -> str:
        return "timestamp"

    @property
    def description(self) -> str:
        return "Get the current date and time, optionally in a given IANA timezone (default UTC)"

    @property
    def parameters_schema(self) -> Dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "timezone": {
                    "type": "string",
                    "description": "IANA timezone name, e.g. 'Europe/Berlin'",
                }
            },
        }

    async def execute(self, params: Dict[str, Any], context: ExecutionContext) -> Dict[str, Any]:
        tz_name = params.get("timezone") or "UTC"
        try:
            tz = timezone.utc if tz_name == "UTC" else ZoneInfo(tz_name)
        except (ZoneInfoNotFoundError, ValueError):
            return {"success": False, "error": f"Unknown timezone: {tz_name}"}

        now = datetime.now(tz)
        return {
            "success": True,
            "result": {
                "iso": now.isoformat(),
                "unix": int(now.timestamp()),
                "timezone": tz_name,
            },
        }
