# ============================================
# WEB TOOLS
# ============================================

import re
from typing import Any, Dict, Optional

import httpx

from stepforce.core.interfaces.tools import ExecutionContext
from stepforce.infrastructure.tools.native.base import Tool

MAX_CONTENT_CHARS = 5000


class WebRequestTool(Tool):
    """Fetch content from URLs (side effect visible outside the engine, gated)"""

    def __init__(self, timeout: float = 15.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.timeout = timeout
        self._transport = transport

    @property
    def name(self) -> str:
        return "web_request"

    @property
    def description(self) -> str:
        return "Fetch a URL with HTTP GET and return status and text content"

    @property
    def parameters_schema(self) -> Dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "url": {
                    "type": "string",
                    "pattern": "^https?://",
                    "description": "Absolute http(s) URL to fetch",
                },
                "headers": {
                    "type": "object",
                    "additionalProperties": {"type": "string"},
                    "description": "Optional request headers",
                },
            },
            "required": ["url"],
        }

    @property
    def requires_approval(self) -> bool:
        return True

    async def execute(self, params: Dict[str, Any], context: ExecutionContext) -> Dict[str, Any]:
        url = params["url"]
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, follow_redirects=True, transport=self._transport
            ) as client:
                response = await client.get(url, headers=params.get("headers"))
        except httpx.TimeoutException:
            return {"success": False, "error": "Request timed out"}
        except httpx.HTTPError as e:
            return {"success": False, "error": str(e) or type(e).__name__}

        content_type = response.headers.get("Content-Type", "")
        content = response.text
        if "text/html" in content_type:
            # Simple HTML extraction
            text = re.sub(r"<script[^>]*>.*?</script>", "", content, flags=re.DOTALL)
            text = re.sub(r"<style[^>]*>.*?</style>", "", text, flags=re.DOTALL)
            text = re.sub(r"<[^>]+>", "", text)
            text = " ".join(text.split())
        else:
            text = content

        return {
            "success": response.is_success,
            "result": {
                "url": str(response.url),
                "status": response.status_code,
                "content_type": content_type,
                "content": text[:MAX_CONTENT_CHARS],
                "length": len(content),
            },
            "error": None if response.is_success else f"HTTP {response.status_code}",
        }
