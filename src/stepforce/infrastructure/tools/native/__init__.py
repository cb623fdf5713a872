"""Built-in tools."""

from stepforce.infrastructure.tools.native.calculator_tool import CalculatorTool
from stepforce.infrastructure.tools.native.text_tool import TextAnalyzerTool
from stepforce.infrastructure.tools.native.timestamp_tool import TimestampTool
from stepforce.infrastructure.tools.native.web_tool import WebRequestTool

BUILTIN_TOOLS = {
    "calculator": CalculatorTool,
    "text_analyzer": TextAnalyzerTool,
    "timestamp": TimestampTool,
    "web_request": WebRequestTool,
}

__all__ = [
    "BUILTIN_TOOLS",
    "CalculatorTool",
    "TextAnalyzerTool",
    "TimestampTool",
    "WebRequestTool",
]
