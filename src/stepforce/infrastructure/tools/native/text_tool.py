# ============================================
# TEXT ANALYSIS TOOL
# ============================================

import re
from collections import Counter
from typing import Any, Dict

from stepforce.core.interfaces.tools import ExecutionContext
from stepforce.infrastructure.tools.native.base import Tool

_WORD_RE = re.compile(r"[A-Za-z0-9']+")
_SENTENCE_RE = re.compile(r"[.!?]+")


class TextAnalyzerTool(Tool):
    """Counts words, sentences and characters, and reports frequent terms"""

    @property
    def name(self) -> str:
        return "text_analyzer"

    @property
    def description(self) -> str:
        return "Analyze text: word, sentence and character counts, average word length and most common words"

    @property
    def parameters_schema(self) -> Dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "text": {"type": "string", "description": "Text to analyze"},
                "top_n": {
                    "type": "integer",
                    "minimum": 1,
                    "maximum": 50,
                    "description": "Number of most common words to report (default 5)",
                },
            },
            "required": ["text"],
        }

    async def execute(self, params: Dict[str, Any], context: ExecutionContext) -> Dict[str, Any]:
        text = params["text"]
        top_n = params.get("top_n", 5)

        words = [w.lower() for w in _WORD_RE.findall(text)]
        sentences = [s for s in _SENTENCE_RE.split(text) if s.strip()]
        avg_word_length = round(sum(len(w) for w in words) / len(words), 2) if words else 0.0

        return {
            "success": True,
            "result": {
                "characters": len(text),
                "words": len(words),
                "sentences": len(sentences),
                "average_word_length": avg_word_length,
                "most_common": [
                    {"word": word, "count": count} for word, count in Counter(words).most_common(top_n)
                ],
            },
        }
