"""Task completion detection."""

from typing import Iterable, Optional

import structlog

from stepforce.core.interfaces.llm import ModelResponse

MODEL_SIGNAL = "model_signal"
KEYWORD_FALLBACK = "keyword_fallback"

logger = structlog.get_logger().bind(component="completion")


def detect_completion(
    response: ModelResponse,
    keyword_fallback: bool = False,
    keywords: Iterable[str] = (),
) -> Optional[str]:
    """
    Decide whether a model turn completes the task.

    A turn with tool calls never completes. Otherwise the model's structured
    finish signal decides. Keyword sniffing is only consulted when the
    provider gave no signal at all and the fallback is enabled. Every
    keyword match is logged as a warning.

    Returns:
        MODEL_SIGNAL or KEYWORD_FALLBACK when complete, None otherwise
    """
    if response.tool_calls:
        return None

    if response.finished is not None:
        return MODEL_SIGNAL if response.finished else None

    if not keyword_fallback:
        return None

    text = response.text.lower()
    matched = next((k for k in keywords if k.lower() in text), None)
    if matched is None:
        return None

    logger.warning("completion_keyword_fallback", keyword=matched)
    return KEYWORD_FALLBACK
