"""
LiteLLM-backed Model Invocation Service.

Resolves model aliases from a YAML config, merges model-specific
parameters, calls `litellm.acompletion` with native tool specs and maps
the response onto ModelResponse. Provider errors are classified as
transient or permanent; retrying is left to the caller.
"""

import json
import os
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

import litellm
import structlog
import yaml

from stepforce.core.domain.errors import ModelInvocationError, TransientModelError
from stepforce.core.domain.models import TokenUsage
from stepforce.core.interfaces.llm import ModelRequest, ModelResponse, ModelToolCall

ALLOWED_PARAMS = ["temperature", "top_p", "max_tokens", "frequency_penalty", "presence_penalty"]

DEFAULT_TRANSIENT_ERRORS = [
    "RateLimitError",
    "Timeout",
    "APIConnectionError",
    "ServiceUnavailableError",
    "InternalServerError",
]


class LiteLLMService:
    """
    Model invocation service with model-aware parameter mapping.

    Implements ModelInvocationProtocol.
    """

    def __init__(self, config_path: str = "configs/llm_config.yaml"):
        """
        Initialize the service from a YAML configuration.

        Args:
            config_path: Path to YAML configuration file

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config is invalid
        """
        self.logger = structlog.get_logger().bind(component="llm_service")
        self._load_config(config_path)
        self._initialize_provider()

        self.logger.info(
            "llm_service_initialized",
            default_model=self.default_model,
            model_aliases=list(self.models.keys()),
        )

    def _load_config(self, config_path: str) -> None:
        config_file = Path(config_path)
        if not config_file.exists():
            raise FileNotFoundError(f"LLM config not found: {config_path}")

        with open(config_file, "r", encoding="utf-8") as f:
            config = yaml.safe_load(f)

        if not isinstance(config, dict):
            raise ValueError(f"Config file is empty or invalid: {config_path}")

        self.default_model = config.get("default_model", "main")
        self.models: Dict[str, str] = config.get("models") or {}
        self.model_params: Dict[str, Dict[str, Any]] = config.get("model_params") or {}
        self.default_params: Dict[str, Any] = config.get("default_params") or {}
        self.strict_models = bool(config.get("strict_models", False))

        if not self.models:
            raise ValueError("Config must define at least one model in 'models' section")

        request_config = config.get("request") or {}
        self.timeout = request_config.get("timeout", 60)
        self.transient_errors: List[str] = request_config.get("transient_errors") or list(
            DEFAULT_TRANSIENT_ERRORS
        )

        self.logging_config = config.get("logging") or {}
        self.provider_config = config.get("providers") or {}

    def _initialize_provider(self) -> None:
        """Check provider credentials in the environment."""
        openai_config = self.provider_config.get("openai", {})
        api_key_env = openai_config.get("api_key_env", "OPENAI_API_KEY")
        if not os.getenv(api_key_env):
            self.logger.warning(
                "openai_api_key_missing",
                env_var=api_key_env,
                hint="Set environment variable for API access",
            )

    def supports_model(self, model: str) -> bool:
        """
        Return True if the model id can be served.

        Aliases and configured model names are always supported; any other
        id is passed through to LiteLLM unless `strict_models` is set.
        """
        if not model:
            return False
        if model in self.models or model in self.models.values():
            return True
        return not self.strict_models

    def _resolve_model(self, model_alias: Optional[str]) -> str:
        if model_alias is None:
            model_alias = self.default_model
        resolved = self.models.get(model_alias, model_alias)
        self.logger.debug("model_resolved", model_alias=model_alias, resolved_model=resolved)
        return resolved

    def _get_model_parameters(self, model: str) -> Dict[str, Any]:
        """Model-specific parameters, matched exactly or by family prefix."""
        if model in self.model_params:
            return self.model_params[model].copy()

        for model_key, params in self.model_params.items():
            if model.startswith(model_key):
                return params.copy()

        return self.default_params.copy()

    async def invoke(self, request: ModelRequest) -> ModelResponse:
        """
        Perform one completion with native tool calling.

        Raises:
            TransientModelError: Rate limits, timeouts, connection errors
            ModelInvocationError: Any other provider failure
        """
        actual_model = self._resolve_model(request.model)
        params = self._get_model_parameters(actual_model)
        if request.temperature is not None:
            params["temperature"] = request.temperature
        if request.max_tokens is not None:
            params["max_tokens"] = request.max_tokens
        params = {k: v for k, v in params.items() if k in ALLOWED_PARAMS}

        call_kwargs: Dict[str, Any] = {}
        if request.tools:
            call_kwargs["tools"] = request.tools
            call_kwargs["tool_choice"] = "auto"

        start_time = time.time()
        self.logger.info(
            "llm_completion_started",
            model=actual_model,
            message_count=len(request.messages),
            tools_count=len(request.tools),
        )

        try:
            response = await litellm.acompletion(
                model=actual_model,
                messages=request.messages,
                timeout=self.timeout,
                **call_kwargs,
                **params,
            )
        except Exception as e:
            raise self._classify(e, actual_model) from e

        result = self._parse_response(response)
        latency_ms = int((time.time() - start_time) * 1000)

        if self.logging_config.get("log_token_usage", True):
            self.logger.info(
                "llm_completion_success",
                model=actual_model,
                tokens=result.usage.total,
                tool_calls=len(result.tool_calls),
                finished=result.finished,
                latency_ms=latency_ms,
            )
        return result

    def _classify(self, error: Exception, model: str) -> ModelInvocationError:
        error_type = type(error).__name__
        error_msg = str(error)
        transient = isinstance(error, TimeoutError) or any(
            name in error_type or name in error_msg for name in self.transient_errors
        )

        self.logger.warning(
            "llm_completion_error",
            model=model,
            error_type=error_type,
            error=error_msg[:200],
            transient=transient,
        )
        if transient:
            return TransientModelError(error_msg or error_type, error_type=error_type)
        return ModelInvocationError(error_msg or error_type, error_type=error_type)

    def _parse_response(self, response: Any) -> ModelResponse:
        try:
            choice = response.choices[0]
        except (AttributeError, IndexError, TypeError) as e:
            raise ModelInvocationError(
                f"Malformed completion response: {e}", error_type="MalformedResponse"
            ) from e

        message = choice.message
        tool_calls = []
        for tc in getattr(message, "tool_calls", None) or []:
            raw_arguments = tc.function.arguments
            try:
                arguments = json.loads(raw_arguments) if raw_arguments else {}
            except json.JSONDecodeError:
                self.logger.warning(
                    "tool_call_arguments_invalid",
                    tool=tc.function.name,
                    arguments=str(raw_arguments)[:200],
                )
                arguments = {}
            if not isinstance(arguments, dict):
                arguments = {}
            tool_calls.append(
                ModelToolCall(id=getattr(tc, "id", None), name=tc.function.name, arguments=arguments)
            )

        return ModelResponse(
            text=message.content or "",
            tool_calls=tool_calls,
            usage=_usage(getattr(response, "usage", None)),
            finished=_finished(getattr(choice, "finish_reason", None)),
        )


def _finished(finish_reason: Optional[str]) -> Optional[bool]:
    """Map a provider finish reason onto the completion signal."""
    if not finish_reason:
        return None
    return finish_reason == "stop"


def _usage(usage: Any) -> TokenUsage:
    # Handle both dict and object forms
    if usage is None:
        return TokenUsage()
    if isinstance(usage, dict):
        stats = usage
    else:
        stats = {
            "prompt_tokens": getattr(usage, "prompt_tokens", 0),
            "completion_tokens": getattr(usage, "completion_tokens", 0),
            "total_tokens": getattr(usage, "total_tokens", 0),
        }
    prompt = stats.get("prompt_tokens") or 0
    completion = stats.get("completion_tokens") or 0
    return TokenUsage(
        input=prompt,
        output=completion,
        total=stats.get("total_tokens") or prompt + completion,
    )
