"""
Application Layer - Engine Factory

Wires the execution engine from a configuration profile:

- Load configuration profiles (dev/prod) from YAML
- Build engine settings (profile `engine` section, env overrides)
- Instantiate the model service and built-in/configured tools
- Wire registry, approval broker, gateway and coordinator together
"""

import importlib
from pathlib import Path
from typing import Any, Optional

import structlog
import yaml

from stepforce.config.settings import EngineSettings
from stepforce.core.domain.coordinator import ExecutionCoordinator
from stepforce.core.domain.models import AgentDefinition, new_id
from stepforce.core.interfaces.llm import ModelInvocationProtocol
from stepforce.core.interfaces.tools import ToolProtocol
from stepforce.core.tools.approval import ApprovalBroker
from stepforce.core.tools.gateway import ToolInvocationGateway
from stepforce.core.tools.registry import CapabilityRegistry
from stepforce.infrastructure.tools.native import BUILTIN_TOOLS


class EngineFactory:
    """
    Factory for creating a fully wired ExecutionCoordinator.

    Tools listed in a profile are either built-in names or specs of the
    form `{"type": <class name>, "module": <module>, "params": {...}}`.
    """

    def __init__(self, config_dir: str = "configs"):
        """
        Args:
            config_dir: Path to directory containing profile YAML files
        """
        self.config_dir = Path(config_dir)
        self.logger = structlog.get_logger().bind(component="engine_factory")

    def create_coordinator(
        self,
        profile: str = "dev",
        model_service: Optional[ModelInvocationProtocol] = None,
    ) -> ExecutionCoordinator:
        """
        Create a coordinator for a configuration profile.

        Args:
            profile: Profile name (dev/prod)
            model_service: Override for the configured model service

        Returns:
            ExecutionCoordinator; its gateway exposes registry and broker

        Raises:
            FileNotFoundError: If profile YAML not found
        """
        config = self._load_profile(profile)
        settings = self.create_settings(config)
        registry = self.create_registry(config)

        if model_service is None:
            model_service = self._create_model_service(config)

        broker = ApprovalBroker(timeout_seconds=settings.approval_timeout_seconds)
        gateway = ToolInvocationGateway(
            registry=registry,
            broker=broker,
            tool_timeout_seconds=settings.tool_timeout_seconds,
            required_approval_tools=settings.required_approval_tools,
            enable_human_approval=settings.enable_human_approval,
        )

        self.logger.info(
            "creating_coordinator",
            profile=profile,
            tools=registry.names(),
            max_steps=settings.max_steps_per_execution,
        )
        return ExecutionCoordinator(model_service=model_service, gateway=gateway, settings=settings)

    def registry_for_profile(self, profile: str = "dev") -> CapabilityRegistry:
        """Create only the capability registry of a profile."""
        return self.create_registry(self._load_profile(profile))

    def create_settings(self, config: dict) -> EngineSettings:
        return EngineSettings.from_mapping(config.get("engine"))

    def create_registry(self, config: dict) -> CapabilityRegistry:
        """
        Create the capability registry from the profile's tool list.

        Falls back to all built-in tools when the profile lists none.
        """
        tools_config = config.get("tools") or list(BUILTIN_TOOLS)

        registry = CapabilityRegistry()
        for tool_spec in tools_config:
            tool = self._instantiate_tool(tool_spec)
            if tool is not None:
                registry.register(tool)
        return registry

    def load_agent_definition(self, path: str, owner_id: str = "local") -> AgentDefinition:
        """
        Load an agent definition from a YAML file.

        Raises:
            FileNotFoundError: If the file does not exist
            ValueError: If the file is not a mapping
        """
        agent_path = Path(path)
        if not agent_path.exists():
            raise FileNotFoundError(f"Agent definition not found: {agent_path}")

        with open(agent_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)

        if not isinstance(data, dict):
            raise ValueError(f"Agent definition is empty or invalid: {agent_path}")

        return AgentDefinition(
            id=str(data.get("id") or new_id()),
            name=data.get("name", ""),
            description=data.get("description", ""),
            model=data.get("model", ""),
            system_prompt=data.get("system_prompt", ""),
            owner_id=str(data.get("owner_id") or owner_id),
            temperature=data.get("temperature"),
            max_tokens=data.get("max_tokens"),
            tools=tuple(data.get("tools") or ()),
            max_steps=data.get("max_steps"),
        )

    def _load_profile(self, profile: str) -> dict:
        """
        Load configuration profile from YAML file.

        Raises:
            FileNotFoundError: If profile YAML not found
        """
        profile_path = self.config_dir / f"{profile}.yaml"

        if not profile_path.exists():
            self.logger.error(
                "profile_not_found",
                profile=profile,
                path=str(profile_path),
                hint="Ensure profile YAML exists in configs directory",
            )
            raise FileNotFoundError(f"Profile not found: {profile_path}")

        with open(profile_path, "r", encoding="utf-8") as f:
            config = yaml.safe_load(f) or {}

        self.logger.debug("profile_loaded", profile=profile, config_keys=list(config.keys()))
        return config

    def _create_model_service(self, config: dict) -> ModelInvocationProtocol:
        from stepforce.infrastructure.llm.litellm_service import LiteLLMService

        llm_config = config.get("llm", {})
        config_path = llm_config.get("config_path", "configs/llm_config.yaml")
        return LiteLLMService(config_path=config_path)

    def _instantiate_tool(self, tool_spec: Any) -> Optional[ToolProtocol]:
        """
        Instantiate a tool from a built-in name or a type/module spec.

        Returns:
            Tool instance or None if instantiation fails
        """
        if isinstance(tool_spec, str):
            tool_class = BUILTIN_TOOLS.get(tool_spec)
            if tool_class is None:
                self.logger.warning("unknown_builtin_tool", tool=tool_spec, available=list(BUILTIN_TOOLS))
                return None
            return tool_class()

        if not isinstance(tool_spec, dict):
            self.logger.warning("invalid_tool_spec", tool_spec=str(tool_spec))
            return None

        tool_type = tool_spec.get("type")
        tool_module = tool_spec.get("module")
        tool_params = dict(tool_spec.get("params") or {})

        if not tool_type or not tool_module:
            self.logger.warning(
                "invalid_tool_spec",
                tool_type=tool_type,
                tool_module=tool_module,
                hint="Tool spec must include 'type' and 'module'",
            )
            return None

        try:
            module = importlib.import_module(tool_module)
            tool_instance = getattr(module, tool_type)(**tool_params)
        except Exception as e:
            self.logger.error(
                "tool_instantiation_failed",
                tool_type=tool_type,
                tool_module=tool_module,
                error=str(e),
                error_type=type(e).__name__,
            )
            return None

        self.logger.debug("tool_instantiated", tool_type=tool_type, tool_name=tool_instance.name)
        return tool_instance
