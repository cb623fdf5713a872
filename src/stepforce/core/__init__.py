"""Core domain: coordinator, tool gateway, approval broker, capability registry."""
