"""Configuration storage for models, rules and workflows."""

from .ConfigurationStore import InMemoryConfigurationStore

__all__ = ["InMemoryConfigurationStore"]
