from convosim.core.registries.registry_base import NameRegistry
from convosim.core.registries.registry_manager import FlowRegistry, GoalLensRegistry, RegistryManager
from convosim.core.registries.validators import FlowValidator, RegistryValidator

__all__ = [
    "FlowRegistry",
    "FlowValidator",
    "GoalLensRegistry",
    "NameRegistry",
    "RegistryManager",
    "RegistryValidator",
]
