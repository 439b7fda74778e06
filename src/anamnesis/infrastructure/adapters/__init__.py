# Infrastructure Repository Adapters Package
from .memory_repository import InMemoryDeckRepository
from .yaml_repository import YamlDeckRepository

__all__ = ["InMemoryDeckRepository", "YamlDeckRepository"]
