from .config import PipelineConfig, load_config
from .registry import HashRegistry, InMemoryHashRegistry, RedisHashRegistry, RegistryError

__all__ = [
    "PipelineConfig",
    "load_config",
    "HashRegistry",
    "InMemoryHashRegistry",
    "RedisHashRegistry",
    "RegistryError",
]
