from .config import EngineConfig, load_config
from .session_store import InMemorySessionStore

__all__ = ["EngineConfig", "load_config", "InMemorySessionStore"]
