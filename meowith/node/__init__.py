"""An in-memory storage node speaking the same REST contract as a real one, for local work and tests."""

from meowith.node.api import NodeConfig
from meowith.node.main import make_app
from meowith.node.storage import InMemoryStorage, NodeError

__all__ = ["InMemoryStorage", "NodeConfig", "NodeError", "make_app"]
