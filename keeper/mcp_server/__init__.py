from .server import MCPServerApp

__all__ = ["MCPServerApp"]
