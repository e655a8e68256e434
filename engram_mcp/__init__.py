"""
Engram MCP - exposes the Engram memory API to MCP clients.
"""

__version__ = "1.0.0"
