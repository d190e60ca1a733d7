"""
Services

Cache, rate limiting and the container that wires them together.
"""

from .container import InfrastructureServices, build_services

__all__ = ["InfrastructureServices", "build_services"]
