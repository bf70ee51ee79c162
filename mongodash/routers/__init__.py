"""
API Routers module.
"""
from . import collections, connections, databases, documents, schema

__all__ = ["collections", "connections", "databases", "documents", "schema"]
