"""
Store access, pagination, schema inference and rendering helpers.
"""
from .mongo import ConnectionManager

__all__ = ["ConnectionManager"]
