"""
Social platform publishers

Adapters live in their own modules and are assembled by
src.publishers.registry.build_adapters(); importing this package only
loads the error taxonomy.
"""
from .exceptions import PublisherException

__all__ = ["PublisherException"]
