"""Layer and cache management module.

This module handles:
- Layer storage and reuse decisions (manager)
- Atomic record persistence (metadata)
- Cache key computation (cache_key)
"""

from buildpack_engine.layers.manager import LayerManager
from buildpack_engine.layers.metadata import CacheCorruptionError
from buildpack_engine.layers.models import Layer, LayerFlags

__all__ = ["CacheCorruptionError", "Layer", "LayerFlags", "LayerManager"]
