"""
Loading of export bundles: mappings, factories, awaitables and module paths
"""

import asyncio
import importlib
import inspect
import logging
from typing import Any, Dict, Mapping, Optional

logger = logging.getLogger(__name__)


def discover_exports(module) -> Dict[str, Any]:
    """
    Collect the classes a module exports.

    Honors ``__all__`` when the module defines it; otherwise every public
    class defined in the module is exported.
    """
    names = getattr(module, "__all__", None)
    if names is not None:
        return {name: getattr(module, name) for name in names if hasattr(module, name)}
        
    exports = {}
    for name, obj in inspect.getmembers(module, inspect.isclass):
        if name.startswith("_") or obj.__module__ != module.__name__:
            continue
        exports[name] = obj
        logger.debug(f"Discovered export {name} in {module.__name__}")
    return exports


async def load_exports(source: Any) -> Mapping[str, Any]:
    """
    Resolve an export source into a name → class mapping
    
    Args:
        source: A mapping, a dotted module path, a module object, an
            awaitable, or a (coroutine) function returning any of these
            
    Returns:
        Mapping of exported names to classes
    """
    if isinstance(source, Mapping):
        return source
    if isinstance(source, str):
        return discover_exports(importlib.import_module(source))
    if inspect.ismodule(source):
        return discover_exports(source)
    if inspect.isawaitable(source):
        return await load_exports(await source)
    if callable(source):
        return await load_exports(source())
    raise TypeError(f"Cannot load widget exports from {type(source).__name__}")


class ExportBundle:
    """A registered export source, loaded once on first use"""
    
    def __init__(self, name: str, version: str, source: Any):
        self.name = name
        self.version = version
        self.source = source
        self._exports = None
        # Shared by every caller; a coroutine source can only be awaited once
        self._loading: Optional[asyncio.Future] = None
        
    @property
    def is_loaded(self) -> bool:
        return self._exports is not None
        
    async def exports(self) -> Mapping[str, Any]:
        if self._exports is not None:
            return self._exports
        if self._loading is None:
            self._loading = asyncio.ensure_future(self._load())
        return await asyncio.shield(self._loading)
        
    async def _load(self) -> Mapping[str, Any]:
        exports = await load_exports(self.source)
        self._exports = exports
        logger.debug(f"Loaded {len(exports)} exports from {self.name}@{self.version}")
        return exports
        
    def __repr__(self):
        return f"<ExportBundle {self.name}@{self.version}>"
