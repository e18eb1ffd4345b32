"""
Registry of widget modules and their exported classes
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

import semantic_version

from .. import config
from ..core.exceptions import ClassNotFoundError, ModuleResolutionError
from .loader import ExportBundle
from .semver_cache import SemVerCache

logger = logging.getLogger(__name__)


class ExportRegistry:
    """Maps (module name, version range) to export bundles"""
    
    def __init__(self, caret_widened_modules: Optional[Sequence[str]] = None):
        """
        Initialize export registry
        
        Args:
            caret_widened_modules: Modules whose plain version queries are
                widened to ``^version`` before lookup
        """
        if caret_widened_modules is None:
            caret_widened_modules = config.MODULE_CONFIG["caret_widened_modules"]
        self.caret_widened_modules = set(caret_widened_modules)
        self._cache: SemVerCache[ExportBundle] = SemVerCache()
        
    def register(self, name: str, version: str, exports: Any) -> ExportBundle:
        """
        Register an export source for a module version or range
        
        Args:
            name: Module name
            version: Exact version or npm-style range
            exports: Mapping, module path, module, awaitable or factory
        """
        bundle = ExportBundle(name, version, exports)
        self._cache.set(name, version, bundle)
        logger.info(f"Registered widget module: {name}@{version}")
        return bundle
        
    def unregister(self, name: str, version: str) -> bool:
        removed = self._cache.delete(name, version)
        if removed:
            logger.info(f"Unregistered widget module: {name}@{version}")
        return removed
        
    def widen_version(self, name: str, version: str) -> str:
        """Apply the caret rule for first-party modules"""
        if name in self.caret_widened_modules and semantic_version.validate(version.strip()):
            return f"^{version.strip()}"
        return version
        
    def resolve(self, name: str, version: str) -> Optional[ExportBundle]:
        """Best bundle for ``version``, or None"""
        return self._cache.get(name, self.widen_version(name, version))
        
    async def load_class(self, class_name: str, module_name: str, module_version: str) -> Any:
        """
        Load a class from a registered module
        
        Raises:
            ModuleResolutionError: No registered range matches the version
            ClassNotFoundError: The module does not export ``class_name``
        """
        version = self.widen_version(module_name, module_version)
        bundle = self._cache.get(module_name, version)
        if bundle is None:
            raise ModuleResolutionError(module_name, version)
        exports = await bundle.exports()
        cls = exports.get(class_name)
        if cls is None:
            raise ClassNotFoundError(class_name, module_name)
        return cls
        
    def get_modules(self) -> Dict[str, List[str]]:
        """Registered versions per module"""
        return {name: self._cache.versions(name) for name in self._cache.keys()}
