"""
Cache of objects keyed by name and semantic version
"""

import re
import logging
from typing import Dict, Any, Generic, List, Optional, TypeVar, Union

import semantic_version

logger = logging.getLogger(__name__)

T = TypeVar("T")

Query = Union[semantic_version.Version, semantic_version.NpmSpec]

_VERSION_FLOOR = re.compile(r"(\d+)(?:\.(\d+))?(?:\.(\d+))?")


def parse_version_query(text: str) -> Optional[Query]:
    """Parse an exact version or an npm-style range; None if neither"""
    text = (text or "").strip()
    if semantic_version.validate(text):
        return semantic_version.Version(text)
    try:
        return semantic_version.NpmSpec(text or "*")
    except ValueError:
        return None


def version_floor(text: str) -> semantic_version.Version:
    """Lowest version a range mentions (``^1.2`` → 1.2.0, ``*`` → 0.0.0)"""
    if semantic_version.validate(text.strip()):
        return semantic_version.Version(text.strip())
    match = _VERSION_FLOOR.search(text)
    if match is None:
        return semantic_version.Version("0.0.0")
    major, minor, patch = (int(part) if part else 0 for part in match.groups())
    return semantic_version.Version(major=major, minor=minor, patch=patch)


class SemVerCache(Generic[T]):
    """
    Objects registered under (key, version-or-range).

    Lookups accept an exact version or a range. An exact version matches a
    registered range that contains it; a range matches registered versions it
    contains, and registered ranges whose lowest version it contains. The
    highest matching registration wins.
    """
    
    def __init__(self):
        self._cache: Dict[str, Dict[str, T]] = {}
        
    def set(self, key: str, version: str, obj: T):
        """Register ``obj``, replacing any object under the same (key, version)"""
        if parse_version_query(version) is None:
            raise ValueError(f"Invalid semantic version or range {version!r} for {key}")
        versions = self._cache.setdefault(key, {})
        if version in versions:
            logger.info(f"Replacing {key}@{version}")
        versions[version] = obj
        
    def get(self, key: str, version: str) -> Optional[T]:
        """Best match for ``version`` under ``key``, or None"""
        versions = self._cache.get(key)
        if not versions:
            return None
        query = parse_version_query(version)
        if query is None:
            logger.warning(f"Cannot parse version query {version!r} for {key}")
            return None
            
        best_rank = None
        best = None
        for registered, obj in versions.items():
            if not self._matches(registered, version, query):
                continue
            rank = version_floor(registered)
            if best_rank is None or rank > best_rank:
                best_rank, best = rank, obj
        return best
        
    def delete(self, key: str, version: str) -> bool:
        versions = self._cache.get(key, {})
        if version not in versions:
            return False
        del versions[version]
        if not versions:
            del self._cache[key]
        return True
        
    def keys(self) -> List[str]:
        return list(self._cache)
        
    def versions(self, key: str) -> List[str]:
        return list(self._cache.get(key, {}))
        
    @staticmethod
    def _matches(registered: str, query_text: str, query: Query) -> bool:
        entry = parse_version_query(registered)
        if entry is None:
            return False
        if isinstance(query, semantic_version.Version):
            if isinstance(entry, semantic_version.Version):
                return entry == query
            return entry.match(query)
        if isinstance(entry, semantic_version.Version):
            return query.match(entry)
        return registered.strip() == query_text.strip() or query.match(version_floor(registered))
