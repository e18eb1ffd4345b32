"""
Resolution of URLs relative to a notebook's location on the server
"""

import posixpath
from urllib.parse import quote, urlsplit, urlunsplit

from .. import config


def is_local(url: str) -> bool:
    """True for server-relative paths (no scheme, not protocol-relative)"""
    parts = urlsplit(url)
    return not parts.scheme and not url.startswith("//")


class UrlResolver:
    """Resolves URLs against the directory of the document at ``path``"""
    
    def __init__(self, path: str = "", base_url: str = config.KERNEL_CONFIG["base_url"]):
        self.path = path
        self.base_url = base_url if base_url.endswith("/") else base_url + "/"
        
    async def resolve_url(self, url: str) -> str:
        """Resolve ``url`` to a server path; absolute and data URLs are returned as is"""
        if not is_local(url):
            return url
        parts = urlsplit(url)
        directory = posixpath.dirname(self.path)
        resolved = posixpath.normpath(posixpath.join("/", directory, parts.path)).lstrip("/")
        return urlunsplit(("", "", resolved, parts.query, parts.fragment))
        
    async def get_download_url(self, path: str) -> str:
        """The ``files/`` download URL of a server path"""
        if not is_local(path):
            return path
        parts = urlsplit(path)
        url = self.base_url + "files/" + quote(parts.path.lstrip("/"))
        return urlunsplit(("", "", url, parts.query, parts.fragment)) if (parts.query or parts.fragment) else url
