"""
Storage Paths
Public /files/ URLs for objects in platform storage.
"""

FILES_PREFIX = "/files/"


def is_storage_url(url: str) -> bool:
    """True for a /files/ proxy URL that stays inside platform storage."""
    if not isinstance(url, str) or not url.startswith(FILES_PREFIX):
        return False
    path = url[len(FILES_PREFIX):]
    if not path or "\\" in path or path.startswith("/") or ":" in path:
        return False
    return all(part not in ("", ".", "..") for part in path.split("/"))
