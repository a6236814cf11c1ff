"""
storage.py: local file storage behind the upload endpoints (pure stdlib)

Files are written below ``root/<kind>/`` under a unique name and the
public URL ``<base_url>/<kind>/<name>`` is returned.  Any object store
exposing the same ``save()`` signature can be swapped in.
"""

import logging
import os
import re
import uuid

logger = logging.getLogger(__name__)

KINDS = ('media', 'files')

_UNSAFE_CHARS = re.compile(r'[^A-Za-z0-9._-]+')


class StorageError(OSError):
    """A file could not be stored."""


def safe_filename(filename: str) -> str:
    """Reduce a client-supplied file name to a safe basename."""
    name = os.path.basename((filename or '').replace('\\', '/'))
    name = _UNSAFE_CHARS.sub('-', name).strip('.-')
    return name or 'upload'


class LocalFileStorage:
    def __init__(self, root, base_url='/uploads'):
        self.root = os.path.abspath(root)
        self.base_url = base_url.rstrip('/')

    def path_for(self, kind: str) -> str:
        if kind not in KINDS:
            raise ValueError(f"Unknown storage kind: {kind}")
        return os.path.join(self.root, kind)

    def save(self, kind: str, filename: str, data: bytes) -> str:
        """Store ``data`` and return its public URL."""
        directory = self.path_for(kind)
        stored_name = f"{uuid.uuid4().hex}-{safe_filename(filename)}"
        try:
            os.makedirs(directory, exist_ok=True)
            with open(os.path.join(directory, stored_name), 'wb') as f:
                f.write(data)
        except OSError as e:
            logger.error("Storing %s upload '%s' failed: %s", kind, filename, e)
            raise StorageError(f"Could not store {filename}: {e}") from e

        logger.info("Stored %s upload %s (%d bytes)", kind, stored_name, len(data))
        return f"{self.base_url}/{kind}/{stored_name}"
