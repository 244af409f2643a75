"""
Local filesystem blob storage for complaint attachments.

Files land under ``UPLOAD_FOLDER`` with a uuid prefix so that two uploads
with the same name never collide.  The returned URL is built from
``UPLOAD_BASE_URL``.
"""

import logging
import os
import uuid

from werkzeug.utils import secure_filename

logger = logging.getLogger(__name__)


class LocalBlobStorage:
    """Write uploads to a local directory and hand back their public URL."""

    def __init__(self, root: str, base_url: str = "/uploads"):
        self.root = root
        self.base_url = base_url.rstrip("/")

    @classmethod
    def from_config(cls, config):
        return cls(config["UPLOAD_FOLDER"], config.get("UPLOAD_BASE_URL", "/uploads"))

    def upload(self, file) -> dict:
        """
        Persist a ``werkzeug.datastructures.FileStorage``.

        Returns:
            {"url", "file_name", "file_type", "file_size"}

        Raises:
            OSError: Directory or write failure.
            ValueError: File has no usable name.
        """
        original = file.filename or ""
        safe_name = secure_filename(original)
        if not safe_name:
            raise ValueError(f"Unusable file name: {original!r}")

        os.makedirs(self.root, exist_ok=True)
        stored_name = f"{uuid.uuid4().hex}_{safe_name}"
        path = os.path.join(self.root, stored_name)
        file.save(path)
        size = os.path.getsize(path)

        logger.debug("Stored upload %s (%d bytes)", stored_name, size)
        return {
            "url": f"{self.base_url}/{stored_name}",
            "file_name": original,
            "file_type": file.mimetype or None,
            "file_size": size,
        }
