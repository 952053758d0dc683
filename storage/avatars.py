"""
storage/avatars.py -- Avatar image sniffing and storage.

Format detection reads the file's magic bytes instead of trusting the
client-supplied filename or Content-Type. Only the three formats browsers
render everywhere are accepted.

AvatarStorage writes the original upload to <avatar_dir>/<user_id>/avatar.<ext>
and removes any previous avatar of a different format. Resizing into the
thumbnail sizes clients display is left to the serving layer.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

logger = logging.getLogger("accounts.storage")

_SIGNATURES: tuple[tuple[bytes, str], ...] = (
    (b"\xff\xd8\xff", "jpg"),
    (b"\x89PNG\r\n\x1a\n", "png"),
    (b"GIF87a", "gif"),
    (b"GIF89a", "gif"),
)

ALLOWED_FORMATS: frozenset[str] = frozenset(ext for _, ext in _SIGNATURES)


def sniff_image_format(data: bytes) -> Optional[str]:
    """Return "jpg", "png" or "gif" for a recognised image, else None."""
    for signature, ext in _SIGNATURES:
        if data.startswith(signature):
            return ext
    return None


class AvatarStorage:
    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def path_for(self, user_id: int, ext: str) -> Path:
        return self.root / str(user_id) / f"avatar.{ext}"

    def save(self, user_id: int, data: bytes, ext: str) -> Path:
        """Write the avatar and drop stale copies in other formats."""
        if ext not in ALLOWED_FORMATS:
            raise ValueError(f"Unsupported avatar format {ext!r}")
        target = self.path_for(user_id, ext)
        target.parent.mkdir(parents=True, exist_ok=True)
        for other in ALLOWED_FORMATS - {ext}:
            self.path_for(user_id, other).unlink(missing_ok=True)
        target.write_bytes(data)
        logger.info("Avatar stored for user_id=%s (%s, %d bytes)", user_id, ext, len(data))
        return target
