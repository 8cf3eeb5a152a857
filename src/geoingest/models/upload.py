"""
Uploaded file model.
"""

from dataclasses import dataclass
from pathlib import PurePath


@dataclass(frozen=True)
class UploadedFile:
    """
    One named byte blob of an upload batch.

    Attributes:
        name: File name as supplied by the client
        content: Raw bytes
    """

    name: str
    content: bytes

    @property
    def stem(self) -> str:
        """File name without directory and extension."""
        return PurePath(self.name).stem

    @property
    def extension(self) -> str:
        """Lower-case extension including the dot (e.g. ".shp")."""
        return PurePath(self.name).suffix.lower()

    @property
    def size(self) -> int:
        return len(self.content)
