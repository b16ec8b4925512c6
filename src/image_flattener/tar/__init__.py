"""Archive handling for image trees and layer archives."""

from .codec import ArchiveCodec, TarArchiveCodec

__all__ = ["ArchiveCodec", "TarArchiveCodec"]
