"""Exceptions raised while building and checking tile pyramids.

Every failure inside a conversion surfaces as one of the subclasses of
:class:`TilingError`, so a batch caller can catch per image and move on.
"""

from __future__ import annotations


class TilingError(Exception):
    """Base class for all tiling errors.

    Attributes:
        msg: Explanation of the error.
    """

    def __init__(self, msg: str) -> None:
        super().__init__(msg)
        self.msg = msg


class InvalidDimension(TilingError):
    """Image or tile dimensions are not positive integers."""


class OrientationMismatch(TilingError):
    """Two stripes of different orientation were asked to merge."""


class ProcessingFailure(TilingError):
    """An image operation failed or produced no output file."""


class CleanupFailure(TilingError):
    """A temporary file could not be removed."""


class DirectoryConflict(TilingError):
    """The target tileset location already exists."""


class ValidationFailure(TilingError):
    """A finished tileset is incomplete or inconsistent with its descriptor."""
