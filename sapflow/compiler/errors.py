from __future__ import annotations

from typing import Optional


class MalformedInputError(ValueError):
    """Raised when a recording cannot be read as one of the supported shapes."""

    def __init__(self, message: str, tcode: Optional[str] = None):
        super().__init__(message)
        self.tcode = tcode
