"""
Shared encoder plumbing - results and warning collection.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

T = TypeVar("T")


@dataclass
class EncodeResult(Generic[T]):
    """Output of an encoder plus every fallback it took."""

    output: T
    warnings: list[str] = field(default_factory=list)

    @property
    def has_warnings(self) -> bool:
        return bool(self.warnings)


class WarningCollector:
    """Logs warnings and keeps them for the EncodeResult."""

    def __init__(self, log: logging.Logger) -> None:
        self.log = log
        self.warnings: list[str] = []

    def warn(self, message: str, *args: Any) -> None:
        text = message % args if args else message
        self.log.warning(text)
        self.warnings.append(text)
