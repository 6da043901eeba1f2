"""Base class for provisioning steps."""

from __future__ import annotations

from abc import ABC, abstractmethod

from ..context import InstallContext
from ..models import Configuration


class Step(ABC):
    """One idempotent provisioning step.

    Subclasses set `name` and implement `run`. Optional steps override
    `enabled`.
    """

    name: str = ""

    def enabled(self, config: Configuration) -> bool:
        """Whether the step applies to this configuration."""
        return True

    @abstractmethod
    def run(self, ctx: InstallContext) -> None:
        """Apply the step. Must be safe to run repeatedly."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"
