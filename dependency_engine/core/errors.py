from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class EngineError(Exception):
    """Base error envelope. Data problems are returned as these; only caller mistakes are raised."""

    code: str
    message: str
    file: Optional[str] = None
    path: Optional[str] = None

    def __str__(self) -> str:
        parts: list[str] = []
        if self.file:
            parts.append(self.file)
        if self.path:
            parts.append(self.path)
        loc = ":".join(parts) if parts else "<tasks>"
        return f"{loc}: {self.code}: {self.message}"


class TaskLoadError(EngineError):
    pass


class TaskValidationError(EngineError):
    pass


class GraphDiagnostic(EngineError):
    """Recorded alongside a Graph; never raised by the engine."""


class InvalidSimulationInput(EngineError):
    pass


class GraphTooLargeError(EngineError):
    pass


class ConfigError(EngineError):
    pass


# Diagnostic codes recorded on Graph.diagnostics.
MALFORMED_REFERENCE = "W_MALFORMED_REFERENCE"
CYCLE_DETECTED = "W_CYCLE_DETECTED"
INCONSISTENT_TIMING = "W_INCONSISTENT_TIMING"
