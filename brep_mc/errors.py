"""
Error types raised by the geometry engine.

Two failure families exist. Bad input (malformed geometry, wrong node
counts, unreadable data files) is a ConfigurationError and should never be
retried. An iteration cap being hit inside a boundary walk means the
numerical safeguards failed, which is an InternalConsistencyFault.

Numerical degeneracies (rays along edges, through vertices, tangent to a
surface) are NOT errors; the tie-break rules resolve them.
"""


class GeometryError(Exception):
    """Base class for all brep_mc errors."""


class ConfigurationError(GeometryError, ValueError):
    """Invalid geometry, mesh, tolerance or data-file input."""


class InternalConsistencyFault(GeometryError, RuntimeError):
    """An iterative walk exceeded its step cap."""

    def __init__(self, message: str, steps: int = 0):
        super().__init__(message)
        self.steps = steps
