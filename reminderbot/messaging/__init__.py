"""Matrix messaging."""

from .exceptions import DispatchError
from .matrix import MatrixClient

__all__ = ["DispatchError", "MatrixClient"]
