"""Test package for krakatau_service.

Pytest discovers tests via file patterns; this module exists so the helpers in
``wat_engine`` and ``conftest`` can be imported with relative imports.
"""

from __future__ import annotations

__all__: list[str] = []
