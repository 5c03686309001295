from __future__ import annotations

# Public API of the composition root
from .container import build_container, get_container, reset_container  # noqa: F401
