"""Session authentication service with rotating refresh tokens.

Provide :func:`sessionauth.factory.create_app` at package level so callers
can ``from sessionauth import create_app``.
"""

from __future__ import annotations

from .factory import create_app

__all__ = ["create_app"]
