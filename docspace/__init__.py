"""Public package surface for docspace.

Exports ``main`` for programmatic CLI invocation.
Tree algebra lives in ``docspace.tree_model``; the authoritative server and
the client-side cache live in ``docspace.server`` and ``docspace.client``.
"""

from __future__ import annotations


def main(*args, **kwargs):
    """Lazily import CLI entrypoint to keep package imports lightweight."""
    from .cli import main as _main

    return _main(*args, **kwargs)

__all__ = ["main"]
