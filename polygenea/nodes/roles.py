"""
Node roles.

Source and Claim are never instantiated directly; they exist so that
attribute tables can say "any source" or "any claim" and so that callers
can dispatch on capability with isinstance().
"""

from __future__ import annotations

from .base import Node, node_class, ref


@node_class
class Source(Node):
    """Evidence that claims rest on."""


@node_class
class Claim(Node):
    """An assertion tied to the Source it was drawn from."""
    source: Source = ref(Source)
