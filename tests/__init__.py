"""
Polygenea Tests Package

TEST AXIOMS:
=============
1. Determinism: same content = same identity, byte-identical serialization
2. Append-only: the store only grows, failed writes change nothing
3. Explicit failure: every error is a typed PolygeneaError
"""
