"""State layer.

This package owns the state tree, the change events announcing updates to it,
and the cache-hit policy that decides whether a cached query result can be
reused instead of going to the network.
"""
