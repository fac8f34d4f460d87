"""
Shared helpers for the kpatch build pipeline: filesystem operations
and run logging setup.
"""
