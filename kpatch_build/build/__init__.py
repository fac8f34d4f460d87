"""
Build stages of the kpatch build pipeline.

This module provides the kernel make wrapper, the dual original/patched
object rebuild, the per-object differ and the final module assembly.
"""
