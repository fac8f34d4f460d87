"""
kpatch-build: builds live-patch kernel modules from a source patch.

The pipeline caches a baseline kernel tree matching the running kernel,
detects the objects a patch changes, rebuilds them in both patch states,
diffs each pair and assembles the core and patch modules.
"""

__version__ = "0.1.0"
