"""
Configuration for the kpatch build pipeline.
"""

from .build_config import BuildConfig, KernelVersion, load_build_config, save_build_config

__all__ = ['BuildConfig', 'KernelVersion', 'load_build_config', 'save_build_config']
