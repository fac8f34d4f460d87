"""
Pipeline orchestration for kpatch builds.
"""

from .orchestrator import LivePatchOrchestrator, PipelineResult, PipelineStatus

__all__ = ['LivePatchOrchestrator', 'PipelineResult', 'PipelineStatus']
