"""
Pipeline Package - Job orchestration

Contains:
- Job, JobMode, JobState: job model and state machine
- ProgressEvent, PipelineResult: payloads for the presentation layer
- PipelineOrchestrator: runs a job from URL to published archive
"""

from .job import Job, JobMode, JobState, PipelineResult, ProgressEvent
from .orchestrator import PipelineOrchestrator

__all__ = [
    'Job',
    'JobMode',
    'JobState',
    'PipelineResult',
    'ProgressEvent',
    'PipelineOrchestrator',
]
