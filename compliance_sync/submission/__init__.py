from compliance_sync.submission.drain_orchestrator import DrainOrchestrator
from compliance_sync.submission.submission_queue import SubmissionQueue

__all__ = ["DrainOrchestrator", "SubmissionQueue"]
