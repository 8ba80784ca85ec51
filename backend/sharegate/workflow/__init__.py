from sharegate.workflow.engine import ApprovalWorkflowEngine, workflow_engine
from sharegate.workflow.matcher import MatchResult, ShareAttributes, match
from sharegate.workflow.recorder import DecisionRecorder, decision_recorder
from sharegate.workflow.sweeper import ExpirationSweeper, SweepReport, expiration_sweeper

__all__ = [
    "ApprovalWorkflowEngine", "workflow_engine",
    "MatchResult", "ShareAttributes", "match",
    "DecisionRecorder", "decision_recorder",
    "ExpirationSweeper", "SweepReport", "expiration_sweeper",
]
