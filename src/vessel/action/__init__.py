"""
Action pipelines for Vessel.

Every lifecycle operation is an ordered pipeline of stages run in the
onion model through a Runner.
"""

from vessel.action.batch import BatchAction
from vessel.action.builder import Builder, Pipeline, Proceed, Stage, stage_name
from vessel.action.builtin import Call, EnvSet
from vessel.action.runner import ActionContext, Runnable, Runner

__all__ = [
    "ActionContext",
    "BatchAction",
    "Builder",
    "Call",
    "EnvSet",
    "Pipeline",
    "Proceed",
    "Runnable",
    "Runner",
    "Stage",
    "stage_name",
]
