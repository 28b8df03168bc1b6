"""Ley Karin case process: stages, deadlines and the controller driving them."""

from karin.process.controller import CaseProcessController
from karin.process.deadlines import DeadlineSet
from karin.process.machine import StageStateMachine
from karin.process.stages import CloseReason, StageId
from karin.process.store import CaseStore
from karin.process.templates import TemplateRegistry

__all__ = [
    "CaseProcessController",
    "CaseStore",
    "CloseReason",
    "DeadlineSet",
    "StageId",
    "StageStateMachine",
    "TemplateRegistry",
]
