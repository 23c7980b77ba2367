"""Shared utilities."""
from .config import config, Config
from .logger import setup_logger, StepLogger
from .safety_guard import safety_guard, SafetyGuard, SafetyCheck, DangerLevel
from .tasks import BackgroundTasks
from .planner_client import PlannerClient, PlannerContext

__all__ = [
    "config",
    "Config",
    "setup_logger",
    "StepLogger",
    # Safety
    "safety_guard",
    "SafetyGuard",
    "SafetyCheck",
    "DangerLevel",
    # Async
    "BackgroundTasks",
    # Planner
    "PlannerClient",
    "PlannerContext",
]
