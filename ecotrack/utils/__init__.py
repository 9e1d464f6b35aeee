"""Utility modules for ecosystem-tracker."""

from ecotrack.utils.logging import (
    configure_logging,
    get_logger,
    log_stage_timing,
    new_run_id,
    set_project,
    set_run_context,
    set_stage,
)

__all__ = [
    "configure_logging",
    "get_logger",
    "log_stage_timing",
    "new_run_id",
    "set_project",
    "set_run_context",
    "set_stage",
]
