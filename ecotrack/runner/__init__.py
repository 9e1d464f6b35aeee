"""Build pipeline: checkout, build, migrate, record."""

from ecotrack.runner.compiler import (
    CommandOutput,
    CompilerError,
    CompilerRunner,
    migrate_pin,
    pin_arg,
)
from ecotrack.runner.git import Checkout, CheckoutError, GitClient
from ecotrack.runner.migration import MigrationProber, MigrationResult
from ecotrack.runner.orchestrator import (
    BuildOrchestrator,
    FullRefresh,
    ProjectOutcome,
    ProjectStatus,
    RootOutcome,
    RunMode,
    RunReport,
    SelectiveCheck,
    find_build_roots,
)

__all__ = [
    # Compiler
    "CommandOutput",
    "CompilerError",
    "CompilerRunner",
    "migrate_pin",
    "pin_arg",
    # Source control
    "Checkout",
    "CheckoutError",
    "GitClient",
    # Migration
    "MigrationProber",
    "MigrationResult",
    # Orchestrator
    "BuildOrchestrator",
    "FullRefresh",
    "ProjectOutcome",
    "ProjectStatus",
    "RootOutcome",
    "RunMode",
    "RunReport",
    "SelectiveCheck",
    "find_build_roots",
]
