"""Migration probe: bridge version skew with the compiler's own migrate command.

The migrate command only understands the delta between adjacent minor
versions of the unstable line. To bring a project written for an older minor
up to the current one, the prober first walks backwards from the current
minor until a pinned migrate succeeds (the anchor), then replays migrate one
minor at a time from the anchor up to the current minor, and finally rebuilds.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Awaitable, Callable, Optional, Protocol

from ecotrack.models import SemVer
from ecotrack.runner.compiler import CommandOutput, migrate_pin
from ecotrack.utils.logging import get_logger

logger = get_logger("runner.migration")


class MigrateCapable(Protocol):
    async def migrate(self, root: Path, pin: str) -> CommandOutput: ...


@dataclass
class MigrationResult:
    """What the probe did for one build root."""

    attempted: bool = False
    anchor_minor: Optional[int] = None
    replayed: list[int] = field(default_factory=list)
    rebuild_success: bool = False
    budget_exhausted: bool = False

    @property
    def success(self) -> bool:
        return self.rebuild_success

    def to_dict(self) -> dict:
        return {
            "attempted": self.attempted,
            "anchor_minor": self.anchor_minor,
            "replayed": self.replayed,
            "rebuild_success": self.rebuild_success,
            "budget_exhausted": self.budget_exhausted,
        }


class MigrationProber:
    """Finds a working migrate anchor, replays forward, and rebuilds."""

    def __init__(self, compiler: MigrateCapable, max_steps: int = 64) -> None:
        """
        Initialize the prober.

        Args:
            compiler: Object providing ``migrate(root, pin)``
            max_steps: Ceiling on migrate invocations per root
        """
        self.compiler = compiler
        self.max_steps = max_steps

    async def probe(
        self,
        root: Path,
        version: SemVer,
        rebuild: Callable[[], Awaitable[CommandOutput]],
    ) -> MigrationResult:
        """
        Try to make a failing root build again.

        Args:
            root: Failing build root
            version: Version reported by the target compiler
            rebuild: Re-runs the original build invocation

        Returns:
            MigrationResult; ``success`` is the authoritative rebuild outcome
        """
        result = MigrationResult()

        if not version.is_unstable:
            logger.debug("migration_not_applicable", root=str(root), version=str(version))
            return result

        result.attempted = True
        steps = 0

        # Backward probe: M, M-1, ..., 1
        anchor = None
        for minor in range(version.minor, 0, -1):
            if steps >= self.max_steps:
                result.budget_exhausted = True
                break
            steps += 1
            output = await self.compiler.migrate(root, migrate_pin(minor))
            if output.success:
                anchor = minor
                break

        if anchor is None:
            logger.info(
                "migration_anchor_not_found",
                root=str(root),
                version=str(version),
                budget_exhausted=result.budget_exhausted,
            )
            return result

        result.anchor_minor = anchor

        # Forward replay: K, K+1, ..., M; individual step failures are tolerated
        for minor in range(anchor, version.minor + 1):
            if steps >= self.max_steps:
                result.budget_exhausted = True
                logger.warning(
                    "migration_budget_exhausted",
                    root=str(root),
                    max_steps=self.max_steps,
                    reached_minor=minor - 1,
                )
                break
            steps += 1
            output = await self.compiler.migrate(root, migrate_pin(minor))
            result.replayed.append(minor)
            if not output.success:
                logger.debug("migration_step_failed", root=str(root), minor=minor)

        rebuilt = await rebuild()
        result.rebuild_success = rebuilt.success

        logger.info(
            "migration_probed",
            root=str(root),
            anchor_minor=anchor,
            replayed=len(result.replayed),
            success=result.rebuild_success,
        )
        return result
