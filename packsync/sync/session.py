"""Sync session state, progress events, cancellation and results.

State machines:
    idle -> fetching_manifest -> diffing -> fetching_config -> installing
         -> {completed | failed | cancelled}
    idle -> publishing -> {completed | failed}

A session reaches exactly one terminal phase. Progress percentages are
monotonically non-decreasing; failed and cancelled repeat the last value.
"""

from __future__ import annotations

import time
import uuid as uuid_lib
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from pydantic import BaseModel, ConfigDict

from packsync.core.constants import Progress, UploadProgress
from packsync.core.exceptions import ErrorDetails
from packsync.schemas.diff import UpdatePreview


# =============================================================================
# Enums
# =============================================================================

class SyncPhase(str, Enum):
    """Phase of a sync session."""

    IDLE = "idle"
    FETCHING_MANIFEST = "fetching_manifest"
    DIFFING = "diffing"
    FETCHING_CONFIG = "fetching_config"
    INSTALLING = "installing"
    PUBLISHING = "publishing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_PHASES


TERMINAL_PHASES: frozenset[SyncPhase] = frozenset(
    {SyncPhase.COMPLETED, SyncPhase.FAILED, SyncPhase.CANCELLED}
)

# Legal transitions of the state machine
_TRANSITIONS: dict[SyncPhase, frozenset[SyncPhase]] = {
    SyncPhase.IDLE: frozenset({SyncPhase.FETCHING_MANIFEST, SyncPhase.PUBLISHING}),
    SyncPhase.FETCHING_MANIFEST: frozenset({SyncPhase.DIFFING, SyncPhase.COMPLETED}),
    SyncPhase.DIFFING: frozenset({SyncPhase.FETCHING_CONFIG}),
    SyncPhase.FETCHING_CONFIG: frozenset({SyncPhase.INSTALLING, SyncPhase.COMPLETED}),
    SyncPhase.INSTALLING: frozenset({SyncPhase.COMPLETED}),
    SyncPhase.PUBLISHING: frozenset({SyncPhase.COMPLETED}),
}

# Percentage reported on entering each non-terminal phase
PHASE_PROGRESS: dict[SyncPhase, int] = {
    SyncPhase.FETCHING_MANIFEST: Progress.FETCHING_MANIFEST,
    SyncPhase.DIFFING: Progress.DIFFING,
    SyncPhase.FETCHING_CONFIG: Progress.FETCHING_CONFIG,
    SyncPhase.INSTALLING: Progress.INSTALLING,
    SyncPhase.PUBLISHING: UploadProgress.PREPARING,
    SyncPhase.COMPLETED: Progress.COMPLETED,
}


# =============================================================================
# Progress and cancellation
# =============================================================================

@dataclass(frozen=True)
class SyncProgress:
    """Progress event emitted on every phase transition."""

    session_id: str
    phase: SyncPhase
    percent: int
    message: str = ""


ProgressCallback = Callable[[SyncProgress], None]


class CancellationToken:
    """Cooperative cancellation flag checked at phase boundaries."""

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


# =============================================================================
# Session
# =============================================================================

@dataclass
class SyncSession:
    """Mutable state of one check, update or publish run.

    Attributes:
        repo: Remote repository, "owner/name"
        uuid: Bundle identifier within the repository
        session_id: Unique id of this run
        phase: Current phase
        progress_percent: Last reported percentage
        cancelled: Whether cancellation was observed
        phases: Every phase entered, in order
    """

    repo: str
    uuid: str
    session_id: str = field(default_factory=lambda: uuid_lib.uuid4().hex)
    phase: SyncPhase = SyncPhase.IDLE
    progress_percent: int = 0
    cancelled: bool = False
    phases: list[SyncPhase] = field(default_factory=list)
    started_at: float = field(default_factory=time.monotonic)

    @property
    def cache_key(self) -> str:
        """Bundle cache key for this session's repo and uuid."""
        return f"{self.repo}-{self.uuid}"

    @property
    def elapsed_ms(self) -> float:
        return (time.monotonic() - self.started_at) * 1000

    def advance(
        self,
        phase: SyncPhase,
        percent: int | None = None,
        message: str = "",
    ) -> SyncProgress:
        """Move to ``phase`` and return the progress event to report.

        Terminal failure phases keep the last percentage.

        Raises:
            RuntimeError: If the transition is not allowed by the state machine
        """
        if self.phase.is_terminal:
            raise RuntimeError(f"Session {self.session_id} already ended in '{self.phase.value}'")
        if phase not in (SyncPhase.FAILED, SyncPhase.CANCELLED) and phase not in _TRANSITIONS.get(self.phase, frozenset()):
            raise RuntimeError(f"Illegal transition '{self.phase.value}' -> '{phase.value}'")

        if percent is None:
            percent = PHASE_PROGRESS.get(phase, self.progress_percent)
        self.progress_percent = max(self.progress_percent, int(percent))
        self.phase = phase
        self.phases.append(phase)
        if phase is SyncPhase.CANCELLED:
            self.cancelled = True
        return SyncProgress(
            session_id=self.session_id,
            phase=phase,
            percent=self.progress_percent,
            message=message,
        )


# =============================================================================
# Result
# =============================================================================

class SyncResult(BaseModel):
    """Terminal outcome of a session."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    session_id: str
    state: SyncPhase
    preview: UpdatePreview | None = None
    error: BaseException | None = None
    error_details: ErrorDetails | None = None
    from_cache: bool = False
    duration_ms: float = 0.0
    message: str = ""

    @property
    def succeeded(self) -> bool:
        return self.state is SyncPhase.COMPLETED
