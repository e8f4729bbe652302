"""Deployment state machine - pure transition logic.

Never touches storage. Given the current status and a signal it returns the
target status or a rejection; the lifecycle manager decides what to persist.

    Pending    + start                     -> InProgress
    InProgress + start                     -> InProgress   (re-delivered start)
    InProgress + taskHealthyButIncomplete  -> InProgress
    InProgress + taskAllHealthyAndComplete -> Completed
    InProgress + taskUnhealthyOrTimedOut   -> Failed
    Pending    + taskHealthyButIncomplete  -> rejected, not yet
    Pending    + terminal-targeting signal -> rejected, illegal
    Completed / Failed + anything          -> rejected, terminal
"""

from dataclasses import dataclass
from typing import Dict, Any, Optional, Tuple

from .models import DeploymentStatus, RejectionReason, TransitionSignal

_TRANSITIONS: Dict[Tuple[DeploymentStatus, TransitionSignal], DeploymentStatus] = {
    (DeploymentStatus.PENDING, TransitionSignal.START): DeploymentStatus.IN_PROGRESS,
    (DeploymentStatus.IN_PROGRESS, TransitionSignal.START): DeploymentStatus.IN_PROGRESS,
    (DeploymentStatus.IN_PROGRESS, TransitionSignal.TASKS_IN_PROGRESS): DeploymentStatus.IN_PROGRESS,
    (DeploymentStatus.IN_PROGRESS, TransitionSignal.TASKS_COMPLETE): DeploymentStatus.COMPLETED,
    (DeploymentStatus.IN_PROGRESS, TransitionSignal.TASKS_UNHEALTHY): DeploymentStatus.FAILED,
}

# The status each signal drives towards, used to recognise re-deliveries
SIGNAL_TARGETS: Dict[TransitionSignal, DeploymentStatus] = {
    TransitionSignal.START: DeploymentStatus.IN_PROGRESS,
    TransitionSignal.TASKS_IN_PROGRESS: DeploymentStatus.IN_PROGRESS,
    TransitionSignal.TASKS_COMPLETE: DeploymentStatus.COMPLETED,
    TransitionSignal.TASKS_UNHEALTHY: DeploymentStatus.FAILED,
}


@dataclass(frozen=True)
class TransitionResult:
    """Outcome of evaluating one signal against one status."""
    current_status: DeploymentStatus
    signal: TransitionSignal
    new_status: Optional[DeploymentStatus] = None
    reason: Optional[RejectionReason] = None

    @property
    def rejected(self) -> bool:
        return self.new_status is None

    @property
    def changed(self) -> bool:
        return not self.rejected and self.new_status != self.current_status

    @property
    def is_defect(self) -> bool:
        return self.reason is RejectionReason.ILLEGAL

    @property
    def already_applied(self) -> bool:
        """Terminal rejection of the very signal that produced the current status."""
        return (self.reason is RejectionReason.TERMINAL
                and SIGNAL_TARGETS[self.signal] == self.current_status)

    @property
    def resulting_status(self) -> DeploymentStatus:
        """Status after the signal: the target, or the unchanged current status."""
        return self.current_status if self.rejected else self.new_status

    def to_dict(self) -> Dict[str, Any]:
        return {
            "current_status": self.current_status.value,
            "signal": self.signal.value,
            "new_status": self.new_status.value if self.new_status else None,
            "rejected": self.rejected,
            "reason": self.reason.value if self.reason else None,
        }


def transition(current_status: DeploymentStatus, signal: TransitionSignal) -> TransitionResult:
    """Evaluate ``signal`` against ``current_status``."""
    current_status = DeploymentStatus(current_status)
    signal = TransitionSignal(signal)

    if current_status.is_terminal:
        return TransitionResult(current_status, signal, reason=RejectionReason.TERMINAL)

    target = _TRANSITIONS.get((current_status, signal))
    if target is not None:
        return TransitionResult(current_status, signal, new_status=target)

    # Only Pending reaches here
    if SIGNAL_TARGETS[signal].is_terminal:
        return TransitionResult(current_status, signal, reason=RejectionReason.ILLEGAL)
    return TransitionResult(current_status, signal, reason=RejectionReason.NOT_YET)
