"""Status transition rules for proposals, distributed tasks and demands.

Proposals and tasks are one-way: once confirmed/completed they never go back.
Demands move forward through signature and end in concluida or cancelada.
"""

from enum import Enum

from conformidade_platform.domain.enums import DemandStatus, ProposalStatus, TaskStatus


class InvalidTransitionError(Exception):
    """Raised when a status transition is not allowed."""

    def __init__(self, current_status: Enum, target_status: Enum, reason: str):
        self.current_status = current_status
        self.target_status = target_status
        self.reason = reason
        super().__init__(
            f"Invalid transition from {current_status.value} to {target_status.value}: {reason}"
        )


P = ProposalStatus
T = TaskStatus
D = DemandStatus

PROPOSAL_TRANSITIONS: dict[ProposalStatus, set[ProposalStatus]] = {
    P.PENDENTE: {P.CONFIRMADO},
    P.CONFIRMADO: set(),
}

TASK_TRANSITIONS: dict[TaskStatus, set[TaskStatus]] = {
    T.EM_ANDAMENTO: {T.CONCLUIDA},
    T.CONCLUIDA: set(),
}

DEMAND_TRANSITIONS: dict[DemandStatus, set[DemandStatus]] = {
    D.PENDENTE: {D.AGUARDANDO_ASSINATURA, D.ASSINADO, D.CONCLUIDA, D.CANCELADA},
    D.AGUARDANDO_ASSINATURA: {D.ASSINADO, D.CONCLUIDA, D.CANCELADA},
    D.ASSINADO: {D.CONCLUIDA, D.CANCELADA},
    D.CONCLUIDA: set(),
    D.CANCELADA: set(),
}

_MAPS: dict[type, dict] = {
    ProposalStatus: PROPOSAL_TRANSITIONS,
    TaskStatus: TASK_TRANSITIONS,
    DemandStatus: DEMAND_TRANSITIONS,
}


def validate_transition(current_status: Enum, target_status: Enum) -> bool:
    """Return True if the transition is valid. Raise InvalidTransitionError if not."""
    transitions = _MAPS[type(current_status)]
    if target_status in transitions.get(current_status, set()):
        return True
    if not transitions.get(current_status):
        reason = f"{current_status.value} is terminal"
    else:
        allowed = ", ".join(sorted(s.value for s in transitions[current_status]))
        reason = f"allowed targets: {allowed}"
    raise InvalidTransitionError(current_status, target_status, reason)


def is_terminal(status: Enum) -> bool:
    return not _MAPS[type(status)].get(status)
