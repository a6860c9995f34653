"""
Progress billing allocator
Project: BuildLedger (contractor billing)

Splits a document total into named phases by percentage. Percentages
are the source of truth; amounts are always re-derived from the
current total and never drift on their own.
"""

import datetime
import uuid
from decimal import Decimal
from typing import Optional, Sequence

from buildledger.core.exceptions import NotFoundError, StateTransitionError
from buildledger.schemas.document import PhaseStatus, ProgressPhase, ValidationWarning
from buildledger.services.money import HUNDRED, ZERO, percentage_of, round2, to_decimal

# Allowed phase steps
_NEXT_STATUS = {
    PhaseStatus.PENDING: PhaseStatus.BILLED,
    PhaseStatus.BILLED: PhaseStatus.PAID,
}


def phase_amount(total: Decimal, pct: Decimal) -> Decimal:
    """round2(total * pct / 100)."""
    return round2(percentage_of(total, pct))


def total_percentage(phases: Sequence[ProgressPhase]) -> Decimal:
    return sum((to_decimal(p.percentage) for p in phases), ZERO)


def can_add_phase(phases: Sequence[ProgressPhase], new_pct: Decimal) -> bool:
    """True when the existing percentages plus the new one stay within 100%."""
    return total_percentage(phases) + to_decimal(new_pct) <= HUNDRED


def phase_warnings(phases: Sequence[ProgressPhase]) -> list[ValidationWarning]:
    """
    Findings about the phase percentages.

    Nothing is clamped: a plan under 100% is still being built, a plan
    over 100% must be fixed by the user.
    """
    if not phases:
        return []

    total_pct = total_percentage(phases)
    if total_pct > HUNDRED:
        return [
            ValidationWarning(
                code="PHASES_OVER_100_PERCENT",
                message=f"Progress phases total {total_pct}%, more than 100%",
            )
        ]
    if total_pct < HUNDRED:
        return [
            ValidationWarning(
                code="PHASES_UNDER_100_PERCENT",
                message=f"Progress phases total {total_pct}%, {HUNDRED - total_pct}% left to allocate",
            )
        ]
    return []


def recompute_phases(phases: Sequence[ProgressPhase], total: Decimal) -> list[ProgressPhase]:
    """
    Re-derive every phase amount from its percentage.

    Amounts are assigned with cumulative rounding in list order: each
    phase gets round2(total * cumulative% / 100) minus what the previous
    phases already got. The amounts therefore always add up to
    round2(total * sum(percentages) / 100) to the cent, and each one is
    within a cent of phase_amount(total, percentage).

    Args:
        phases: Existing phases
        total: Current document total

    Returns:
        list[ProgressPhase]: Copies with fresh amounts, percentages unchanged
    """
    result = []
    cumulative_pct = ZERO
    allocated = ZERO
    for phase in phases:
        cumulative_pct += to_decimal(phase.percentage)
        target = round2(percentage_of(total, cumulative_pct))
        result.append(phase.model_copy(update={"amount": target - allocated}))
        allocated = target
    return result


def progress_billing_total(phases: Sequence[ProgressPhase]) -> Decimal:
    """Sum of the phase amounts."""
    return round2(sum((to_decimal(p.amount) for p in phases), ZERO))


def add_phase(
    phases: Sequence[ProgressPhase],
    phase: ProgressPhase,
    total: Decimal,
) -> list[ProgressPhase]:
    """Append a phase and re-derive the amounts. Callers check can_add_phase first."""
    return recompute_phases([*phases, phase], total)


def remove_phase(
    phases: Sequence[ProgressPhase],
    phase_id: uuid.UUID,
    total: Decimal,
) -> list[ProgressPhase]:
    remaining = [p for p in phases if p.id != phase_id]
    if len(remaining) == len(phases):
        raise NotFoundError(f"Progress phase {phase_id} not found")
    return recompute_phases(remaining, total)


def _advance_phase(
    phases: Sequence[ProgressPhase],
    phase_id: uuid.UUID,
    target: PhaseStatus,
    on: datetime.date,
) -> list[ProgressPhase]:
    result = []
    found = False
    for phase in phases:
        if phase.id != phase_id:
            result.append(phase)
            continue

        found = True
        if _NEXT_STATUS.get(phase.status) != target:
            raise StateTransitionError(
                f"Phase '{phase.phase}' cannot go from {phase.status.value} to {target.value}",
                extra={"current": phase.status.value, "requested": target.value},
            )
        date_field = "billed_date" if target == PhaseStatus.BILLED else "paid_date"
        result.append(phase.model_copy(update={"status": target, date_field: on}))

    if not found:
        raise NotFoundError(f"Progress phase {phase_id} not found")
    return result


def mark_phase_billed(
    phases: Sequence[ProgressPhase],
    phase_id: uuid.UUID,
    on: Optional[datetime.date] = None,
) -> list[ProgressPhase]:
    """pending -> billed, stamping the billed date."""
    return _advance_phase(phases, phase_id, PhaseStatus.BILLED, on or datetime.date.today())


def mark_phase_paid(
    phases: Sequence[ProgressPhase],
    phase_id: uuid.UUID,
    on: Optional[datetime.date] = None,
) -> list[ProgressPhase]:
    """billed -> paid, stamping the paid date."""
    return _advance_phase(phases, phase_id, PhaseStatus.PAID, on or datetime.date.today())
