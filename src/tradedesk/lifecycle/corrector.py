"""Status consistency corrector for a Negotiation and its Contract.

The corrector is a pure function over two snapshots.  It walks ``RULES`` once,
in order; every rule that matches rewrites fields on one of the two records,
and later rules see the rewritten snapshot.  Nothing here touches storage:
callers persist ``Reconciliation.deltas()`` one record at a time.

Rules (in evaluation order):

1. A fixed negotiation forces its contract to final / Signed.
2. A final contract forces its negotiation to fixed, unless the negotiation
   has failed (withdrawn, firm offer expired, subs failed), which rule 3
   handles instead.
3. A failed negotiation demotes a final contract to draft.
4. A contract cannot hang off an indicative negotiation; the negotiation is
   promoted to firm.

A fixed negotiation with no contract cannot be repaired here and is reported
as an integrity warning.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field

from tradedesk.domain.models import Contract, Correction, IntegrityWarning, Negotiation
from tradedesk.domain.types import (
    CONTRACT_BEARING_STATUSES,
    FAILED_STATUSES,
    INDICATIVE_STATUSES,
    ApprovalStatus,
    ContractStatus,
    EntityType,
    NegotiationStatus,
)

Predicate = Callable[[Negotiation, Contract | None], bool]


@dataclass(frozen=True)
class CorrectionRule:
    """One row of the correction table.

    Attributes:
        name: Stable identifier, used in logs, metrics and reports.
        target: Which of the two records the rule rewrites.
        applies: Predicate over the current (negotiation, contract) pair.
        updates: Field values written to the target when the rule applies.
        message: Human explanation of the repair.
    """

    name: str
    target: EntityType
    applies: Predicate
    updates: Mapping[str, str]
    message: str


@dataclass(frozen=True)
class IntegrityCheck:
    """A detectable inconsistency with no automatic repair."""

    name: str
    applies: Predicate
    message: str


RULES: tuple[CorrectionRule, ...] = (
    CorrectionRule(
        name="fixed_negotiation_requires_final_contract",
        target=EntityType.CONTRACT,
        applies=lambda n, c: (
            n.status == NegotiationStatus.FIXED
            and c is not None
            and c.status != ContractStatus.FINAL
        ),
        updates={
            "status": ContractStatus.FINAL.value,
            "approval_status": ApprovalStatus.SIGNED.value,
        },
        message="Negotiation is fixed; contract upgraded to final",
    ),
    CorrectionRule(
        name="final_contract_requires_firm_negotiation",
        target=EntityType.NEGOTIATION,
        applies=lambda n, c: (
            c is not None
            and c.status == ContractStatus.FINAL
            and n.status not in CONTRACT_BEARING_STATUSES
            and n.status not in FAILED_STATUSES
        ),
        updates={"status": NegotiationStatus.FIXED.value},
        message="Contract is final; negotiation upgraded to fixed",
    ),
    CorrectionRule(
        name="failed_negotiation_demotes_final_contract",
        target=EntityType.CONTRACT,
        applies=lambda n, c: (
            c is not None
            and n.status in FAILED_STATUSES
            and c.status == ContractStatus.FINAL
        ),
        updates={"status": ContractStatus.DRAFT.value},
        message="Negotiation failed; final contract downgraded to draft",
    ),
    CorrectionRule(
        name="contract_requires_non_indicative_negotiation",
        target=EntityType.NEGOTIATION,
        applies=lambda n, c: c is not None and n.status in INDICATIVE_STATUSES,
        updates={"status": NegotiationStatus.FIRM.value},
        message="Contract exists for an indicative negotiation; negotiation upgraded to firm",
    ),
)

CHECKS: tuple[IntegrityCheck, ...] = (
    IntegrityCheck(
        name="fixed_negotiation_without_contract",
        applies=lambda n, c: n.status == NegotiationStatus.FIXED and c is None,
        message="Negotiation is fixed but has no contract",
    ),
)


@dataclass(frozen=True)
class Reconciliation:
    """Result of one corrector pass.

    Attributes:
        negotiation: The negotiation after all corrections.
        contract: The contract after all corrections, or ``None``.
        corrections: One entry per rule that fired, in rule order.
        warnings: Integrity problems detected but not repaired.
    """

    negotiation: Negotiation
    contract: Contract | None
    corrections: tuple[Correction, ...] = field(default=())
    warnings: tuple[IntegrityWarning, ...] = field(default=())

    @property
    def changed(self) -> bool:
        return bool(self.corrections)

    def deltas(self) -> dict[tuple[EntityType, str], dict[str, str]]:
        """Merge corrections into one partial write per record.

        Returns:
            ``{(entity_type, entity_id): {field: value}}`` with later rules
            overriding earlier ones on the same field.
        """
        merged: dict[tuple[EntityType, str], dict[str, str]] = {}
        for correction in self.corrections:
            key = (correction.entity_type, correction.entity_id)
            merged.setdefault(key, {}).update(correction.changes)
        return merged


def _field_value(record: Negotiation | Contract, name: str) -> str | None:
    value = getattr(record, name)
    return None if value is None else str(value)


def reconcile(
    negotiation: Negotiation,
    contract: Contract | None,
    rules: tuple[CorrectionRule, ...] = RULES,
    checks: tuple[IntegrityCheck, ...] = CHECKS,
) -> Reconciliation:
    """Apply the correction table once to a negotiation/contract pair.

    Integrity checks run against the input snapshot, then each rule runs in
    order against the progressively corrected snapshot.  A second call on the
    returned snapshots reports no corrections.

    Args:
        negotiation: The negotiation snapshot.
        contract: Its contract snapshot, or ``None`` if it has none.
        rules: The correction table.
        checks: Warning-only checks.

    Returns:
        The corrected snapshots plus what was changed and what was detected.
    """
    warnings = tuple(
        IntegrityWarning(
            rule=check.name,
            entity_type=EntityType.NEGOTIATION,
            entity_id=negotiation.id,
            message=check.message,
        )
        for check in checks
        if check.applies(negotiation, contract)
    )

    corrections: list[Correction] = []
    for rule in rules:
        if not rule.applies(negotiation, contract):
            continue

        record: Negotiation | Contract | None = (
            contract if rule.target == EntityType.CONTRACT else negotiation
        )
        if record is None:
            continue

        changes = {
            name: value
            for name, value in rule.updates.items()
            if _field_value(record, name) != value
        }
        if not changes:
            continue

        corrections.append(
            Correction(
                rule=rule.name,
                entity_type=rule.target,
                entity_id=record.id,
                changes=changes,
                previous={name: _field_value(record, name) for name in changes},
                message=rule.message,
            )
        )

        updated = record.model_validate({**record.model_dump(), **changes})
        if rule.target == EntityType.CONTRACT:
            contract = updated  # type: ignore[assignment]
        else:
            negotiation = updated  # type: ignore[assignment]

    return Reconciliation(
        negotiation=negotiation,
        contract=contract,
        corrections=tuple(corrections),
        warnings=warnings,
    )
