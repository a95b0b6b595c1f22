"""ContractApproval and ContractSignature satellite records.

Each Contract carries one approval and one signature per party role.  Their
rows are created pending with the Contract and settled in bulk when the
Contract reaches a terminal status; individual rows can also be approved,
signed or rejected one at a time.
"""

from __future__ import annotations

from typing import Any

import structlog

from tradedesk.clock import Clock, now_ms
from tradedesk.domain.errors import RecordNotFoundError
from tradedesk.domain.models import Contract, ContractApproval, ContractSignature
from tradedesk.domain.types import (
    ApprovalState,
    ContractStatus,
    EntityType,
    PartyRole,
    SignatureState,
)
from tradedesk.store.records import RecordStore

logger = structlog.get_logger()

DEFAULT_SIGNING_METHOD = "Manual"


def _parties(contract: Contract) -> list[tuple[PartyRole, str]]:
    parties = [(PartyRole.OWNER, contract.owner_id), (PartyRole.CHARTERER, contract.charterer_id)]
    return [(role, company_id) for role, company_id in parties if company_id]


class ContractWorkflow:
    """Create, settle and summarize a Contract's approvals and signatures.

    Args:
        store: The record store.
        clock: Epoch-millisecond clock.
    """

    def __init__(self, store: RecordStore, clock: Clock = now_ms) -> None:
        self._store = store
        self._clock = clock

    # ------------------------------------------------------------------
    # Creation and bulk settlement
    # ------------------------------------------------------------------

    def create_for_contract(self, contract: Contract) -> list[str]:
        """Create pending approval and signature rows for each party.

        Idempotent: a party role that already has a row is skipped.

        Returns:
            Ids of the rows created by this call.
        """
        now = self._clock()
        created: list[str] = []
        existing_approvals = {a.party_role for a in self.approvals(contract.id)}
        existing_signatures = {s.party_role for s in self.signatures(contract.id)}

        for role, company_id in _parties(contract):
            base = {
                "contract_id": contract.id,
                "party_role": role.value,
                "company_id": company_id,
                "created_at": now,
                "updated_at": now,
            }
            if role not in existing_approvals:
                created.append(
                    self._store.insert(
                        EntityType.CONTRACT_APPROVAL,
                        {**base, "status": ApprovalState.PENDING.value},
                    )
                )
            if role not in existing_signatures:
                created.append(
                    self._store.insert(
                        EntityType.CONTRACT_SIGNATURE,
                        {**base, "status": SignatureState.PENDING.value},
                    )
                )
        return created

    def settle(self, contract_id: str, status: ContractStatus, user_id: str | None = None) -> int:
        """Resolve pending rows after a Contract status change.

        ``final`` approves and signs every pending row; ``rejected`` rejects
        them.  Other statuses leave the rows alone.

        Returns:
            The number of rows changed.
        """
        if status == ContractStatus.FINAL:
            approval_state, signature_state = ApprovalState.APPROVED, SignatureState.SIGNED
        elif status == ContractStatus.REJECTED:
            approval_state, signature_state = ApprovalState.REJECTED, SignatureState.REJECTED
        else:
            return 0

        changed = 0
        for approval in self.approvals(contract_id):
            if approval.status == ApprovalState.PENDING:
                self._set_approval(approval.id, approval_state, user_id, None)
                changed += 1
        for signature in self.signatures(contract_id):
            if signature.status == SignatureState.PENDING:
                self._set_signature(signature.id, signature_state, user_id, DEFAULT_SIGNING_METHOD)
                changed += 1

        if changed:
            logger.info(
                "contract_satellites_settled",
                contract_id=contract_id,
                contract_status=status.value,
                changed=changed,
            )
        return changed

    # ------------------------------------------------------------------
    # Single-row operations
    # ------------------------------------------------------------------

    def approve_contract(
        self, approval_id: str, user_id: str | None = None, notes: str | None = None
    ) -> ContractApproval:
        return self._set_approval(approval_id, ApprovalState.APPROVED, user_id, notes)

    def reject_contract_approval(
        self, approval_id: str, user_id: str | None = None, notes: str | None = None
    ) -> ContractApproval:
        return self._set_approval(approval_id, ApprovalState.REJECTED, user_id, notes)

    def sign_contract(
        self,
        signature_id: str,
        user_id: str | None = None,
        signing_method: str = DEFAULT_SIGNING_METHOD,
    ) -> ContractSignature:
        return self._set_signature(signature_id, SignatureState.SIGNED, user_id, signing_method)

    def reject_contract_signature(
        self, signature_id: str, user_id: str | None = None
    ) -> ContractSignature:
        return self._set_signature(signature_id, SignatureState.REJECTED, user_id, None)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def approvals(self, contract_id: str) -> list[ContractApproval]:
        return [
            ContractApproval.model_validate(body)
            for body in self._store.query_by_index(
                EntityType.CONTRACT_APPROVAL, "by_contract", contract_id
            )
        ]

    def signatures(self, contract_id: str) -> list[ContractSignature]:
        return [
            ContractSignature.model_validate(body)
            for body in self._store.query_by_index(
                EntityType.CONTRACT_SIGNATURE, "by_contract", contract_id
            )
        ]

    def approval_summary(self, contract_id: str) -> dict[str, int]:
        """Count a Contract's approvals by state."""
        states = [a.status for a in self.approvals(contract_id)]
        return {
            "total": len(states),
            "approved": states.count(ApprovalState.APPROVED),
            "pending": states.count(ApprovalState.PENDING),
            "rejected": states.count(ApprovalState.REJECTED),
        }

    def signature_summary(self, contract_id: str) -> dict[str, int]:
        """Count a Contract's signatures by state."""
        states = [s.status for s in self.signatures(contract_id)]
        return {
            "total": len(states),
            "signed": states.count(SignatureState.SIGNED),
            "pending": states.count(SignatureState.PENDING),
            "rejected": states.count(SignatureState.REJECTED),
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _set_approval(
        self,
        approval_id: str,
        state: ApprovalState,
        user_id: str | None,
        notes: str | None,
    ) -> ContractApproval:
        body = self._store.get(EntityType.CONTRACT_APPROVAL, approval_id)
        if body is None:
            raise RecordNotFoundError(EntityType.CONTRACT_APPROVAL.value, approval_id)
        now = self._clock()
        fields: dict[str, Any] = {
            "status": state.value,
            "approved_by": user_id,
            "approved_at": now,
            "updated_at": now,
        }
        if notes is not None:
            fields["notes"] = notes
        self._store.put(EntityType.CONTRACT_APPROVAL, approval_id, fields)
        return ContractApproval.model_validate({**body, **fields})

    def _set_signature(
        self,
        signature_id: str,
        state: SignatureState,
        user_id: str | None,
        signing_method: str | None,
    ) -> ContractSignature:
        body = self._store.get(EntityType.CONTRACT_SIGNATURE, signature_id)
        if body is None:
            raise RecordNotFoundError(EntityType.CONTRACT_SIGNATURE.value, signature_id)
        now = self._clock()
        fields: dict[str, Any] = {
            "status": state.value,
            "signed_by": user_id,
            "signed_at": now,
            "updated_at": now,
        }
        if signing_method is not None:
            fields["signing_method"] = signing_method
        self._store.put(EntityType.CONTRACT_SIGNATURE, signature_id, fields)
        return ContractSignature.model_validate({**body, **fields})
