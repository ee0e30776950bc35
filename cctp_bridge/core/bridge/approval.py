"""
Approval stage: make sure TokenMessenger may pull the burn amount.

Split into a read-only ``check`` and a write ``apply`` so the decision can be
inspected (and tested) without submitting anything. ``apply`` waits for the
approval receipt, so the burn is never submitted alongside it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from ...providers.base import ChainGateway
from .constants import SupportedChain, chain_config
from .errors import ApprovalFailedError


@dataclass
class ApprovalPlan:
    chain: SupportedChain
    token: str
    owner: str
    spender: str
    current_allowance: int
    required: int

    @property
    def needs_approval(self) -> bool:
        return self.current_allowance < self.required

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chain": self.chain.value,
            "token": self.token,
            "owner": self.owner,
            "spender": self.spender,
            "currentAllowance": str(self.current_allowance),
            "required": str(self.required),
            "needsApproval": self.needs_approval,
        }


class ApprovalStage:
    def __init__(self, gateway: ChainGateway, logger: Optional[logging.Logger] = None) -> None:
        self.gateway = gateway
        self.logger = logger or logging.getLogger(__name__)

    async def check(self, chain: SupportedChain, owner: str, amount: int) -> ApprovalPlan:
        config = chain_config(chain)
        allowance = await self.gateway.get_allowance(
            chain,
            config["usdc"],
            owner,
            config["token_messenger"],
        )
        return ApprovalPlan(
            chain=chain,
            token=config["usdc"],
            owner=owner,
            spender=config["token_messenger"],
            current_allowance=allowance,
            required=amount,
        )

    async def apply(self, plan: ApprovalPlan) -> Optional[str]:
        """Submit one approval for exactly ``plan.required`` when needed."""
        if not plan.needs_approval:
            return None

        self.logger.info(
            "Approving %s USDC for TokenMessenger on %s (allowance=%s)",
            plan.required,
            plan.chain.value,
            plan.current_allowance,
        )
        tx_hash = await self.gateway.approve(plan.chain, plan.token, plan.spender, plan.required)
        receipt = await self.gateway.wait_for_receipt(plan.chain, tx_hash)
        if not receipt.success:
            raise ApprovalFailedError(tx_hash=tx_hash)
        return tx_hash

    async def ensure(self, chain: SupportedChain, owner: str, amount: int) -> Optional[str]:
        plan = await self.check(chain, owner, amount)
        if not plan.needs_approval:
            self.logger.debug("Allowance %s already covers %s", plan.current_allowance, amount)
        return await self.apply(plan)
