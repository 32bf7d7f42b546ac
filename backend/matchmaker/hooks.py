"""Post-match hooks."""

import logging
from typing import Awaitable, Callable

from matchmaker.config import WithdrawConfig
from matchmaker.models import Agent

logger = logging.getLogger(__name__)

# (agent, amount) -> transaction reference
Transfer = Callable[[Agent, float], Awaitable[str]]


class ProfitTargetWithdrawal:
    """Sweep winnings to the owner once an agent's profit reaches its target.

    Uses the agent's ``profit_target`` and ``withdraw_threshold`` strategy
    params. Profit is wallet balance minus the initial deposit; the amount
    withdrawn is capped by the threshold and leaves ``gas_reserve`` behind.
    The transfer itself is injected.
    """

    def __init__(self, transfer: Transfer, config: WithdrawConfig | None = None):
        self.transfer = transfer
        self.config = config or WithdrawConfig()

    async def __call__(self, agent: Agent) -> float:
        """Returns the amount withdrawn (0 when skipped)."""
        params = agent.strategy_params
        if params.profit_target <= 0 or params.withdraw_threshold <= 0:
            logger.debug(
                f"[AutoWithdraw] {agent.name}: no profit_target({params.profit_target}) "
                f"or withdraw_threshold({params.withdraw_threshold})"
            )
            return 0.0
        if not agent.owner_address or agent.stats.balance is None:
            logger.info(f"[AutoWithdraw] Skipped {agent.id}: missing owner or wallet balance")
            return 0.0

        balance = agent.stats.balance
        profit = balance - agent.financial.initial_deposit
        logger.info(
            f"[AutoWithdraw] {agent.name}: balance={balance:g}, "
            f"initial={agent.financial.initial_deposit:g}, profit={profit:.4f}, "
            f"target={params.profit_target:g}"
        )
        if profit < params.profit_target:
            return 0.0

        amount = min(params.withdraw_threshold, balance - self.config.gas_reserve)
        if amount <= 0:
            logger.info(f"[AutoWithdraw] {agent.name}: insufficient balance after gas reserve")
            return 0.0

        tx_ref = await self.transfer(agent, amount)
        agent.stats.balance = balance - amount
        agent.financial.total_withdrawn += amount
        logger.info(f"[AutoWithdraw] {agent.name}: {amount:.4f} MON -> {agent.owner_address} (tx: {tx_ref})")
        return amount


async def paper_transfer(agent: Agent, amount: float) -> str:
    """Ledger-only transfer used when no wallet connection is configured."""
    return f"paper_{agent.id}_{amount:.6f}"
