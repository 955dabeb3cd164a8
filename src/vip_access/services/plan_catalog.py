from __future__ import annotations

from typing import Dict, Iterable, List, Mapping, Optional

from ..models.plan import Currency, Plan


class PlanCatalog:
    """
    Static plan catalog bound to the configured payout wallets.

    Currencies without a wallet are dropped from every plan here, so callers
    never see a price they cannot be paid in. Instances are not mutated after
    construction.
    """

    def __init__(self, plans: Iterable[Plan], wallets: Mapping[Currency, str]) -> None:
        self._wallets: Dict[Currency, str] = {c: a for c, a in wallets.items() if a}
        self._plans: Dict[str, Plan] = {}
        for plan in plans:
            prices = {c: p for c, p in plan.prices.items() if c in self._wallets}
            self._plans[plan.id] = plan.model_copy(update={"prices": prices})

    def get_plan(self, plan_id: str) -> Optional[Plan]:
        return self._plans.get(plan_id)

    def list_plans(self) -> List[Plan]:
        return list(self._plans.values())

    def currencies(self) -> List[Currency]:
        return [c for c in Currency if c in self._wallets]

    def price_of(self, plan_id: str, currency: Currency) -> Optional[float]:
        """Price of `plan_id` in `currency`; None when unknown plan or no wallet."""
        plan = self._plans.get(plan_id)
        if plan is None:
            return None
        return plan.prices.get(currency)

    def wallet_for(self, currency: Currency) -> Optional[str]:
        return self._wallets.get(currency)
