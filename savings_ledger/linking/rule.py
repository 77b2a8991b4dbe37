"""
Target-Linking Rule

Keeps a savings target's saved_amount equal to the sum of the income
transactions linked to it.

- On create: linked income adds its amount to the target.
- On delete: linked income subtracts its amount, floored at zero.
- Expenses never move a target, even when they carry a target_id.

The rule works on integer minor units and never touches storage itself.
The store calls it inside the same unit of work as the row write, so the
transaction row and the target's saved_amount change together.
"""

from dataclasses import dataclass
from typing import Optional

import structlog

from savings_ledger.models.ledger import TransactionType


logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Reversal:
    """Result of reversing a linked income on delete."""
    new_saved_units: int
    reversed_units: int
    shortfall_units: int

    @property
    def is_fault(self) -> bool:
        return self.shortfall_units > 0


class TargetLinkingRule:
    """
    Decides how a transaction write moves its target's saved amount.
    """

    @staticmethod
    def is_linked(transaction_type: TransactionType, target_id: Optional[int]) -> bool:
        return transaction_type == TransactionType.INCOME and target_id is not None

    def contribution(
        self,
        transaction_type: TransactionType,
        target_id: Optional[int],
        amount_units: int,
    ) -> int:
        """Minor units to add to the target when the transaction is created."""
        if not self.is_linked(transaction_type, target_id):
            return 0
        return amount_units

    def reverse(
        self,
        target_id: int,
        transaction_id: int,
        saved_units: int,
        amount_units: int,
    ) -> Reversal:
        """
        Undo a linked income's contribution.

        If the target holds less than the amount being reversed, the saved
        amount was adjusted out from under the ledger. Clamp at zero, log it,
        and let the delete go through.
        """
        remaining = saved_units - amount_units
        if remaining >= 0:
            return Reversal(
                new_saved_units=remaining,
                reversed_units=amount_units,
                shortfall_units=0,
            )

        logger.warning(
            "saved_amount_underflow_clamped",
            target_id=target_id,
            transaction_id=transaction_id,
            saved_units=saved_units,
            amount_units=amount_units,
            shortfall_units=-remaining,
        )
        return Reversal(
            new_saved_units=0,
            reversed_units=saved_units,
            shortfall_units=-remaining,
        )
