"""Target-linking rule package."""

from savings_ledger.linking.rule import Reversal, TargetLinkingRule

__all__ = ["Reversal", "TargetLinkingRule"]
