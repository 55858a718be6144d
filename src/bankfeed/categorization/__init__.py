"""Transaction categorization for imported bank transactions.

Categorization is rule-based and runs locally: user-defined matching rules
assign a property, a ledger type and a category to each imported
transaction. Evaluation is a pure function so it can be re-run whenever
the rules change.
"""

from .categories import CATEGORIES_BY_TYPE, to_ledger_type, validate_type_category
from .engine import RuleMatch, evaluate_rules

__all__ = [
    "CATEGORIES_BY_TYPE",
    "RuleMatch",
    "evaluate_rules",
    "to_ledger_type",
    "validate_type_category",
]
