"""
Boolean comparison rules for /test.

The rule set is chosen by the resolved type of the left operand: strings get
the case-insensitive text rules, numbers the numeric ones. Any other pairing
matches nothing and quietly yields False.
"""

from typing import Any, Optional

from slash.slash_datatypes import InvalidRuleError
from slash.slash_values import is_nan, is_number, js_number, js_string

STRING_RULES = {
    'in': lambda a, b: b in a,
    'nin': lambda a, b: b not in a,
    'eq': lambda a, b: a == b,
    'neq': lambda a, b: a != b,
}

NUMBER_RULES = {
    'not': lambda a, b: a == 0 or is_nan(a),
    'gt': lambda a, b: a > b,
    'gte': lambda a, b: a >= b,
    'lt': lambda a, b: a < b,
    'lte': lambda a, b: a <= b,
    'eq': lambda a, b: a == b,
    'neq': lambda a, b: a != b,
}

RULE_HELP = (
    "gt => a > b, gte => a >= b, lt => a < b, lte => a <= b, eq => a == b, "
    "neq => a != b, not => !a, in (strings) => a includes b, nin (strings) => a not includes b"
)


def evaluate(rule: Optional[str], a: Any, b: Any) -> bool:
    if not rule:
        raise InvalidRuleError("The rule must be specified for the boolean comparison.")

    if isinstance(a, str) and not is_number(b):
        fn = STRING_RULES.get(rule)
        if fn is None:
            raise InvalidRuleError(f"Unknown boolean comparison rule for type string: {rule}", rule)
        return fn(a.lower(), js_string(b).lower())

    if is_number(a):
        fn = NUMBER_RULES.get(rule)
        if fn is None:
            raise InvalidRuleError(f"Unknown boolean comparison rule for type number: {rule}", rule)
        return fn(a, js_number(b))

    return False
