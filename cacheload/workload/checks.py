"""
Response Validator

Named checks evaluated against each RPC response. A failed check is a
recorded result, never an exception: the iteration carries on.

A check may require other checks of the same set. When a required check
did not pass, the dependent check is skipped instead of evaluated.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, List, Optional, Tuple

from ..protocol.messages import Response
from .keys import decode_value

Predicate = Callable[[Optional[Response]], bool]


class CheckOutcome(Enum):
    """Outcome of a single check."""
    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class Check:
    """
    A named assertion over a response.

    Attributes:
        name: Name the outcome is reported under
        predicate: Returns True when the response satisfies the check
        requires: Names of checks that must pass before this one runs
    """
    name: str
    predicate: Predicate
    requires: Tuple[str, ...] = ()


@dataclass(frozen=True)
class CheckResult:
    """Outcome of one check against one response."""
    name: str
    outcome: CheckOutcome
    detail: str = ""

    @property
    def passed(self) -> bool:
        return self.outcome is CheckOutcome.PASSED


def evaluate(response: Optional[Response], checks: Iterable[Check]) -> List[CheckResult]:
    """
    Evaluate checks in order against a response.

    A predicate that raises (absent or malformed response, undecodable
    value) counts as a failure and the error is kept in the detail.

    Args:
        response: The RPC response, or None if there is none to check
        checks: Checks to evaluate, dependencies first

    Returns:
        One CheckResult per check, in the given order
    """
    results: List[CheckResult] = []
    passed = set()

    for check in checks:
        missing = [name for name in check.requires if name not in passed]
        if missing:
            results.append(CheckResult(
                name=check.name,
                outcome=CheckOutcome.SKIPPED,
                detail=f"requires {', '.join(missing)}",
            ))
            continue

        detail = ""
        try:
            ok = bool(check.predicate(response))
        except Exception as e:
            ok = False
            detail = f"{type(e).__name__}: {e}"

        if ok:
            passed.add(check.name)
        results.append(CheckResult(
            name=check.name,
            outcome=CheckOutcome.PASSED if ok else CheckOutcome.FAILED,
            detail=detail,
        ))

    return results


def status_is_ok(response: Optional[Response]) -> bool:
    return response is not None and response.ok


def value_found(response: Optional[Response]) -> bool:
    return (
        response is not None
        and response.message is not None
        and response.message.get("found") is True
    )


def value_matches(key: str) -> Predicate:
    """Predicate: the returned value decodes back to key."""
    def predicate(response: Optional[Response]) -> bool:
        return decode_value(response.message["value"]) == key
    return predicate


SET_CHECKS: Tuple[Check, ...] = (
    Check("set status is OK", status_is_ok),
)

DELETE_CHECKS: Tuple[Check, ...] = (
    Check("delete status is OK", status_is_ok),
)


def get_checks(key: str) -> Tuple[Check, ...]:
    """Checks for the Get response of key."""
    return (
        Check("get status is OK", status_is_ok),
        Check("value was found", value_found),
        Check("value matches", value_matches(key), requires=("value was found",)),
    )
