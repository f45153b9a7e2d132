import logging
import re
from typing import Any, Dict, Iterable, List, Optional, Sequence

from .models import ExpectedOutcome, OutcomeKind, SettledState, Verdict

logger = logging.getLogger(__name__)

_PRICE = re.compile(r"\$?\s*(\d{1,3}(?:,\d{3})+|\d+)(?:[.,](\d{1,2})(?!\d))?")


def normalize(text: Optional[str]) -> str:
    """Collapse whitespace and fold case for wording-tolerant comparison"""
    return " ".join((text or "").split()).casefold()


def parse_price(text: str) -> Optional[float]:
    match = _PRICE.search(text or "")
    if not match:
        return None
    whole, cents = match.groups()
    # Commas followed by three digits group thousands, otherwise they mark cents
    return float(f"{whole.replace(',', '')}.{cents or 0}")


def price_order(prices: Sequence[float]) -> str:
    """Return ``asc``, ``desc`` or ``unordered`` for a list of prices"""
    pairs = list(zip(prices, prices[1:]))
    if all(a <= b for a, b in pairs):
        return "asc"
    if all(a >= b for a, b in pairs):
        return "desc"
    return "unordered"


def cookie_problems(
        cookies: Iterable[Dict[str, Any]],
        names: Optional[Sequence[str]] = None,
        require_secure: bool = True
) -> List[str]:
    """Basic attribute checks for session cookies (secure, httpOnly, sameSite).

    ``names`` are fragments; a cookie is checked when its name contains one.
    """
    problems = []
    for cookie in cookies:
        name = cookie.get("name") or ""
        if names and not any(fragment in name for fragment in names):
            continue
        if require_secure and not cookie.get("secure"):
            problems.append(f"cookie {name} is not marked secure")
        if not cookie.get("httpOnly"):
            problems.append(f"cookie {name} is not httpOnly")
        if cookie.get("sameSite") not in ("Lax", "Strict", "None"):
            problems.append(f"cookie {name} has sameSite={cookie.get('sameSite')!r}")
    return problems


class OutcomeVerifier:
    """Reduces a settled page state to a verdict against expectations.

    Mismatches never raise here; the verdict carries them and the calling
    test decides whether that is a failure.
    """

    def verify(self, settled: SettledState, expected: ExpectedOutcome) -> Verdict:
        mismatches = self._mismatches(settled, expected)
        extra = self._result_detail(settled) if expected.checks_results else {}
        verdict = self._verdict(settled, mismatches, expected=[expected], **extra)
        if not verdict.passed:
            logger.info(
                "Scenario %s (%s) did not match %s: %s",
                settled.scenario_kind, settled.email, expected.kind.value, "; ".join(mismatches)
            )
        return verdict

    def verify_any(self, settled: SettledState, expectations: Sequence[ExpectedOutcome]) -> Verdict:
        """Pass if any expectation matches; record which one did"""
        if not expectations:
            raise ValueError("verify_any needs at least one expected outcome")

        collected = []
        for index, expected in enumerate(expectations):
            mismatches = self._mismatches(settled, expected)
            if not mismatches:
                return self._verdict(settled, [], expected=list(expectations), matched=index)
            collected.extend(f"{expected.kind.value}: {m}" for m in mismatches)

        return self._verdict(settled, collected, expected=list(expectations))

    def verify_search(
            self,
            settled: SettledState,
            min_results: int = 1,
            order: Optional[str] = None,
            price_min: Optional[float] = None,
            price_max: Optional[float] = None,
            names_sorted: bool = False
    ) -> Verdict:
        mismatches = self._mismatches(settled, ExpectedOutcome.success()) if min_results else []
        mismatches.extend(self._result_mismatches(settled, min_results, order, price_min, price_max, names_sorted))
        return self._verdict(settled, mismatches, **self._result_detail(settled))

    @staticmethod
    def _result_detail(settled: SettledState) -> Dict[str, Any]:
        return {"product_count": len(settled.product_names), "price_order": price_order(settled.product_prices)}

    def _result_mismatches(
            self,
            settled: SettledState,
            min_results: int,
            order: Optional[str],
            price_min: Optional[float],
            price_max: Optional[float],
            names_sorted: bool
    ) -> List[str]:
        mismatches = []
        count = len(settled.product_names)
        if count < min_results:
            mismatches.append(f"expected at least {min_results} products, found {count}")

        observed_order = price_order(settled.product_prices)
        if order and observed_order != order:
            mismatches.append(f"prices are {observed_order}, expected {order}")

        out_of_range = [
            price for price in settled.product_prices
            if (price_min is not None and price < price_min) or (price_max is not None and price > price_max)
        ]
        if out_of_range:
            mismatches.append(f"prices outside [{price_min}, {price_max}]: {out_of_range}")

        if names_sorted:
            lowered = [normalize(name) for name in settled.product_names]
            if lowered != sorted(lowered):
                mismatches.append("product names are not in A-Z order")
        return mismatches

    def _cookie_mismatches(self, settled: SettledState, fragments: Sequence[str]) -> List[str]:
        session_cookies = [
            cookie for cookie in settled.cookies
            if any(fragment in (cookie.get("name") or "") for fragment in fragments)
        ]
        if not session_cookies:
            return [f"no session cookie named like {', '.join(fragments)}"]
        # The secure flag is only required once the storefront is served over https
        secure = (settled.observed_url or "").startswith("https://")
        return cookie_problems(session_cookies, require_secure=secure)

    def _mismatches(self, settled: SettledState, expected: ExpectedOutcome) -> List[str]:
        mismatches = []
        if settled.outcome_kind != expected.kind:
            mismatches.append(f"settled {settled.outcome_kind.value}, expected {expected.kind.value}")

        if expected.kind == OutcomeKind.SUCCESS:
            if not settled.success_visible:
                mismatches.append("success indicator not visible")
            if settled.error_visible:
                mismatches.append(f"error indicator visible: {settled.observed_message!r}")
            if expected.displayed_name and normalize(expected.displayed_name) not in normalize(settled.displayed_name):
                mismatches.append(
                    f"displayed name {settled.displayed_name!r} does not contain {expected.displayed_name!r}"
                )

        elif expected.kind == OutcomeKind.VALIDATION_ERROR:
            if settled.error_count != 1:
                mismatches.append(f"expected exactly one error indicator, saw {settled.error_count}")
            if settled.success_visible:
                mismatches.append("success indicator visible")
            if not normalize(settled.observed_message):
                mismatches.append("error indicator has no text")
            elif expected.message and normalize(expected.message) not in normalize(settled.observed_message):
                mismatches.append(
                    f"error {settled.observed_message!r} does not contain {expected.message!r}"
                )

        if expected.url_contains and expected.url_contains not in (settled.observed_url or ""):
            mismatches.append(f"url {settled.observed_url!r} does not contain {expected.url_contains!r}")

        if expected.checks_results:
            mismatches.extend(self._result_mismatches(
                settled,
                expected.min_results or 0,
                expected.price_order,
                expected.price_min,
                expected.price_max,
                expected.names_sorted
            ))

        if expected.session_cookies:
            mismatches.extend(self._cookie_mismatches(settled, expected.session_cookies))

        return mismatches

    def _verdict(
            self,
            settled: SettledState,
            mismatches: List[str],
            expected: Optional[List[ExpectedOutcome]] = None,
            matched: Optional[int] = None,
            **extra
    ) -> Verdict:
        detail: Dict[str, Any] = {
            "scenario_kind": settled.scenario_kind,
            "email": settled.email,
            "displayed_name": settled.displayed_name,
            "mismatches": mismatches,
            **extra,
        }
        if expected is not None:
            detail["expected"] = [e.kind.value for e in expected]
        if matched is not None:
            detail["matched"] = expected[matched].kind.value
            detail["matched_index"] = matched

        return Verdict(
            outcome_kind=settled.outcome_kind,
            passed=not mismatches,
            observed_message=settled.observed_message,
            observed_url=settled.observed_url,
            detail=detail
        )
