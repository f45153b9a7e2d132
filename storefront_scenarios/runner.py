"""Drives one scenario through a browser session and settles its outcome.

A run moves strictly through NOT_STARTED -> FORM_LOADED -> FIELDS_FILLED
-> SUBMITTED -> SETTLED. Every wait is bounded; after submission the
success indicator, the error indicator and a URL change race each other,
and a run whose race nobody wins settles INDETERMINATE instead of raising.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from .action_executor import ActionExecutor, plan_fill_steps
from .browser_engine import BrowserDriver
from .config import Settings
from .errors import ElementNotFound, InvalidScenarioKind, NavigationTimeout, ScenarioError
from .fixtures import FixtureBuilder, FixtureKind
from .forms import LOGIN, LOGOUT_LINK, SEARCH, SEARCH_RESULTS, FormSpec, get_form
from .history import ScenarioHistory
from .identity import IdentityGenerator
from .models import (
    ExpectedOutcome,
    FieldValues,
    Identity,
    OutcomeKind,
    Scenario,
    SettledState,
    Stage,
    Verdict,
)
from .verifier import OutcomeVerifier, parse_price

logger = logging.getLogger(__name__)

# Earlier entries win when several waiters finish in the same tick
_RACE_PRIORITY = ("abort", "error", "success", "navigation")

# Cookie values are dropped; the checks read only these attributes
COOKIE_ATTRIBUTES = ("name", "domain", "secure", "httpOnly", "sameSite")


async def collect_products(session: BrowserDriver) -> Dict[str, List[Any]]:
    names = [name.strip() for name in await session.locator_texts(SEARCH_RESULTS["product_name"])]
    prices = []
    for text in await session.locator_texts(SEARCH_RESULTS["product_price"]):
        price = parse_price(text)
        if price is not None:
            prices.append(price)
    return {"product_names": [name for name in names if name], "product_prices": prices}


class ScenarioRun:
    """State of a single scenario execution on one session"""

    def __init__(
            self,
            session: BrowserDriver,
            scenario: Scenario,
            form: FormSpec,
            values: FieldValues,
            settings: Settings,
            executor: ActionExecutor
    ):
        self.session = session
        self.scenario = scenario
        self.form = form
        self.values = values
        self.settings = settings
        self.executor = executor
        self.stage = Stage.NOT_STARTED
        self.steps: List[Dict[str, Any]] = []
        self.submitted_from: Optional[str] = None
        self.settled: Optional[SettledState] = None

    @property
    def email(self) -> str:
        return self.scenario.identity.email

    def _advance(self, expected: Stage, to: Stage):
        if self.stage != expected:
            raise RuntimeError(
                f"Cannot move scenario {self.scenario.kind} to {to.value} from {self.stage.value}"
            )
        logger.debug("[%s] %s -> %s", self.session.session_id, self.stage.value, to.value)
        self.stage = to

    async def _execute(self, steps: List[Dict[str, Any]]):
        try:
            self.steps.extend(await self.executor.execute_all(self.session, steps))
        except ScenarioError as e:
            raise e.with_context(
                scenario_kind=self.scenario.kind,
                email=self.email,
                url=self.session.current_url()
            )

    async def load(self):
        if self.stage != Stage.NOT_STARTED:
            raise RuntimeError(f"Scenario {self.scenario.kind} was already loaded")

        timeout_ms = self.settings.navigation_timeout_ms
        steps = [{"action": "navigate", "target": self.settings.url_for(self.form.entry_path)}]
        if self.form.gate is not None:
            steps.extend([
                {"action": "wait", "target": self.form.gate.field, "timeout_ms": timeout_ms,
                 "navigation": True, "retry": False},
                {"action": "fill", "target": self.form.gate.field, "value": self.email, "field": "gate"},
                {"action": "click", "target": self.form.gate.submit},
            ])
        steps.append({"action": "wait", "target": self.form.marker, "timeout_ms": timeout_ms,
                      "navigation": True, "retry": False})

        await self._execute(steps)
        self._advance(Stage.NOT_STARTED, Stage.FORM_LOADED)

    async def fill(self):
        if self.stage != Stage.FORM_LOADED:
            raise RuntimeError(f"Cannot fill {self.form.name} form from {self.stage.value}")
        await self._execute(plan_fill_steps(self.form, self.values))
        self._advance(Stage.FORM_LOADED, Stage.FIELDS_FILLED)

    async def submit(self):
        if self.stage != Stage.FIELDS_FILLED:
            raise RuntimeError(f"Scenario {self.scenario.kind} cannot submit from {self.stage.value}")

        self.submitted_from = self.session.current_url()
        await self._execute([{"action": "click", "target": self.form.submit}])
        self._advance(Stage.FIELDS_FILLED, Stage.SUBMITTED)

        for _ in range(self.values.submit_count - 1):
            try:
                await self._execute([{"action": "click", "target": self.form.submit}])
            except ElementNotFound:
                logger.info("[%s] repeat submit skipped, %s is gone", self.session.session_id, self.form.submit)

    async def settle(self, cancel: Optional[asyncio.Event] = None) -> SettledState:
        if self.stage != Stage.SUBMITTED:
            raise RuntimeError(f"Scenario {self.scenario.kind} cannot settle from {self.stage.value}")

        timeout_ms = self.settings.settle_timeout_ms
        winner = await self._race({
            "success": self.session.wait_for(self.form.success_indicator, timeout_ms),
            "error": self.session.wait_for(self.form.error_indicator, timeout_ms),
            "navigation": self.session.wait_for_url_change(self.submitted_from, timeout_ms),
        }, timeout_ms / 1000, cancel)

        self.settled = await self._observe(winner)
        self._advance(Stage.SUBMITTED, Stage.SETTLED)
        logger.info(
            "[%s] %s on %s settled %s (%s)",
            self.session.session_id, self.scenario.kind, self.form.name,
            self.settled.outcome_kind.value, winner or "timeout"
        )
        return self.settled

    async def refine(self) -> SettledState:
        """Apply the sort and price filter to settled search results, then observe again"""
        if self.stage != Stage.SETTLED:
            raise RuntimeError(f"Cannot refine {self.form.name} results from {self.stage.value}")

        values = self.values
        wants_price = values.price_min is not None or values.price_max is not None
        if self.settled.outcome_kind != OutcomeKind.SUCCESS or (values.sort is None and not wants_price):
            return self.settled

        if values.sort is not None:
            await self._apply([{"action": "select", "target": SEARCH_RESULTS["sort"], "value": values.sort}])

        if wants_price and await self.session.locator_visible(SEARCH_RESULTS["price_min"]):
            steps = []
            if values.price_min is not None:
                steps.append({"action": "fill", "target": SEARCH_RESULTS["price_min"], "value": str(values.price_min)})
            if values.price_max is not None:
                steps.append({"action": "fill", "target": SEARCH_RESULTS["price_max"], "value": str(values.price_max)})
            steps.append({"action": "click", "target": SEARCH_RESULTS["price_apply"]})
            await self._apply(steps)

        self.settled = await self._observe("refine")
        return self.settled

    async def _apply(self, steps: List[Dict[str, Any]]):
        before = self.session.current_url()
        await self._execute(steps)
        try:
            await self.session.wait_for_url_change(before, self.settings.settle_timeout_ms)
        except NavigationTimeout:
            logger.debug("[%s] results refined in place at %s", self.session.session_id, before)

    async def _race(self, waiters, timeout: float, cancel: Optional[asyncio.Event]) -> Optional[str]:
        if cancel is not None and cancel.is_set():
            for waiter in waiters.values():
                waiter.close()
            return "abort"

        tasks = {asyncio.ensure_future(waiter): name for name, waiter in waiters.items()}
        if cancel is not None:
            tasks[asyncio.ensure_future(cancel.wait())] = "abort"

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        pending = set(tasks)
        try:
            while pending:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    return None
                done, pending = await asyncio.wait(pending, timeout=remaining, return_when=asyncio.FIRST_COMPLETED)
                finished = []
                for task in done:
                    error = task.exception()
                    if error is None:
                        finished.append(tasks[task])
                    elif not isinstance(error, (ElementNotFound, NavigationTimeout)):
                        raise error
                if finished:
                    return min(finished, key=_RACE_PRIORITY.index)
            return None
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _observe(self, winner: Optional[str]) -> SettledState:
        session = self.session
        url = session.current_url()
        observed: Dict[str, Any] = {
            "scenario_kind": self.scenario.kind,
            "email": self.email,
            "observed_url": url,
            "aborted": winner == "abort",
        }

        if winner in (None, "abort"):
            return SettledState(outcome_kind=OutcomeKind.INDETERMINATE, **observed)

        success_visible = await session.locator_visible(self.form.success_indicator)
        error_count = await session.visible_count(self.form.error_indicator)
        observed.update(success_visible=success_visible, error_visible=error_count > 0, error_count=error_count)

        if error_count:
            observed["observed_message"] = await self._error_message()

        if self.form.displayed_name and await session.locator_visible(self.form.displayed_name):
            observed["displayed_name"] = (await session.locator_text(self.form.displayed_name)).strip()

        if self.form.name == SEARCH.name and success_visible:
            observed.update(await collect_products(session))

        observed["cookies"] = [
            {key: cookie.get(key) for key in COOKIE_ATTRIBUTES}
            for cookie in await session.cookies()
        ]

        if error_count:
            outcome = OutcomeKind.VALIDATION_ERROR
        elif success_visible or winner == "success":
            outcome = OutcomeKind.SUCCESS
        elif self.form.success_url and self.form.success_url in url:
            outcome = OutcomeKind.SUCCESS
        else:
            outcome = OutcomeKind.INDETERMINATE

        return SettledState(outcome_kind=outcome, **observed)

    async def _error_message(self) -> str:
        texts = []
        if self.form.error_message:
            texts = [t.strip() for t in await self.session.locator_texts(self.form.error_message)]
        texts = [t for t in texts if t]
        if not texts:
            texts = [(await self.session.locator_text(self.form.error_indicator)).strip()]
        return " ".join(texts)


class ScenarioRunner:
    """Builds fixtures for scenarios and runs them on caller-owned sessions"""

    def __init__(
            self,
            settings: Optional[Settings] = None,
            generator: Optional[IdentityGenerator] = None,
            builder: Optional[FixtureBuilder] = None,
            executor: Optional[ActionExecutor] = None,
            verifier: Optional[OutcomeVerifier] = None,
            history: Optional[ScenarioHistory] = None
    ):
        self.settings = settings or Settings.from_env()
        self.generator = generator or IdentityGenerator(domain=self.settings.email_domain)
        self.builder = builder or FixtureBuilder(generator=self.generator)
        self.executor = executor or ActionExecutor()
        self.verifier = verifier or OutcomeVerifier()
        self.history = history if history is not None else ScenarioHistory()

    def start(self, session: BrowserDriver, scenario: Scenario) -> ScenarioRun:
        """Prepare a run without touching the browser"""
        form = get_form(scenario.form)
        values = self.builder.build(scenario.identity, scenario.kind)
        if scenario.field_overrides:
            try:
                values = values.with_overrides(scenario.field_overrides)
            except (KeyError, ValidationError) as e:
                raise InvalidScenarioKind(
                    f"Invalid field overrides {scenario.field_overrides!r}: {e}",
                    scenario_kind=scenario.kind,
                    email=scenario.identity.email
                ) from e
        return ScenarioRun(session, scenario, form, values, self.settings, self.executor)

    async def run(
            self,
            session: BrowserDriver,
            scenario: Scenario,
            cancel: Optional[asyncio.Event] = None
    ) -> SettledState:
        run = self.start(session, scenario)
        await run.load()
        await run.fill()
        await run.submit()
        settled = await run.settle(cancel)
        if run.form.name == SEARCH.name:
            settled = await run.refine()
        self.history.record(session.session_id, settled)
        return settled

    async def run_and_verify(
            self,
            session: BrowserDriver,
            scenario: Scenario,
            cancel: Optional[asyncio.Event] = None
    ) -> Verdict:
        settled = await self.run(session, scenario, cancel)
        if len(scenario.expected) == 1:
            verdict = self.verifier.verify(settled, scenario.expected[0])
        else:
            verdict = self.verifier.verify_any(settled, scenario.expected)
        self.history.attach_verdict(session.session_id, verdict)
        return verdict

    async def run_concurrently(
            self,
            sessions: List[BrowserDriver],
            scenario: Scenario,
            cancel: Optional[asyncio.Event] = None
    ) -> List[Verdict]:
        """Run the same scenario, same identity, on several sessions at once"""
        session_ids = [session.session_id for session in sessions]
        if len(set(session_ids)) != len(session_ids):
            raise ValueError(f"Each concurrent run needs its own session, got {session_ids}")
        return list(await asyncio.gather(*(
            self.run_and_verify(session, scenario, cancel) for session in sessions
        )))

    async def register(self, session: BrowserDriver, identity: Identity, kind="minimal") -> Verdict:
        """Create the account end to end; raises ScenarioFailure unless it succeeds"""
        scenario = Scenario(
            kind=str(FixtureKind.parse(kind)),
            form="registration",
            identity=identity,
            expected=(ExpectedOutcome.success(displayed_name=identity.display_name),)
        )
        verdict = await self.run_and_verify(session, scenario)
        return verdict.raise_for_failure()

    async def login(
            self,
            session: BrowserDriver,
            identity: Identity,
            email: Optional[str] = None,
            password: Optional[str] = None,
            kind="minimal",
            expected: Optional[ExpectedOutcome] = None
    ) -> Verdict:
        overrides = {}
        if email is not None:
            overrides["email"] = email
        if password is not None:
            overrides["password"] = password
        scenario = Scenario(
            kind=str(FixtureKind.parse(kind)),
            form="login",
            identity=identity,
            field_overrides=overrides,
            expected=(expected or ExpectedOutcome.success(),)
        )
        return await self.run_and_verify(session, scenario)

    async def logout(self, session: BrowserDriver):
        try:
            await session.click(LOGOUT_LINK)
            await session.wait_for(LOGIN.marker, self.settings.navigation_timeout_ms)
        except ScenarioError as e:
            raise e.with_context(scenario_kind="logout", url=session.current_url())

    async def search(
            self,
            session: BrowserDriver,
            query: str,
            sort: Optional[str] = None,
            price_min: Optional[float] = None,
            price_max: Optional[float] = None,
            identity: Optional[Identity] = None,
            cancel: Optional[asyncio.Event] = None
    ) -> SettledState:
        """Search, then apply the optional sort and price filter to the results"""
        scenario = Scenario(
            kind="minimal",
            form="search",
            identity=identity or self.generator.generate("search"),
            field_overrides={"search_query": query, "sort": sort, "price_min": price_min, "price_max": price_max},
        )
        return await self.run(session, scenario, cancel)
