import asyncio

import pytest

from fakes import (
    BASE_URL,
    FakeSession,
    login_success,
    registration_error,
    registration_success,
    search_results,
    storefront,
)
from storefront_scenarios.errors import ElementNotFound, InvalidScenarioKind, NavigationTimeout, ScenarioFailure
from storefront_scenarios.forms import LOGIN, REGISTRATION, SEARCH_RESULTS
from storefront_scenarios.models import ExpectedOutcome, OutcomeKind, Scenario, Stage


def registration(identity, kind="minimal", **kwargs):
    return Scenario(kind=kind, form="registration", identity=identity, **kwargs)


class TestScenarioRunner:
    """Test suite for the scenario state machine"""

    @pytest.mark.asyncio
    async def test_successful_registration(self, runner, session, generator):
        """john.doe settles with a success banner and 'John Doe' displayed"""
        storefront(session, on_register=registration_success)
        identity = generator.generate("john.doe", gender=1, password="Test@1234")

        settled = await runner.run(session, registration(identity))

        assert settled.outcome_kind == OutcomeKind.SUCCESS
        assert settled.success_visible is True
        assert settled.error_visible is False
        assert settled.displayed_name == "John Doe"
        assert "controller=my-account" in settled.observed_url
        assert settled.email == identity.email

    @pytest.mark.asyncio
    async def test_load_runs_account_gate(self, runner, session, generator):
        storefront(session, on_register=registration_success)
        identity = generator.generate("gate.user")

        await runner.run(session, registration(identity))

        assert session.actions[0] == ("navigate", f"{BASE_URL}/index.php?controller=authentication&back=my-account")
        assert session.actions[1] == ("fill", "#email_create", identity.email)
        assert session.actions[2] == ("click", "#SubmitCreate")

    @pytest.mark.asyncio
    async def test_fill_order(self, runner, session, generator):
        """Email before password before secondary attributes"""
        storefront(session, on_register=registration_success)
        identity = generator.generate("order.user", gender=2)

        await runner.run(session, registration(identity, kind="with_date_of_birth"))

        fills = session.fills()
        assert fills[1:] == ["#email", "#passwd", "#customer_firstname", "#customer_lastname"]
        assert ("check", "#id_gender2") in session.actions
        selects = [action[1] for action in session.actions if action[0] == "select"]
        assert selects == ["#days", "#months", "#years"]
        assert session.actions.index(("check", "#id_gender2")) > session.actions.index(
            ("fill", "#customer_lastname", "User")
        )

    @pytest.mark.asyncio
    async def test_newsletter_checked(self, runner, session, generator):
        storefront(session, on_register=registration_success)

        await runner.run(session, registration(generator.generate("news"), kind="with_newsletter"))

        assert ("check", "#newsletter") in session.actions

    @pytest.mark.asyncio
    async def test_stages_are_sequential(self, runner, session, generator):
        storefront(session, on_register=registration_success)
        run = runner.start(session, registration(generator.generate("stages")))

        assert run.stage == Stage.NOT_STARTED
        with pytest.raises(RuntimeError):
            await run.submit()

        await run.load()
        assert run.stage == Stage.FORM_LOADED
        await run.fill()
        assert run.stage == Stage.FIELDS_FILLED
        await run.submit()
        assert run.stage == Stage.SUBMITTED
        await run.settle()
        assert run.stage == Stage.SETTLED

    @pytest.mark.asyncio
    async def test_submit_exactly_once(self, runner, session, generator):
        storefront(session, on_register=registration_success)
        run = runner.start(session, registration(generator.generate("once")))
        await run.load()
        await run.fill()
        await run.submit()

        with pytest.raises(RuntimeError):
            await run.submit()
        assert session.clicks(REGISTRATION.submit) == 1

    @pytest.mark.asyncio
    async def test_double_submit_kind(self, runner, session, generator):
        storefront(session, on_register=registration_success)

        await runner.run(session, registration(generator.generate("double"), kind="double_submit"))

        assert session.clicks(REGISTRATION.submit) == 2

    @pytest.mark.asyncio
    async def test_validation_error(self, runner, session, generator):
        storefront(session, on_register=registration_error("passwd is invalid."))
        identity = generator.generate("weakpass", password="123")

        settled = await runner.run(session, registration(identity, kind="weak_password"))

        assert settled.outcome_kind == OutcomeKind.VALIDATION_ERROR
        assert settled.error_count == 1
        assert settled.observed_message == "passwd is invalid."
        assert settled.success_visible is False

    @pytest.mark.asyncio
    async def test_empty_email_fills_blank(self, runner, session, generator):
        storefront(session, on_register=registration_error("email is required."))
        identity = generator.generate("emptyfield")

        settled = await runner.run(session, registration(identity, kind="empty_field(email)"))

        assert ("fill", "#email", "") in session.actions
        assert settled.outcome_kind == OutcomeKind.VALIDATION_ERROR

    @pytest.mark.asyncio
    async def test_no_indicator_settles_indeterminate(self, runner, session, generator):
        storefront(session)

        settled = await runner.run(session, registration(generator.generate("silent")))

        assert settled.outcome_kind == OutcomeKind.INDETERMINATE
        assert settled.aborted is False
        assert settled.observed_url is not None

    @pytest.mark.asyncio
    async def test_navigation_to_success_url(self, runner, session, generator):
        """A redirect to my-account without a banner still counts as success"""
        def redirect(s):
            s.url = f"{BASE_URL}/index.php?controller=my-account"

        storefront(session, on_register=redirect)

        settled = await runner.run(session, registration(generator.generate("redirect")))

        assert settled.outcome_kind == OutcomeKind.SUCCESS
        assert settled.success_visible is False

    @pytest.mark.asyncio
    async def test_unrelated_navigation_is_indeterminate(self, runner, session, generator):
        def wander(s):
            s.url = f"{BASE_URL}/index.php?controller=contact"

        storefront(session, on_register=wander)

        settled = await runner.run(session, registration(generator.generate("wander")))

        assert settled.outcome_kind == OutcomeKind.INDETERMINATE

    @pytest.mark.asyncio
    async def test_abort_settles_indeterminate(self, runner, session, generator):
        storefront(session)
        cancel = asyncio.Event()
        run = runner.start(session, registration(generator.generate("abort")))
        await run.load()
        await run.fill()
        await run.submit()

        asyncio.get_running_loop().call_later(0.02, cancel.set)
        settled = await run.settle(cancel)

        assert settled.outcome_kind == OutcomeKind.INDETERMINATE
        assert settled.aborted is True

    @pytest.mark.asyncio
    async def test_abort_before_settle(self, runner, session, generator):
        storefront(session, on_register=registration_success)
        cancel = asyncio.Event()
        cancel.set()

        settled = await runner.run(session, registration(generator.generate("preabort")), cancel)

        assert settled.aborted is True
        assert settled.outcome_kind == OutcomeKind.INDETERMINATE

    @pytest.mark.asyncio
    async def test_missing_form_marker_is_navigation_timeout(self, runner, session, generator):
        """Without the gate reaction the creation form never appears"""
        session.visible.add("#email_create")
        identity = generator.generate("nomarker")

        with pytest.raises(NavigationTimeout) as excinfo:
            await runner.run(session, registration(identity))

        error = excinfo.value
        assert error.scenario_kind == "minimal"
        assert error.email == identity.email
        assert error.url.startswith(BASE_URL)
        assert identity.email in str(error)

    @pytest.mark.asyncio
    async def test_missing_field_propagates(self, runner, session, generator):
        storefront(session, on_register=registration_success)
        session.missing.add("#passwd")
        identity = generator.generate("nofield")

        with pytest.raises(ElementNotFound) as excinfo:
            await runner.run(session, registration(identity, kind="max_length"))

        assert excinfo.value.scenario_kind == "max_length"
        assert excinfo.value.email == identity.email

    @pytest.mark.asyncio
    async def test_date_of_birth_override_from_plain_data(self, runner, session, generator):
        """Overrides given as plain dicts are validated into models before filling"""
        storefront(session, on_register=registration_success)
        scenario = registration(
            generator.generate("dict.dob"),
            kind="with_date_of_birth",
            field_overrides={"date_of_birth": {"day": 30, "month": 2, "year": 1990}},
        )

        settled = await runner.run(session, scenario)

        selects = [action[1:] for action in session.actions if action[0] == "select"]
        assert selects == [("#days", "30"), ("#months", "2"), ("#years", "1990")]
        assert settled.outcome_kind == OutcomeKind.SUCCESS

    @pytest.mark.parametrize("overrides", [
        {"submit_count": 7},
        {"date_of_birth": {"day": 40, "month": 2, "year": 1990}},
        {"nickname": "x"},
    ])
    def test_invalid_overrides_rejected_before_running(self, runner, session, generator, overrides):
        identity = generator.generate("bad.override")

        with pytest.raises(InvalidScenarioKind) as excinfo:
            runner.start(session, registration(identity, field_overrides=overrides))

        assert excinfo.value.email == identity.email
        assert session.actions == []

    @pytest.mark.asyncio
    async def test_cookie_attributes_recorded_without_values(self, runner, session, generator):
        storefront(session, on_register=registration_success)
        session.cookie_jar.append({
            "name": "PrestaShop-abc", "value": "secret", "domain": "shop.test",
            "secure": False, "httpOnly": True, "sameSite": "Lax",
        })

        settled = await runner.run(session, registration(generator.generate("cookies")))

        assert settled.cookies == [{
            "name": "PrestaShop-abc", "domain": "shop.test",
            "secure": False, "httpOnly": True, "sameSite": "Lax",
        }]

    @pytest.mark.asyncio
    async def test_history_records_verdict(self, runner, session, generator):
        storefront(session, on_register=registration_success)
        identity = generator.generate("history")

        verdict = await runner.run_and_verify(session, registration(identity))

        entries = runner.history.get_history(session.session_id)
        assert verdict.passed is True
        assert entries[-1]["verdict"]["passed"] is True
        assert entries[-1]["settled"]["email"] == identity.email


class TestAccountFlows:
    """Registration, login and logout helpers"""

    @pytest.mark.asyncio
    async def test_register_then_login_lowercase(self, runner, session, generator):
        """Registering with an uppercase email and logging in lowercased succeeds"""
        storefront(session, on_register=registration_success, on_login=login_success)
        identity = generator.generate("test.user", uppercase=True)

        await runner.register(session, identity)
        await runner.logout(session)
        verdict = await runner.login(session, identity, email=identity.email.lower())

        assert verdict.passed is True
        assert ("fill", "#email", identity.email.lower()) in session.actions
        assert ("click", LOGIN.submit) in session.actions

    @pytest.mark.asyncio
    async def test_register_failure_raises(self, runner, session, generator):
        storefront(session, on_register=registration_error("An account using this email address has already been registered."))
        identity = generator.generate("taken")

        with pytest.raises(ScenarioFailure) as excinfo:
            await runner.register(session, identity)

        assert excinfo.value.email == identity.email

    @pytest.mark.asyncio
    async def test_login_fills_only_login_fields(self, runner, session, generator):
        storefront(session, on_login=login_success)
        identity = generator.generate("login.only", gender=1)

        await runner.login(session, identity)

        assert session.fills() == ["#email", "#passwd"]
        assert not any(action[0] == "check" for action in session.actions)

    @pytest.mark.asyncio
    async def test_login_with_wrong_password(self, runner, session, generator):
        def reject(s):
            s.visible.add(LOGIN.error_indicator)
            s.texts[LOGIN.error_message] = ["Authentication failed."]

        storefront(session, on_login=reject)
        identity = generator.generate("wrongpass")

        verdict = await runner.login(
            session, identity, password="Wrong@9999",
            expected=ExpectedOutcome.validation_error("authentication failed")
        )

        assert verdict.passed is True
        assert verdict.observed_message == "Authentication failed."


class TestSearch:
    """Search flow with result collection and refinements"""

    @pytest.mark.asyncio
    async def test_search_collects_products(self, runner, session):
        storefront(session, on_search=search_results(["Printed Dress", "Summer Dress"], ["$26.00", "$28.98"]))

        settled = await runner.search(session, "dress")

        assert ("fill", "#search_query_top", "dress") in session.actions
        assert settled.outcome_kind == OutcomeKind.SUCCESS
        assert settled.product_names == ["Printed Dress", "Summer Dress"]
        assert settled.product_prices == [26.0, 28.98]

    @pytest.mark.asyncio
    async def test_search_no_results(self, runner, session):
        def nothing(s):
            s.visible.add(".alert.alert-warning")
            s.texts[".alert.alert-warning"] = ['No results were found for your search "zzz"']

        storefront(session, on_search=nothing)

        settled = await runner.search(session, "zzz")

        assert settled.outcome_kind == OutcomeKind.VALIDATION_ERROR
        assert "no results" in settled.observed_message.lower()

    @pytest.mark.asyncio
    async def test_search_sort_refinement(self, runner, session):
        storefront(session, on_search=search_results(["B", "A"], ["$30.00", "$16.51"]))

        def sort(s):
            s.url = f"{BASE_URL}/index.php?controller=search&orderby=price&orderway=asc"
            s.texts[SEARCH_RESULTS["product_name"]] = ["A", "B"]
            s.texts[SEARCH_RESULTS["product_price"]] = ["$16.51", "$30.00"]

        original_select = session.select_option

        async def select_option(selector, value):
            await original_select(selector, value)
            sort(session)

        session.select_option = select_option

        settled = await runner.search(session, "dress", sort="price:asc")

        assert ("select", SEARCH_RESULTS["sort"], "price:asc") in session.actions
        assert settled.product_prices == [16.51, 30.0]
        assert "orderby=price" in settled.observed_url


@pytest.mark.asyncio
async def test_concurrent_scenarios_use_their_own_sessions(runner, generator):
    """Parallel runs on separate sessions settle independently"""
    sessions = [storefront(FakeSession(session_id=f"s{i}"), on_register=registration_success) for i in range(3)]
    identities = [generator.generate("parallel") for _ in sessions]

    results = await asyncio.gather(*(
        runner.run(s, registration(identity)) for s, identity in zip(sessions, identities)
    ))

    assert all(r.outcome_kind == OutcomeKind.SUCCESS for r in results)
    assert {r.email for r in results} == {i.email for i in identities}
    for s, identity in zip(sessions, identities):
        assert s.filled["#email"] == identity.email


@pytest.mark.asyncio
async def test_run_concurrently_verifies_each_session(runner, generator):
    sessions = [storefront(FakeSession(session_id=f"c{i}"), on_login=login_success) for i in range(2)]
    scenario = Scenario(kind="minimal", form="login", identity=generator.generate("shared.login"))

    verdicts = await runner.run_concurrently(sessions, scenario)

    assert [v.passed for v in verdicts] == [True, True]
    assert all(s.clicks(LOGIN.submit) == 1 for s in sessions)
    assert set(runner.history.list_sessions()) == {"c0", "c1"}


@pytest.mark.asyncio
async def test_run_concurrently_needs_distinct_sessions(runner, generator):
    session = storefront(FakeSession(session_id="same"), on_login=login_success)
    scenario = Scenario(kind="minimal", form="login", identity=generator.generate("dup"))

    with pytest.raises(ValueError):
        await runner.run_concurrently([session, session], scenario)
