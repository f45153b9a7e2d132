"""
Declarative account lifecycle and catalog search cases for the storefront.

Each case is a template: a base label, a fixture kind, field overrides and
the acceptable outcomes. ``materialize`` turns one into a Scenario with a
fresh identity, so the same case can run any number of times in parallel.
"""

from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from .fixtures import INVALID_EMAIL_SHAPES
from .identity import IdentityGenerator
from .models import DateOfBirth, ExpectedOutcome, Scenario

SUCCESS = ExpectedOutcome.success()
ANY_ERROR = ExpectedOutcome.validation_error()
# Client-side validation can block the submit entirely, which settles indeterminate
REJECTED = (ANY_ERROR, ExpectedOutcome.indeterminate())
# Hostile or odd queries must render either a listing or the warning, never fail
HANDLED = (ExpectedOutcome.search_results(min_results=0), ANY_ERROR)
SESSION_COOKIES = ("PrestaShop", "PHPSESSID", "session")


class ScenarioTemplate(BaseModel):
    model_config = ConfigDict(frozen=True)

    case_id: str
    title: str
    label: str
    kind: str = "minimal"
    form: str = "registration"
    identity_options: Dict[str, Any] = Field(default_factory=dict)
    overrides: Dict[str, Any] = Field(default_factory=dict)
    expected: Tuple[ExpectedOutcome, ...] = (SUCCESS,)
    # Compare the account name shown after success with the identity's name
    check_display_name: bool = False
    # Login cases run against an account registered beforehand
    requires_account: bool = False
    # Number of sessions that run the case at the same time
    sessions: int = Field(default=1, ge=1)

    def materialize(self, generator: IdentityGenerator, **identity_options) -> Scenario:
        identity = generator.generate(self.label, **{**self.identity_options, **identity_options})
        expected = self.expected
        if self.check_display_name:
            expected = tuple(
                e.model_copy(update={"displayed_name": identity.display_name}) if e.kind == SUCCESS.kind else e
                for e in expected
            )
        return Scenario(
            kind=self.kind,
            form=self.form,
            identity=identity,
            field_overrides=dict(self.overrides),
            expected=expected
        )


REGISTRATION_CASES = (
    ScenarioTemplate(
        case_id="REG-POS-001",
        title="Successful registration with all required fields",
        label="john.doe",
        identity_options={"gender": 1, "password": "Test@1234"},
        check_display_name=True,
    ),
    ScenarioTemplate(
        case_id="REG-POS-002",
        title="Registration redirects to my account",
        label="jane.smith",
        identity_options={"gender": 2},
        expected=(ExpectedOutcome.success(url_contains="controller=my-account"),),
    ),
    ScenarioTemplate(
        case_id="REG-POS-003",
        title="Registration with newsletter subscription",
        label="news.letter",
        kind="with_newsletter",
    ),
    *(
        ScenarioTemplate(
            case_id=f"REG-POS-004-{index}",
            title=f"Registration accepts password {password}",
            label="password.test",
            identity_options={"password": password},
        )
        for index, password in enumerate(("Pass@1234", "StrongPwd!2024", "Test1234$", "Complex#Pass1"), 1)
    ),
    ScenarioTemplate(
        case_id="REG-POS-006",
        title="Registration with special characters in name",
        label="special",
        kind="special_characters",
        expected=(ExpectedOutcome.success(displayed_name="O'Brien Smith-Jones"),),
    ),
    ScenarioTemplate(
        case_id="REG-POS-007",
        title="Registration with minimal required data",
        label="minimal.required",
    ),
    ScenarioTemplate(
        case_id="REG-POS-009",
        title="Registration with maximum field lengths",
        label="max",
        kind="max_length",
    ),
    ScenarioTemplate(
        case_id="REG-POS-011",
        title="Registration with date of birth",
        label="dob.user",
        kind="with_date_of_birth",
        identity_options={"gender": 1, "date_of_birth": DateOfBirth(day=15, month=6, year=1990)},
        check_display_name=True,
    ),
    ScenarioTemplate(
        case_id="REG-POS-014",
        title="Invalid date of birth (Feb 30) is rejected",
        label="invalid.date",
        kind="with_date_of_birth",
        identity_options={"date_of_birth": DateOfBirth(day=30, month=2, year=1990)},
        expected=(ANY_ERROR,),
    ),
    *(
        ScenarioTemplate(
            case_id=f"REG-NEG-002-{shape}",
            title=f"Registration rejects malformed email ({shape.replace('_', ' ')})",
            label="bad.email",
            form="account_gate",
            kind=f"invalid_email({shape})",
            expected=REJECTED,
        )
        for shape in ("no_at", "no_tld", "no_local", "dot_domain", "trailing_dot", "space")
    ),
    ScenarioTemplate(
        case_id="REG-NEG-003",
        title="Registration with mismatched password confirmation",
        label="password.mismatch",
        kind="mismatched_confirmation",
        # The storefront has no confirmation field; either outcome is recorded
        expected=(ANY_ERROR, SUCCESS),
    ),
    ScenarioTemplate(
        case_id="REG-NEG-004",
        title="Registration with weak password",
        label="weakpass",
        kind="weak_password",
        identity_options={"password": "123"},
        expected=(ExpectedOutcome.validation_error("passwd is invalid."), SUCCESS),
    ),
    *(
        ScenarioTemplate(
            case_id=f"REG-NEG-005-{field}",
            title=f"Registration with empty {field.replace('_', ' ')}",
            label="emptyfield",
            kind=f"empty_field({field})",
            expected=(ANY_ERROR,),
        )
        for field in ("first_name", "last_name", "email", "password")
    ),
    ScenarioTemplate(
        case_id="REG-EDGE-001",
        title="Registration at field minimum lengths",
        label="min",
        kind="min_length",
    ),
    ScenarioTemplate(
        case_id="REG-EDGE-003",
        title="Registration with international characters",
        label="intl",
        kind="international_chars",
        expected=(ExpectedOutcome.success(displayed_name="Jörg Müller"),),
    ),
    ScenarioTemplate(
        case_id="REG-EDGE-004",
        title="Registration with multiple spaces in name",
        label="spaces",
        kind="multiple_spaces",
    ),
    ScenarioTemplate(
        case_id="REG-EDGE-008",
        title="Double submit creates the account at most once",
        label="double.submit",
        kind="double_submit",
        expected=(SUCCESS, ANY_ERROR),
    ),
)

LOGIN_CASES = (
    *(
        ScenarioTemplate(
            case_id=f"LOGIN-NEG-001-{shape}",
            title=f"Login rejects malformed email ({shape.replace('_', ' ')})",
            label="invalid.login",
            form="login",
            kind=f"invalid_email({shape})",
            expected=REJECTED,
        )
        for shape in INVALID_EMAIL_SHAPES
    ),
    ScenarioTemplate(
        case_id="LOGIN-POS-001",
        title="Successful login with email and password",
        label="testuser.auto",
        form="login",
        requires_account=True,
        check_display_name=True,
    ),
    ScenarioTemplate(
        case_id="LOGIN-POS-007",
        title="Login with leading and trailing spaces",
        label="trimspaces",
        form="login",
        kind="padded_whitespace",
        requires_account=True,
        expected=(SUCCESS, ANY_ERROR),
    ),
    ScenarioTemplate(
        case_id="LOGIN-POS-011",
        title="Login with special characters in password",
        label="specialchars",
        form="login",
        identity_options={"password": "P@0d!@#$%^&*()_+{}[]|:;\"<>,.?/~"},
        requires_account=True,
    ),
    ScenarioTemplate(
        case_id="LOGIN-NEG-002",
        title="Login with incorrect password",
        label="wrongpass",
        form="login",
        overrides={"password": "Wrong@9999"},
        requires_account=True,
        expected=(ExpectedOutcome.validation_error("authentication failed"),),
    ),
    ScenarioTemplate(
        case_id="LOGIN-NEG-003",
        title="Login with non-existent email",
        label="nonexistent",
        form="login",
        expected=(ExpectedOutcome.validation_error("authentication failed"),),
    ),
    ScenarioTemplate(
        case_id="LOGIN-NEG-004",
        title="Login with empty email",
        label="emptylogin",
        form="login",
        kind="empty_field(email)",
        expected=(ExpectedOutcome.validation_error("email address required"),),
    ),
    ScenarioTemplate(
        case_id="LOGIN-NEG-005",
        title="Login with empty password",
        label="emptypass",
        form="login",
        kind="empty_field(password)",
        requires_account=True,
        expected=(ExpectedOutcome.validation_error("password is required"),),
    ),
    ScenarioTemplate(
        case_id="LOGIN-SEC-003",
        title="Session cookie carries secure attributes",
        label="secure.cookie",
        form="login",
        requires_account=True,
        expected=(ExpectedOutcome.success(session_cookies=SESSION_COOKIES),),
    ),
    ScenarioTemplate(
        case_id="LOGIN-SEC-006",
        title="Same account logged in from two sessions",
        label="concurrent.session",
        form="login",
        requires_account=True,
        sessions=2,
        # Either both sessions stay logged in or the storefront reports the conflict
        expected=(SUCCESS, ANY_ERROR),
    ),
)

ACCOUNT_GATE_CASES = (
    ScenarioTemplate(
        case_id="REG-NEG-001",
        title="Registration with an already registered email",
        label="existing",
        form="account_gate",
        requires_account=True,
        expected=(ExpectedOutcome.validation_error("already been registered"),),
    ),
)

SQL_INJECTIONS = ("' OR '1'='1", "; DROP TABLE products", "' UNION SELECT * FROM products --")
XSS_PAYLOADS = ("<script>alert('xss')</script>", "<img src=x onerror=alert('xss')>")


def _search(case_id: str, title: str, query: str, expected=(SUCCESS,), **overrides) -> ScenarioTemplate:
    return ScenarioTemplate(
        case_id=case_id,
        title=title,
        label="search",
        form="search",
        overrides={"search_query": query, **overrides},
        expected=expected,
    )


SEARCH_CASES = (
    _search(
        "SEARCH-POS-006", "Search filtered by price range", "dress",
        expected=(ExpectedOutcome.search_results(price_min=20, price_max=50),),
        price_min=20, price_max=50,
    ),
    _search(
        "SEARCH-POS-008-1", "Search sorted by price, low to high", "dress",
        expected=(ExpectedOutcome.search_results(order="asc"),), sort="price:asc",
    ),
    _search(
        "SEARCH-POS-008-2", "Search sorted by price, high to low", "dress",
        expected=(ExpectedOutcome.search_results(order="desc"),), sort="price:desc",
    ),
    _search(
        "SEARCH-POS-008-3", "Search sorted by name, A to Z", "dress",
        expected=(ExpectedOutcome.search_results(names_sorted=True),), sort="name:asc",
    ),
    _search(
        "SEARCH-NEG-001", "Search with no results", "xyz123nonexistentproduct",
        expected=(ExpectedOutcome.validation_error("no results"),),
    ),
    *(
        _search(f"SEARCH-NEG-002-{index}", "Search with SQL injection", payload, expected=HANDLED)
        for index, payload in enumerate(SQL_INJECTIONS, 1)
    ),
    *(
        _search(f"SEARCH-NEG-003-{index}", "Search with XSS payload", payload, expected=HANDLED)
        for index, payload in enumerate(XSS_PAYLOADS, 1)
    ),
    _search("SEARCH-NEG-004", "Search with extremely long query", "A" * 1000, expected=HANDLED),
    _search(
        "SEARCH-NEG-006", "Search with inverted price range", "dress",
        expected=HANDLED, price_min=100, price_max=50,
    ),
)

CATALOG: Dict[str, ScenarioTemplate] = {
    template.case_id: template
    for template in (*REGISTRATION_CASES, *LOGIN_CASES, *ACCOUNT_GATE_CASES, *SEARCH_CASES)
}


def get_case(case_id: str) -> Optional[ScenarioTemplate]:
    return CATALOG.get(case_id)
