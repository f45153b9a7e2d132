from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from .errors import ScenarioFailure


class OutcomeKind(str, Enum):
    SUCCESS = "success"
    VALIDATION_ERROR = "validation_error"
    INDETERMINATE = "indeterminate"


class Stage(str, Enum):
    NOT_STARTED = "not_started"
    FORM_LOADED = "form_loaded"
    FIELDS_FILLED = "fields_filled"
    SUBMITTED = "submitted"
    SETTLED = "settled"


class DateOfBirth(BaseModel):
    """Day/month/year triple; calendar validity is left to the storefront"""
    model_config = ConfigDict(frozen=True)

    day: int = Field(ge=1, le=31)
    month: int = Field(ge=1, le=12)
    year: int


class Identity(BaseModel):
    """Synthetic user record used as test input, never a real credential"""
    model_config = ConfigDict(frozen=True)

    email_local_part: str
    email_domain: str
    first_name: str
    last_name: str
    password: str
    gender: Optional[int] = None
    date_of_birth: Optional[DateOfBirth] = None

    @property
    def email(self) -> str:
        return f"{self.email_local_part}@{self.email_domain}"

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class FieldValues(BaseModel):
    """Form input for one scenario.

    ``None`` leaves a field untouched, an empty string fills it with ``""``.
    """
    model_config = ConfigDict(frozen=True)

    email: Optional[str] = None
    password: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    gender: Optional[int] = None
    date_of_birth: Optional[DateOfBirth] = None
    newsletter: bool = False
    password_confirmation: Optional[str] = None
    search_query: Optional[str] = None
    sort: Optional[str] = None
    price_min: Optional[float] = None
    price_max: Optional[float] = None
    submit_count: int = Field(default=1, ge=1, le=2)

    def with_overrides(self, overrides: Dict[str, Any]) -> "FieldValues":
        unknown = set(overrides) - set(type(self).model_fields)
        if unknown:
            raise KeyError(f"Unknown form fields: {sorted(unknown)}")
        return type(self).model_validate({**self.model_dump(), **overrides})


class ExpectedOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: OutcomeKind
    message: Optional[str] = None
    displayed_name: Optional[str] = None
    url_contains: Optional[str] = None
    # Result list checks, only meaningful for search scenarios
    min_results: Optional[int] = None
    price_order: Optional[str] = None
    price_min: Optional[float] = None
    price_max: Optional[float] = None
    names_sorted: bool = False
    # Name fragments of cookies that must carry session-grade attributes
    session_cookies: Optional[Tuple[str, ...]] = None

    @property
    def checks_results(self) -> bool:
        return (
            self.min_results is not None
            or self.price_order is not None
            or self.price_min is not None
            or self.price_max is not None
            or self.names_sorted
        )

    @classmethod
    def success(
            cls,
            displayed_name: Optional[str] = None,
            url_contains: Optional[str] = None,
            session_cookies: Optional[Tuple[str, ...]] = None
    ):
        return cls(
            kind=OutcomeKind.SUCCESS,
            displayed_name=displayed_name,
            url_contains=url_contains,
            session_cookies=session_cookies
        )

    @classmethod
    def search_results(
            cls,
            min_results: int = 1,
            order: Optional[str] = None,
            price_min: Optional[float] = None,
            price_max: Optional[float] = None,
            names_sorted: bool = False
    ):
        return cls(
            kind=OutcomeKind.SUCCESS,
            min_results=min_results,
            price_order=order,
            price_min=price_min,
            price_max=price_max,
            names_sorted=names_sorted
        )

    @classmethod
    def validation_error(cls, message: Optional[str] = None):
        return cls(kind=OutcomeKind.VALIDATION_ERROR, message=message)

    @classmethod
    def indeterminate(cls):
        return cls(kind=OutcomeKind.INDETERMINATE)


class Scenario(BaseModel):
    """Declarative description of one test case's inputs and expected outcome"""
    model_config = ConfigDict(frozen=True)

    kind: str
    form: str = "registration"
    identity: Identity
    field_overrides: Dict[str, Any] = Field(default_factory=dict)
    expected: Tuple[ExpectedOutcome, ...] = (ExpectedOutcome(kind=OutcomeKind.SUCCESS),)


class SettledState(BaseModel):
    """Terminal state of a runner execution, before verdict comparison"""
    model_config = ConfigDict(frozen=True)

    outcome_kind: OutcomeKind
    scenario_kind: Optional[str] = None
    email: Optional[str] = None
    observed_url: Optional[str] = None
    observed_message: Optional[str] = None
    displayed_name: Optional[str] = None
    success_visible: bool = False
    error_visible: bool = False
    error_count: int = 0
    aborted: bool = False
    product_names: List[str] = Field(default_factory=list)
    product_prices: List[float] = Field(default_factory=list)
    cookies: List[Dict[str, Any]] = Field(default_factory=list)


class Verdict(BaseModel):
    model_config = ConfigDict(frozen=True)

    outcome_kind: OutcomeKind
    passed: bool
    observed_message: Optional[str] = None
    observed_url: Optional[str] = None
    detail: Dict[str, Any] = Field(default_factory=dict)

    def raise_for_failure(self) -> "Verdict":
        if not self.passed:
            raise ScenarioFailure(
                "; ".join(self.detail.get("mismatches", [])) or "verdict did not match",
                scenario_kind=self.detail.get("scenario_kind"),
                email=self.detail.get("email"),
                url=self.observed_url
            )
        return self
