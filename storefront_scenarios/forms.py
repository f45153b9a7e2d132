"""Selectors and indicators for the storefront forms a scenario can drive.

Each form is data, not a page class: the runner reads the entry URL, the
marker that proves the form rendered, the per-field selectors and the
success/error indicators it races after submission.
"""

from typing import Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from .errors import InvalidScenarioKind

AUTH_PATH = "/index.php?controller=authentication&back=my-account"

# Email/username first, then password, then secondary attributes
FIELD_ORDER: Tuple[str, ...] = (
    "email",
    "password",
    "first_name",
    "last_name",
    "gender",
    "date_of_birth",
    "newsletter",
    "password_confirmation",
    "search_query",
)


class GateStep(BaseModel):
    """A pre-form step, e.g. the email box that opens account creation"""
    model_config = ConfigDict(frozen=True)

    field: str
    submit: str


class FormSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    entry_path: str
    marker: str
    submit: str
    success_indicator: str
    error_indicator: str
    fields: Dict[str, str] = Field(default_factory=dict)
    gate: Optional[GateStep] = None
    error_message: Optional[str] = None
    displayed_name: Optional[str] = None
    success_url: Optional[str] = None
    date_of_birth: Optional[Tuple[str, str, str]] = None

    def selector_for(self, field: str) -> Optional[str]:
        return self.fields.get(field)


REGISTRATION = FormSpec(
    name="registration",
    entry_path=AUTH_PATH,
    gate=GateStep(field="#email_create", submit="#SubmitCreate"),
    marker="#account-creation_form",
    fields={
        "email": "#email",
        "password": "#passwd",
        "first_name": "#customer_firstname",
        "last_name": "#customer_lastname",
        "gender": "#id_gender{}",
        "newsletter": "#newsletter",
    },
    date_of_birth=("#days", "#months", "#years"),
    submit="#submitAccount",
    success_indicator=".alert.alert-success",
    error_indicator=".alert.alert-danger:not(#create_account_error)",
    error_message=".alert.alert-danger:not(#create_account_error) li",
    displayed_name="a.account span",
    success_url="controller=my-account",
)

LOGIN = FormSpec(
    name="login",
    entry_path=AUTH_PATH,
    marker="#login_form",
    fields={
        "email": "#email",
        "password": "#passwd",
    },
    submit="#SubmitLogin",
    success_indicator="a.logout",
    error_indicator=".alert.alert-danger:not(#create_account_error)",
    error_message=".alert.alert-danger:not(#create_account_error) li",
    displayed_name="a.account span",
    success_url="controller=my-account",
)

# The email-only box that starts account creation; rejects taken addresses
ACCOUNT_GATE = FormSpec(
    name="account_gate",
    entry_path=AUTH_PATH,
    marker="#create-account_form",
    fields={"email": "#email_create"},
    submit="#SubmitCreate",
    success_indicator="#account-creation_form",
    error_indicator="#create_account_error",
    success_url="account-creation",
)

SEARCH = FormSpec(
    name="search",
    entry_path="/",
    marker="#search_query_top",
    fields={"search_query": "#search_query_top"},
    submit='button[name="submit_search"]',
    success_indicator=".product-listing",
    error_indicator=".alert.alert-warning",
    success_url="controller=search",
)

SEARCH_RESULTS = {
    "product_name": ".product-container .product-name",
    "product_price": ".product-container .content_price .product-price",
    "sort": "#selectProductSort",
    "price_min": 'input[name="price_range_min"]',
    "price_max": 'input[name="price_range_max"]',
    "price_apply": 'button[type="submit"]',
}

LOGOUT_LINK = "a.logout"

FORMS: Dict[str, FormSpec] = {
    form.name: form for form in (REGISTRATION, LOGIN, ACCOUNT_GATE, SEARCH)
}


def get_form(name: str) -> FormSpec:
    try:
        return FORMS[name]
    except KeyError:
        raise InvalidScenarioKind(f"Unknown form: {name!r}") from None
