import logging
import re
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict

from .errors import InvalidScenarioKind
from .identity import IdentityGenerator, random_letters
from .models import DateOfBirth, FieldValues, Identity

logger = logging.getLogger(__name__)

DEFAULT_DATE_OF_BIRTH = DateOfBirth(day=15, month=6, year=1990)
WEAK_PASSWORDS = ("123", "password", "abc123", "qwerty", "letmein")
MISMATCHED_CONFIRMATION = "Mismatch@9876"

# Fields a single-field required-ness check may blank out
REQUIRED_FIELDS = ("email", "password", "first_name", "last_name")

# Malformed address shapes, keyed by the argument of ``invalid_email(<shape>)``
INVALID_EMAIL_SHAPES = {
    "no_at": "{local}",
    "no_tld": "{local}@domain",
    "no_local": "@{domain}",
    "dot_domain": "{local}@.com",
    "trailing_dot": "{local}@domain.",
    "space": "user {local}@{domain}",
    "double_dot": "{local}@domain..com",
}

_PARAMETERIZED = re.compile(r"^\s*(\w+)\s*\(\s*([\w.]*)\s*\)\s*$")


class ScenarioKind(str, Enum):
    MINIMAL = "minimal"
    WITH_DATE_OF_BIRTH = "with_date_of_birth"
    WITH_NEWSLETTER = "with_newsletter"
    MAX_LENGTH = "max_length"
    MIN_LENGTH = "min_length"
    INTERNATIONAL_CHARS = "international_chars"
    MULTIPLE_SPACES = "multiple_spaces"
    SPECIAL_CHARACTERS = "special_characters"
    WEAK_PASSWORD = "weak_password"
    EMPTY_FIELD = "empty_field"
    MISMATCHED_CONFIRMATION = "mismatched_confirmation"
    DOUBLE_SUBMIT = "double_submit"
    PADDED_WHITESPACE = "padded_whitespace"
    INVALID_EMAIL = "invalid_email"


class FixtureKind(BaseModel):
    """A scenario kind plus its argument: the field for ``empty_field``, the shape for ``invalid_email``"""
    model_config = ConfigDict(frozen=True)

    kind: ScenarioKind
    field: Optional[str] = None

    @classmethod
    def empty_field(cls, field: str) -> "FixtureKind":
        return cls(kind=ScenarioKind.EMPTY_FIELD, field=field)

    @classmethod
    def invalid_email(cls, shape: str = "no_at") -> "FixtureKind":
        return cls(kind=ScenarioKind.INVALID_EMAIL, field=shape)

    @classmethod
    def parse(cls, value: Union["FixtureKind", ScenarioKind, str]) -> "FixtureKind":
        """Accept an enum member, ``"minimal"`` or ``"empty_field(email)"``"""
        if isinstance(value, FixtureKind):
            return value
        if isinstance(value, ScenarioKind):
            return cls(kind=value)
        if not isinstance(value, str):
            raise InvalidScenarioKind(f"Unrecognized scenario kind: {value!r}")

        name, field = value.strip(), None
        match = _PARAMETERIZED.match(value)
        if match:
            name, field = match.group(1), match.group(2) or None

        try:
            kind = ScenarioKind(name)
        except ValueError:
            raise InvalidScenarioKind(f"Unrecognized scenario kind: {value!r}") from None
        return cls(kind=kind, field=field)

    def __str__(self) -> str:
        if self.field:
            return f"{self.kind.value}({self.field})"
        return self.kind.value


class FixtureBuilder:
    """Turns an identity and a scenario kind into concrete form input"""

    def __init__(
            self,
            base_length: int = 22,
            local_part_length: int = 119,
            generator: Optional[IdentityGenerator] = None
    ):
        self.base_length = base_length
        self.local_part_length = local_part_length
        self.generator = generator or IdentityGenerator()
        self.builders = {
            ScenarioKind.MINIMAL: self._minimal,
            ScenarioKind.WITH_DATE_OF_BIRTH: self._with_date_of_birth,
            ScenarioKind.WITH_NEWSLETTER: self._with_newsletter,
            ScenarioKind.MAX_LENGTH: self._max_length,
            ScenarioKind.MIN_LENGTH: self._min_length,
            ScenarioKind.INTERNATIONAL_CHARS: self._international_chars,
            ScenarioKind.MULTIPLE_SPACES: self._multiple_spaces,
            ScenarioKind.SPECIAL_CHARACTERS: self._special_characters,
            ScenarioKind.WEAK_PASSWORD: self._weak_password,
            ScenarioKind.EMPTY_FIELD: self._empty_field,
            ScenarioKind.MISMATCHED_CONFIRMATION: self._mismatched_confirmation,
            ScenarioKind.DOUBLE_SUBMIT: self._double_submit,
            ScenarioKind.PADDED_WHITESPACE: self._padded_whitespace,
            ScenarioKind.INVALID_EMAIL: self._invalid_email,
        }

    def build(self, identity: Identity, scenario_kind) -> FieldValues:
        fixture_kind = FixtureKind.parse(scenario_kind)
        builder = self.builders.get(fixture_kind.kind)
        if builder is None:
            raise InvalidScenarioKind(
                f"No fixture builder for {fixture_kind}",
                email=identity.email
            )

        values = builder(identity, fixture_kind)
        logger.debug("Built %s fixture for %s", fixture_kind, identity.email)
        return values

    def _basic(self, identity: Identity, **changes) -> FieldValues:
        values = {
            "email": identity.email,
            "password": identity.password,
            "first_name": identity.first_name,
            "last_name": identity.last_name,
            "gender": identity.gender,
            "date_of_birth": identity.date_of_birth,
        }
        values.update(changes)
        return FieldValues(**values)

    def _minimal(self, identity: Identity, kind: FixtureKind) -> FieldValues:
        return self._basic(identity, gender=None, date_of_birth=None)

    def _with_date_of_birth(self, identity: Identity, kind: FixtureKind) -> FieldValues:
        return self._basic(identity, date_of_birth=identity.date_of_birth or DEFAULT_DATE_OF_BIRTH)

    def _with_newsletter(self, identity: Identity, kind: FixtureKind) -> FieldValues:
        return self._basic(identity, newsletter=True)

    def _max_length(self, identity: Identity, kind: FixtureKind) -> FieldValues:
        long_name = "A" * self.base_length + random_letters(10)
        local_part = self.generator.padded_local_part(self.local_part_length)
        return self._basic(
            identity,
            email=f"{local_part}@{identity.email_domain}",
            first_name=long_name,
            last_name=long_name
        )

    def _min_length(self, identity: Identity, kind: FixtureKind) -> FieldValues:
        return self._basic(
            identity,
            email=f"{identity.email_local_part}@t.co",
            first_name="A",
            last_name="B",
            password="Aa1@2"
        )

    def _international_chars(self, identity: Identity, kind: FixtureKind) -> FieldValues:
        return self._basic(identity, first_name="Jörg", last_name="Müller")

    def _multiple_spaces(self, identity: Identity, kind: FixtureKind) -> FieldValues:
        return self._basic(identity, first_name="John  Michael", last_name="Van  Der  Berg")

    def _special_characters(self, identity: Identity, kind: FixtureKind) -> FieldValues:
        return self._basic(identity, first_name="O'Brien", last_name="Smith-Jones")

    def _weak_password(self, identity: Identity, kind: FixtureKind) -> FieldValues:
        password = identity.password if identity.password in WEAK_PASSWORDS else WEAK_PASSWORDS[0]
        return self._basic(identity, password=password)

    def _empty_field(self, identity: Identity, kind: FixtureKind) -> FieldValues:
        if kind.field not in REQUIRED_FIELDS:
            raise InvalidScenarioKind(
                f"empty_field needs one of {', '.join(REQUIRED_FIELDS)}, got {kind.field!r}",
                scenario_kind=str(kind),
                email=identity.email
            )
        return self._basic(identity, gender=None, **{kind.field: ""})

    def _mismatched_confirmation(self, identity: Identity, kind: FixtureKind) -> FieldValues:
        return self._basic(identity, password_confirmation=MISMATCHED_CONFIRMATION)

    def _double_submit(self, identity: Identity, kind: FixtureKind) -> FieldValues:
        return self._basic(identity, submit_count=2)

    def _padded_whitespace(self, identity: Identity, kind: FixtureKind) -> FieldValues:
        return self._basic(
            identity,
            email=f"  {identity.email}  ",
            password=f"  {identity.password}  "
        )

    def _invalid_email(self, identity: Identity, kind: FixtureKind) -> FieldValues:
        shape = kind.field or "no_at"
        if shape not in INVALID_EMAIL_SHAPES:
            raise InvalidScenarioKind(
                f"invalid_email needs one of {', '.join(INVALID_EMAIL_SHAPES)}, got {shape!r}",
                scenario_kind=str(kind),
                email=identity.email
            )
        email = INVALID_EMAIL_SHAPES[shape].format(local=identity.email_local_part, domain=identity.email_domain)
        return self._basic(identity, email=email)
