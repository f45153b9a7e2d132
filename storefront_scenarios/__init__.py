"""
Storefront Scenarios

Collision-free test identities, declarative fixtures and a browser scenario
runner for a storefront's registration, login and search flows.
"""

__version__ = "0.1.0"

from .browser_engine import BrowserEngine, BrowserSession
from .config import Settings, configure_logging
from .errors import (
    ElementNotFound,
    InvalidScenarioKind,
    NavigationError,
    NavigationTimeout,
    ScenarioError,
    ScenarioFailure,
)
from .fixtures import FixtureBuilder, FixtureKind, ScenarioKind
from .history import ScenarioHistory
from .identity import IdentityGenerator
from .models import (
    DateOfBirth,
    ExpectedOutcome,
    FieldValues,
    Identity,
    OutcomeKind,
    Scenario,
    SettledState,
    Stage,
    Verdict,
)
from .runner import ScenarioRun, ScenarioRunner
from .verifier import OutcomeVerifier

__all__ = [
    "BrowserEngine",
    "BrowserSession",
    "Settings",
    "configure_logging",
    "ElementNotFound",
    "InvalidScenarioKind",
    "NavigationError",
    "NavigationTimeout",
    "ScenarioError",
    "ScenarioFailure",
    "FixtureBuilder",
    "FixtureKind",
    "ScenarioKind",
    "ScenarioHistory",
    "IdentityGenerator",
    "DateOfBirth",
    "ExpectedOutcome",
    "FieldValues",
    "Identity",
    "OutcomeKind",
    "Scenario",
    "SettledState",
    "Stage",
    "Verdict",
    "ScenarioRun",
    "ScenarioRunner",
    "OutcomeVerifier",
]
