from typing import Optional


class ScenarioError(Exception):
    """Base error carrying enough context to reproduce a failed scenario"""

    def __init__(
            self,
            message: str,
            scenario_kind: Optional[str] = None,
            email: Optional[str] = None,
            url: Optional[str] = None
    ):
        self.message = message
        self.scenario_kind = scenario_kind
        self.email = email
        self.url = url
        super().__init__(self._format())

    def _format(self) -> str:
        context = [
            f"{name}={value}"
            for name, value in (
                ("kind", self.scenario_kind),
                ("email", self.email),
                ("url", self.url)
            )
            if value
        ]
        if not context:
            return self.message
        return f"{self.message} [{', '.join(context)}]"

    def with_context(
            self,
            scenario_kind: Optional[str] = None,
            email: Optional[str] = None,
            url: Optional[str] = None
    ) -> "ScenarioError":
        """Fill in context fields that are still missing"""
        self.scenario_kind = self.scenario_kind or scenario_kind
        self.email = self.email or email
        self.url = self.url or url
        self.args = (self._format(),)
        return self


class NavigationError(ScenarioError):
    """The driver could not load a URL"""


class NavigationTimeout(ScenarioError):
    """A page or form marker did not appear within the bounded wait"""


class ElementNotFound(ScenarioError):
    """A selector stayed absent beyond its timeout"""


class InvalidScenarioKind(ScenarioError, ValueError):
    """Programmer error: unknown fixture kind or field name"""


class ScenarioFailure(ScenarioError):
    """A verdict did not match its expected outcome"""
