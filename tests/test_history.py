import json

import pytest

from storefront_scenarios.history import ScenarioHistory
from storefront_scenarios.models import OutcomeKind, SettledState, Verdict


@pytest.fixture
def history():
    return ScenarioHistory()


def settled(url="http://shop.test/index.php?controller=my-account", kind=OutcomeKind.SUCCESS):
    return SettledState(outcome_kind=kind, scenario_kind="minimal", email="a1@test.com", observed_url=url)


class TestScenarioHistory:
    """Test suite for per-session scenario records"""

    def test_record_and_attach(self, history):
        history.record("s1", settled())
        history.attach_verdict("s1", Verdict(outcome_kind=OutcomeKind.SUCCESS, passed=True))

        entries = history.get_history("s1")
        assert len(entries) == 1
        assert entries[0]["settled"]["outcome_kind"] == "success"
        assert entries[0]["verdict"]["passed"] is True

    def test_attach_without_record(self, history):
        with pytest.raises(LookupError):
            history.attach_verdict("empty", Verdict(outcome_kind=OutcomeKind.SUCCESS, passed=True))

    def test_history_limit(self, history):
        for index in range(5):
            history.record("s1", settled(url=f"http://shop.test/{index}"))

        last_two = history.get_history("s1", limit=2)

        assert [entry["settled"]["observed_url"] for entry in last_two] == [
            "http://shop.test/3", "http://shop.test/4"
        ]

    def test_failures_across_sessions(self, history):
        history.record("s1", settled(), Verdict(outcome_kind=OutcomeKind.SUCCESS, passed=True))
        history.record("s2", settled(kind=OutcomeKind.INDETERMINATE), Verdict(outcome_kind=OutcomeKind.INDETERMINATE, passed=False))
        history.record("s3", settled())

        failures = history.failures()

        assert len(failures) == 1
        assert failures[0]["settled"]["outcome_kind"] == "indeterminate"

    def test_list_and_clear(self, history):
        history.record("s1", settled())
        history.record("s2", settled(url=None))

        sessions = history.list_sessions()
        assert sessions["s1"]["scenario_count"] == 1
        assert sessions["s1"]["current_url"].endswith("controller=my-account")
        assert sessions["s2"]["current_url"] == ""

        history.clear_session("s1")
        assert "s1" not in history.list_sessions()

    def test_export_is_json(self, history):
        history.record("s1", settled())

        exported = json.loads(history.export_session("s1"))

        assert exported["id"] == "s1"
        assert exported["history"][0]["settled"]["email"] == "a1@test.com"
