"""Tests for flow_metrics/parsing/duration.py."""

import pytest
from structlog.testing import capture_logs

from flow_metrics.config.collectors import DurationTrackingConfig
from flow_metrics.parsing.duration import DurationTrackingHook, ParsedElement

PROCESS = "invoice:1:abc"


def labels(element_id, element_type="serviceTask", process=PROCESS):
    return {"process_definition_id": process, "element_id": element_id, "element_type": element_type}


@pytest.fixture
def hook(registry, clock):
    return DurationTrackingHook(
        registry,
        tracking={
            "ServiceTask_1": DurationTrackingConfig(label="charge_card"),
            "UserTask_2": DurationTrackingConfig(enabled=False),
        },
        clock=clock,
    )


class TestOnElementParsed:
    """Registration of instrumentation at parse time."""

    def test_registers_tracked_element(self, hook, registry):
        """Should register counters that the engine can drive."""
        instrumentation = hook.on_element_parsed(PROCESS, "Task_A", "serviceTask")

        instrumentation.on_start("exec-1")
        instrumentation.on_end("exec-1")

        assert instrumentation.key == (PROCESS, "Task_A")
        assert registry.sample_value("flow_bpmn_element_entered_total", labels("Task_A")) == 1.0
        assert registry.sample_value("flow_bpmn_element_completed_total", labels("Task_A")) == 1.0

    def test_duration_observed(self, hook, registry, clock):
        """Should observe the time between start and end."""
        instrumentation = hook.on_element_parsed(PROCESS, "Task_A", "serviceTask")

        instrumentation.on_start("exec-1")
        clock.advance(2.5)
        instrumentation.on_end("exec-1")

        assert registry.sample_value("flow_bpmn_element_duration_seconds_count", labels("Task_A")) == 1.0
        assert registry.sample_value("flow_bpmn_element_duration_seconds_sum", labels("Task_A")) == 2.5
        assert instrumentation.in_flight == 0

    def test_end_without_start_only_counts(self, hook, registry):
        instrumentation = hook.on_element_parsed(PROCESS, "Task_A", "serviceTask")

        instrumentation.on_end("exec-unknown")

        assert registry.sample_value("flow_bpmn_element_completed_total", labels("Task_A")) == 1.0
        assert registry.sample_value("flow_bpmn_element_duration_seconds_count", labels("Task_A")) == 0.0

    def test_in_flight(self, hook):
        instrumentation = hook.on_element_parsed(PROCESS, "Task_A", "serviceTask")

        instrumentation.on_start("exec-1")
        instrumentation.on_start("exec-2")

        assert instrumentation.in_flight == 2

    def test_cancel_forgets_start(self, hook, registry):
        """Should drop an execution that never completes without observing a duration."""
        instrumentation = hook.on_element_parsed(PROCESS, "Task_A", "serviceTask")

        instrumentation.on_start("exec-1")
        instrumentation.on_cancel("exec-1")
        instrumentation.on_end("exec-1")

        assert instrumentation.in_flight == 0
        assert registry.sample_value("flow_bpmn_element_duration_seconds_count", labels("Task_A")) == 0.0

    def test_in_flight_capped(self, registry, clock):
        """Should evict the oldest open start once max_in_flight is reached."""
        hook = DurationTrackingHook(registry, clock=clock, max_in_flight=2)
        instrumentation = hook.on_element_parsed(PROCESS, "Task_A", "serviceTask")

        with capture_logs() as logs:
            for execution_id in ("exec-1", "exec-2", "exec-3"):
                instrumentation.on_start(execution_id)
                clock.advance(1)
        instrumentation.on_end("exec-1")
        instrumentation.on_end("exec-2")

        assert instrumentation.in_flight == 1
        assert registry.sample_value("flow_bpmn_element_entered_total", labels("Task_A")) == 3.0
        assert registry.sample_value("flow_bpmn_element_duration_seconds_count", labels("Task_A")) == 1.0
        assert registry.sample_value("flow_bpmn_element_duration_seconds_sum", labels("Task_A")) == 2.0
        evictions = [entry for entry in logs if entry["event"] == "duration_tracking_start_evicted"]
        assert [entry["execution_id"] for entry in evictions] == ["exec-1"]

    def test_redeploy_is_idempotent(self, hook, registry):
        """Should return the existing instrumentation for the same key."""
        first = hook.on_element_parsed(PROCESS, "Task_A", "serviceTask")
        first.on_start()
        second = hook.on_element_parsed(PROCESS, "Task_A", "serviceTask")
        second.on_start()

        assert first is second
        assert len(hook.registrations) == 1
        assert registry.sample_value("flow_bpmn_element_entered_total", labels("Task_A")) == 2.0

    def test_same_element_in_other_definition(self, hook):
        """Should keep definitions apart."""
        first = hook.on_element_parsed(PROCESS, "Task_A", "serviceTask")
        second = hook.on_element_parsed("invoice:2:def", "Task_A", "serviceTask")

        assert first is not second
        assert hook.get("invoice:2:def", "Task_A") is second

    def test_label_override(self, hook, registry):
        """Should publish the configured label instead of the element id."""
        instrumentation = hook.on_element_parsed(PROCESS, "ServiceTask_1", "serviceTask")
        instrumentation.on_start()

        assert instrumentation.label == "charge_card"
        assert registry.sample_value("flow_bpmn_element_entered_total", labels("charge_card")) == 1.0
        assert hook.get(PROCESS, "ServiceTask_1") is instrumentation

    def test_shared_label_warns(self, registry):
        """Should warn when two elements of one process publish the same series."""
        hook = DurationTrackingHook(
            registry,
            tracking={
                "ServiceTask_1": DurationTrackingConfig(label="charge_card"),
                "ServiceTask_9": DurationTrackingConfig(label="charge_card"),
            },
        )

        with capture_logs() as logs:
            first = hook.on_element_parsed(PROCESS, "ServiceTask_1", "serviceTask")
            second = hook.on_element_parsed(PROCESS, "ServiceTask_9", "serviceTask")
        first.on_start()
        second.on_start()

        assert first is not second
        assert registry.sample_value("flow_bpmn_element_entered_total", labels("charge_card")) == 2.0
        warnings = [entry for entry in logs if entry["event"] == "duration_tracking_label_shared"]
        assert len(warnings) == 1
        assert warnings[0]["element_id"] == "ServiceTask_9"
        assert warnings[0]["shared_with"] == "ServiceTask_1"

    def test_redeploy_does_not_warn(self, hook):
        with capture_logs() as logs:
            hook.on_element_parsed(PROCESS, "ServiceTask_1", "serviceTask")
            hook.on_element_parsed(PROCESS, "ServiceTask_1", "serviceTask")

        assert not [entry for entry in logs if entry["event"] == "duration_tracking_label_shared"]

    def test_disabled_element(self, hook):
        """Should not register elements disabled in the document."""
        assert hook.on_element_parsed(PROCESS, "UserTask_2", "userTask") is None
        assert hook.registrations == {}

    def test_explicit_config_wins(self, hook):
        """Should prefer a config passed to the call over the document entry."""
        instrumentation = hook.on_element_parsed(
            PROCESS, "UserTask_2", "userTask", config=DurationTrackingConfig(enabled=True)
        )

        assert instrumentation is not None

    def test_default_disabled(self, registry):
        """Should only track listed elements when default_enabled is False."""
        hook = DurationTrackingHook(
            registry, tracking={"Task_B": DurationTrackingConfig()}, default_enabled=False
        )

        assert hook.on_element_parsed(PROCESS, "Task_A", "serviceTask") is None
        assert hook.on_element_parsed(PROCESS, "Task_B", "serviceTask") is not None

    @pytest.mark.parametrize("element_id", [None, "", "   "])
    def test_missing_element_id_skipped(self, hook, element_id):
        """Should skip malformed elements without raising."""
        assert hook.on_element_parsed(PROCESS, element_id, "serviceTask") is None

    def test_missing_process_definition_id_skipped(self, hook):
        assert hook.on_element_parsed("", "Task_A", "serviceTask") is None


class TestParseProcess:
    """Whole-definition parsing."""

    def test_parse_process(self, hook):
        """Should register tracked elements and skip the rest."""
        elements = [
            ParsedElement("StartEvent_1", "startEvent"),
            ParsedElement("ServiceTask_1", "serviceTask", name="Charge card"),
            ParsedElement("UserTask_2", "userTask"),
            ParsedElement(None, "sequenceFlow"),
        ]

        registered = hook.parse_process(PROCESS, elements)

        assert [i.element_id for i in registered] == ["StartEvent_1", "ServiceTask_1"]

    def test_parse_twice_registers_once(self, hook):
        elements = [ParsedElement("Task_A", "serviceTask")]

        first = hook.parse_process(PROCESS, elements)
        second = hook.parse_process(PROCESS, elements)

        assert first[0] is second[0]
        assert len(hook.registrations) == 1
