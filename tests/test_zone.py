"""Tests for zones, interaction events and push_interaction."""

import asyncio

import pytest

from tickfx import UpdateTrigger, configure
from tickfx.zone import (
    ROOT_ZONE,
    InteractionData,
    InteractionEvent,
    Zone,
    create_event,
    current_zone,
    push_interaction,
)


def _push(zone, trigger=UpdateTrigger.PROPERTY_SET, source=None, prop="x"):
    return zone.execute(push_interaction, UpdateTrigger, trigger, InteractionData(source, prop))


class TestExecute:
    def test_default_is_root(self):
        assert current_zone() is ROOT_ZONE

    def test_sets_and_restores(self):
        zone = Zone("a")
        seen = zone.execute(current_zone)
        assert seen is zone
        assert current_zone() is ROOT_ZONE

    def test_restores_after_error(self):
        zone = Zone("a")

        def _boom():
            raise ValueError("boom")

        with pytest.raises(ValueError):
            zone.execute(_boom)
        assert current_zone() is ROOT_ZONE

    def test_nested(self):
        outer = Zone("outer")
        inner = outer.create("inner")
        seen = outer.execute(lambda: (current_zone(), inner.execute(current_zone), current_zone()))
        assert seen == (outer, inner, outer)

    @pytest.mark.asyncio
    async def test_execute_async_awaits(self):
        zone = Zone("a")

        async def _work(value):
            await asyncio.sleep(0)
            return current_zone(), value

        seen, value = await zone.execute_async(_work, 3)
        assert seen is zone
        assert value == 3
        assert current_zone() is ROOT_ZONE

    @pytest.mark.asyncio
    async def test_execute_async_plain_function(self):
        zone = Zone("a")
        assert await zone.execute_async(lambda: 5) == 5


class TestHierarchy:
    def test_root_zone_has_no_parent(self):
        zone = Zone("root")
        assert zone.parent is None
        assert zone.isolated

    def test_child_keeps_parent(self):
        parent = Zone("parent")
        child = parent.create("child")
        assert child.parent is parent
        assert not child.isolated
        assert parent.create("other", isolate=True).isolated


class TestListeners:
    def test_listener_receives_event(self):
        zone = Zone("z")
        events = []
        zone.add_interaction_listener(UpdateTrigger, events.append)

        assert _push(zone, source="obj", prop="name") is True
        assert len(events) == 1
        event = events[0]
        assert event.kind is UpdateTrigger
        assert event.trigger == UpdateTrigger.PROPERTY_SET
        assert event.origin is zone
        assert event.data.source == "obj"
        assert event.data.property == "name"

    def test_listener_runs_in_registering_zone(self):
        zone = Zone("z")
        home = Zone("home")
        seen = []
        home.execute(zone.add_interaction_listener, UpdateTrigger, lambda e: seen.append(current_zone()))

        _push(zone)
        assert seen == [home]

    def test_bubbles_to_parent(self):
        parent = Zone("parent")
        child = parent.create("child")
        seen = []
        parent.add_interaction_listener(UpdateTrigger, lambda e: seen.append("parent"))
        child.add_interaction_listener(UpdateTrigger, lambda e: seen.append("child"))

        _push(child)
        assert seen == ["child", "parent"]

    def test_isolated_child_does_not_bubble(self):
        parent = Zone("parent")
        child = parent.create("child", isolate=True)
        seen = []
        parent.add_interaction_listener(UpdateTrigger, seen.append)

        assert _push(child) is True
        assert seen == []

    def test_other_kinds_ignored(self):
        zone = Zone("z")
        seen = []
        zone.add_interaction_listener(str, seen.append)
        _push(zone)
        assert seen == []

    def test_remove_single_listener(self):
        zone = Zone("z")
        a, b = [], []
        zone.add_interaction_listener(UpdateTrigger, a.append)
        zone.add_interaction_listener(UpdateTrigger, b.append)
        zone.remove_interaction_listener(UpdateTrigger, a.append)

        _push(zone)
        assert a == []
        assert len(b) == 1

    def test_remove_all_listeners(self):
        zone = Zone("z")
        seen = []
        zone.add_interaction_listener(UpdateTrigger, seen.append)
        zone.remove_interaction_listener(UpdateTrigger)
        _push(zone)
        assert seen == []


class TestTriggerRestriction:
    def test_blocked_trigger_is_silent(self):
        zone = Zone("z").add_trigger_restriction(UpdateTrigger, UpdateTrigger.MANUAL)
        seen = []
        zone.add_interaction_listener(UpdateTrigger, seen.append)

        assert _push(zone, UpdateTrigger.PROPERTY_SET) is False
        assert seen == []
        assert _push(zone, UpdateTrigger.MANUAL) is True
        assert len(seen) == 1

    def test_parent_restriction_blocks_bubbling(self):
        parent = Zone("parent").add_trigger_restriction(UpdateTrigger, UpdateTrigger.NONE)
        child = parent.create("child")
        seen = []
        child.add_interaction_listener(UpdateTrigger, seen.append)

        # Child listeners still ran, the parent reports silence.
        assert _push(child) is False
        assert len(seen) == 1

    def test_default_mask_allows_everything(self):
        assert Zone("z").trigger_mask(UpdateTrigger) & UpdateTrigger.ANY == UpdateTrigger.ANY


class TestEvents:
    def test_str(self):
        zone = Zone("Render")
        event = InteractionEvent(UpdateTrigger, UpdateTrigger.PROPERTY_DELETE, zone, InteractionData({}, "key"))
        assert str(event) == "Render -> PROPERTY_DELETE [ dict => key ]"

    def test_str_without_property(self):
        assert str(InteractionData([])) == "[ list ]"

    def test_stacktrace_only_when_logging(self):
        zone = Zone("z")
        event = create_event(UpdateTrigger, UpdateTrigger.MANUAL, zone, InteractionData(None))
        assert event.stacktrace == ""

        configure(log_update_trigger=True)
        event = create_event(UpdateTrigger, UpdateTrigger.MANUAL, zone, InteractionData(None))
        assert "test_stacktrace_only_when_logging" in event.stacktrace

    def test_events_are_frozen(self):
        event = create_event(UpdateTrigger, UpdateTrigger.MANUAL, Zone("z"), InteractionData(None))
        with pytest.raises(AttributeError):
            event.trigger = UpdateTrigger.NONE
