"""Tests for Live Activity payload construction."""

from datetime import datetime
from zoneinfo import ZoneInfo

import httpx
import jsonschema
import pytest

from liveclass.schemas.payload import PushEvent, PushPayload
from liveclass.services.payload_builder import ACTIVITY_ATTRIBUTES_TYPE, PayloadBuilder
from liveclass.services.payload_schemas import PAYLOAD_SCHEMAS
from liveclass.services.schedule_resolver import ScheduleEntry, ScheduleResolver, StaticScheduleResolver

SEOUL = ZoneInfo("Asia/Seoul")


def at(hour: int, minute: int, day: int = 4) -> datetime:
    return datetime(2024, 3, day, hour, minute, tzinfo=SEOUL)


class UnreachableResolver(ScheduleResolver):
    async def resolve(self, grade, class_number, weekday_index):
        raise httpx.ConnectError("timetable API down")


@pytest.fixture
def builder(clock, timetable):
    return PayloadBuilder(clock, timetable, school_id="yangcheon")


class TestStartPayload:
    def test_start_has_no_content_state(self, builder):
        aps = builder.build_start(now=at(8, 0)).to_wire()["aps"]

        assert aps["event"] == "start"
        assert "content-state" not in aps
        assert aps["input-push-token"] == 1
        assert aps["attributes-type"] == ACTIVITY_ATTRIBUTES_TYPE
        assert aps["attributes"] == {"schoolId": "yangcheon"}
        assert aps["timestamp"] == int(at(8, 0).timestamp())

    def test_extra_attributes_are_merged(self, builder):
        aps = builder.build_start(attributes={"grade": 1}, now=at(8, 0)).to_wire()["aps"]
        assert aps["attributes"] == {"schoolId": "yangcheon", "grade": 1}


class TestUpdatePayload:
    @pytest.mark.asyncio
    async def test_in_class_has_current_and_next(self, builder):
        payload = await builder.build_update(1, 1, now=at(10, 35))
        state = payload.to_wire()["aps"]["content-state"]

        assert state["currentStatus"] == "inClass"
        assert state["currentClass"] == {
            "period": 3,
            "subject": "Mathematics",
            "classroom": "Math Lab",
            "startTime": "10:20",
            "endTime": "11:10",
        }
        assert state["nextClass"]["period"] == 4
        assert state["nextClass"]["subject"] == "Physics"
        assert state["startDate"] == int(at(10, 20).timestamp())
        assert state["endDate"] == int(at(11, 10).timestamp())
        assert state["lastUpdated"] == int(at(10, 35).timestamp())

    @pytest.mark.asyncio
    async def test_last_period_has_no_next_class(self, builder):
        state = (await builder.build_update(1, 1, now=at(15, 30))).to_wire()["aps"]["content-state"]
        assert state["currentClass"]["period"] == 7
        assert "nextClass" not in state

    @pytest.mark.asyncio
    async def test_pre_class_has_only_next_class(self, builder):
        state = (await builder.build_update(1, 1, now=at(10, 15))).to_wire()["aps"]["content-state"]
        assert state["currentStatus"] == "preClass"
        assert "currentClass" not in state
        assert state["nextClass"]["period"] == 3

    @pytest.mark.asyncio
    async def test_lunch_omits_both_classes(self, builder):
        payload = await builder.build_update(1, 1, now=at(12, 30))
        state = payload.to_wire()["aps"]["content-state"]

        assert state["currentStatus"] == "lunchTime"
        assert "currentClass" not in state
        assert "nextClass" not in state
        assert payload.alert.body == "Lunch time."

    @pytest.mark.asyncio
    async def test_unknown_class_gets_placeholder(self, builder):
        state = (await builder.build_update(2, 5, now=at(10, 35))).to_wire()["aps"]["content-state"]
        assert state["currentClass"]["subject"] == "Period 3"
        assert state["currentClass"]["classroom"] == ""

    @pytest.mark.asyncio
    async def test_no_class_registered_gets_placeholder(self, builder):
        state = (await builder.build_update(now=at(10, 35))).to_wire()["aps"]["content-state"]
        assert state["currentClass"]["subject"] == "Period 3"

    @pytest.mark.asyncio
    async def test_resolver_failure_never_raises(self, clock):
        builder = PayloadBuilder(clock, UnreachableResolver())
        state = (await builder.build_update(1, 1, now=at(10, 35))).to_wire()["aps"]["content-state"]
        assert state["currentClass"]["subject"] == "Period 3"
        assert state["nextClass"]["subject"] == "Period 4"

    @pytest.mark.asyncio
    async def test_blank_subject_gets_placeholder(self, clock):
        blank = StaticScheduleResolver({(1, 1): [[ScheduleEntry(3, "  ", "Room 9"), ScheduleEntry(4, "Physics", "Lab")]]})
        builder = PayloadBuilder(clock, blank)

        state = (await builder.build_update(1, 1, now=at(10, 35))).to_wire()["aps"]["content-state"]

        assert state["currentClass"]["subject"] == "Period 3"
        assert state["currentClass"]["classroom"] == ""
        assert state["nextClass"]["subject"] == "Physics"

    @pytest.mark.asyncio
    async def test_weekend_is_after_school(self, builder):
        payload = await builder.build_update(1, 1, now=at(10, 35, day=9))
        assert payload.content_state.status.value == "afterSchool"
        assert payload.alert.body == "No classes today."

    @pytest.mark.asyncio
    @pytest.mark.parametrize("hour,minute", [(7, 0), (8, 15), (9, 0), (12, 10), (12, 30), (13, 5), (17, 0)])
    async def test_update_matches_wire_schema(self, builder, hour, minute):
        wire = (await builder.build_update(1, 1, now=at(hour, minute))).to_wire()
        jsonschema.validate(instance=wire, schema=PAYLOAD_SCHEMAS["update"])


class TestEndPayload:
    def test_end_is_terminal_after_school(self, builder):
        now = at(16, 30)
        aps = builder.build_end(now=now).to_wire()["aps"]

        assert aps["event"] == "end"
        assert aps["content-state"]["currentStatus"] == "afterSchool"
        assert aps["dismissal-date"] == int(now.timestamp())
        jsonschema.validate(instance={"aps": aps}, schema=PAYLOAD_SCHEMAS["end"])

    def test_end_overrides(self, builder):
        aps = builder.build_end(
            start_epoch=100,
            dismissal_epoch=200,
            alert_title="Bye",
            alert_body="See you tomorrow",
            now=at(16, 30),
        ).to_wire()["aps"]

        assert aps["content-state"]["startDate"] == 100
        assert aps["dismissal-date"] == 200
        assert aps["alert"]["title"] == "Bye"
        assert aps["alert"]["body"] == "See you tomorrow"


class TestWireFormat:
    @pytest.mark.asyncio
    async def test_encoded_payload_decodes_to_equal_value(self, builder):
        original = await builder.build_update(1, 1, now=at(10, 35))
        assert PushPayload.from_wire(original.to_json()) == original

    def test_start_with_content_state_rejected(self):
        with pytest.raises(ValueError):
            PushPayload.from_wire(
                {
                    "aps": {
                        "event": "start",
                        "timestamp": 1,
                        "alert": {"title": "t", "body": "b"},
                        "content-state": {
                            "currentStatus": "inClass",
                            "startDate": 1,
                            "endDate": 2,
                            "lastUpdated": 1,
                        },
                    }
                }
            )

    def test_end_requires_dismissal_date(self):
        with pytest.raises(ValueError):
            PushPayload(
                event=PushEvent.END,
                timestamp=1,
                alert={"title": "t", "body": "b"},
                content_state={"currentStatus": "afterSchool", "startDate": 1, "endDate": 2, "lastUpdated": 1},
            )
