"""Live Activity push payloads (the APNs ``aps`` dictionary)."""

import json
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from liveclass.services.period_clock import PeriodStatus


class PushEvent(str, Enum):
    START = "start"
    UPDATE = "update"
    END = "end"


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)


class ApsAlert(_WireModel):
    title: str
    body: str
    sound: str = "default"


class ClassInfo(_WireModel):
    period: int
    subject: str
    classroom: str = ""
    start_time: str = Field("", alias="startTime")
    end_time: str = Field("", alias="endTime")


class ContentState(_WireModel):
    status: PeriodStatus = Field(alias="currentStatus")
    current_class: ClassInfo | None = Field(None, alias="currentClass")
    next_class: ClassInfo | None = Field(None, alias="nextClass")
    start_epoch: int = Field(alias="startDate")
    end_epoch: int = Field(alias="endDate")
    last_updated_epoch: int = Field(alias="lastUpdated")


class PushPayload(_WireModel):
    event: PushEvent
    timestamp: int
    alert: ApsAlert
    content_state: ContentState | None = Field(None, alias="content-state")
    dismissal_date: int | None = Field(None, alias="dismissal-date")
    attributes_type: str | None = Field(None, alias="attributes-type")
    attributes: dict[str, Any] | None = None
    input_push_token: int | None = Field(None, alias="input-push-token")

    @model_validator(mode="after")
    def check_event_shape(self) -> "PushPayload":
        if self.event == PushEvent.START:
            if self.content_state is not None:
                raise ValueError("start payloads must not carry content-state")
        elif self.content_state is None:
            raise ValueError(f"{self.event.value} payloads require content-state")
        if self.event == PushEvent.END and self.dismissal_date is None:
            raise ValueError("end payloads require dismissal-date")
        return self

    def to_wire(self) -> dict[str, Any]:
        return {"aps": self.model_dump(mode="json", by_alias=True, exclude_none=True)}

    def to_json(self) -> str:
        return json.dumps(self.to_wire(), ensure_ascii=False, separators=(",", ":"))

    @classmethod
    def from_wire(cls, data: dict[str, Any] | str | bytes) -> "PushPayload":
        if isinstance(data, (str, bytes)):
            data = json.loads(data)
        return cls.model_validate(data["aps"])
