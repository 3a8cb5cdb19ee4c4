"""JSON schemas for the three Live Activity payload shapes sent to APNs."""

_ALERT = {
    "type": "object",
    "required": ["title", "body"],
    "properties": {
        "title": {"type": "string"},
        "body": {"type": "string"},
        "sound": {"type": "string"},
    },
    "additionalProperties": False,
}

_CLASS_INFO = {
    "type": "object",
    "required": ["period", "subject", "classroom", "startTime", "endTime"],
    "properties": {
        "period": {"type": "integer", "minimum": 1},
        "subject": {"type": "string", "minLength": 1},
        "classroom": {"type": "string"},
        "startTime": {"type": "string"},
        "endTime": {"type": "string"},
    },
    "additionalProperties": False,
}

_CONTENT_STATE = {
    "type": "object",
    "required": ["currentStatus", "startDate", "endDate", "lastUpdated"],
    "properties": {
        "currentStatus": {
            "type": "string",
            "enum": ["beforeSchool", "inClass", "preClass", "breakTime", "lunchTime", "afterSchool"],
        },
        "currentClass": _CLASS_INFO,
        "nextClass": _CLASS_INFO,
        "startDate": {"type": "integer"},
        "endDate": {"type": "integer"},
        "lastUpdated": {"type": "integer"},
    },
    "additionalProperties": False,
}

START_PAYLOAD_SCHEMA = {
    "type": "object",
    "required": ["aps"],
    "properties": {
        "aps": {
            "type": "object",
            "required": ["timestamp", "event", "attributes-type", "attributes", "alert"],
            "properties": {
                "timestamp": {"type": "integer"},
                "event": {"const": "start"},
                "attributes-type": {"type": "string"},
                "attributes": {"type": "object"},
                "alert": _ALERT,
                "input-push-token": {"type": "integer"},
            },
            "not": {"required": ["content-state"]},
            "additionalProperties": False,
        }
    },
    "additionalProperties": False,
}

UPDATE_PAYLOAD_SCHEMA = {
    "type": "object",
    "required": ["aps"],
    "properties": {
        "aps": {
            "type": "object",
            "required": ["timestamp", "event", "content-state", "alert"],
            "properties": {
                "timestamp": {"type": "integer"},
                "event": {"const": "update"},
                "content-state": _CONTENT_STATE,
                "alert": _ALERT,
            },
            "additionalProperties": False,
        }
    },
    "additionalProperties": False,
}

END_PAYLOAD_SCHEMA = {
    "type": "object",
    "required": ["aps"],
    "properties": {
        "aps": {
            "type": "object",
            "required": ["timestamp", "event", "content-state", "dismissal-date", "alert"],
            "properties": {
                "timestamp": {"type": "integer"},
                "event": {"const": "end"},
                "content-state": _CONTENT_STATE,
                "dismissal-date": {"type": "integer"},
                "alert": _ALERT,
            },
            "additionalProperties": False,
        }
    },
    "additionalProperties": False,
}

PAYLOAD_SCHEMAS = {
    "start": START_PAYLOAD_SCHEMA,
    "update": UPDATE_PAYLOAD_SCHEMA,
    "end": END_PAYLOAD_SCHEMA,
}
