"""
JSON schema for the stored renewal history of a submission.

The history is kept as a JSON text column by the data layer; validating it
on load catches hand-edited or truncated rows before they reach the
renewal jobs.
"""

RENEWAL_HISTORY_SCHEMA: dict = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "title": "Consent renewal history",
    "description": "Append-only list of consent renewals, oldest first.",
    "type": "array",
    "items": {
        "type": "object",
        "required": [
            "renewedAt",
            "previousExpiresAt",
            "newExpiresAt",
            "renewedBy",
            "durationMonths",
        ],
        "properties": {
            "renewedAt": {"type": "string", "format": "date-time"},
            "previousExpiresAt": {"type": "string", "format": "date-time"},
            "newExpiresAt": {"type": "string", "format": "date-time"},
            "renewedBy": {
                "type": "string",
                "enum": ["auto", "patient", "provider"],
                "description": "Who triggered the renewal.",
            },
            "durationMonths": {
                "type": "integer",
                "minimum": 1,
                "description": "Months added to the previous expiry.",
            },
        },
        "additionalProperties": False,
    },
}
