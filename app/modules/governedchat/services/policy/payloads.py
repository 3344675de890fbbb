"""Request bodies and response parsing for the policy (data security and governance) API."""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from app.modules.governedchat.errors import PolicyScopeError
from app.modules.governedchat.services.policy.state import DOWNLOAD_TEXT, EVALUATE_INLINE, UPLOAD_TEXT

logger = logging.getLogger(__name__)

POLICY_LOCATION_APPLICATION = "#microsoft.graph.policyLocationApplication"


def _application_location(app_id: str) -> Dict[str, str]:
    return {"@odata.type": POLICY_LOCATION_APPLICATION, "value": app_id}


def build_protection_scope_body(app_id: str) -> Dict[str, Any]:
    return {
        "activities": f"{UPLOAD_TEXT},{DOWNLOAD_TEXT}",
        "locations": [_application_location(app_id)],
    }


def build_process_content_body(
    text: str,
    app_name: str,
    sequence: int,
    session_id: str,
    activity: str,
    app_id: str,
    app_version: str = "1.0",
) -> Dict[str, Any]:
    """Body for one content evaluation; correlation id is the chat session id."""
    now = datetime.now(timezone.utc).isoformat()
    return {
        "contentToProcess": {
            "contentEntries": [
                {
                    "@odata.type": "microsoft.graph.processConversationMetadata",
                    "identifier": str(uuid.uuid4()),
                    "content": {
                        "@odata.type": "microsoft.graph.textContent",
                        "data": text,
                    },
                    "name": f"{app_name} {'prompt' if activity == UPLOAD_TEXT else 'response'}",
                    "correlationId": session_id,
                    "sequenceNumber": sequence,
                    "isTruncated": False,
                    "createdDateTime": now,
                    "modifiedDateTime": now,
                }
            ],
            "activityMetadata": {"activity": activity},
            "deviceMetadata": {
                "operatingSystemSpecifications": {
                    "operatingSystemPlatform": "Linux",
                    "operatingSystemVersion": "server",
                },
            },
            "protectedAppMetadata": {
                "name": app_name,
                "version": app_version,
                "applicationLocation": _application_location(app_id),
            },
            "integratedAppMetadata": {"name": app_name, "version": app_version},
        }
    }


def parse_protection_scopes(body: Any, app_id: str) -> Tuple[Dict[str, str], bool]:
    """
    Build activity -> execution mode from a scope response.

    The first mode seen for an activity is kept unless a later entry reports
    evaluateInline, which always wins. Returns the map and whether any entry
    that set a mode listed our application as a location.
    """
    entries = body.get("value") if isinstance(body, dict) else None
    if not isinstance(entries, list):
        raise PolicyScopeError("The protection scope response does not contain a valid value array")

    activity_execution_map: Dict[str, str] = {}
    app_id_found = False

    for entry in entries:
        if not isinstance(entry, dict):
            continue
        raw = entry.get("activities")
        activities: List[str] = []
        if isinstance(raw, str):
            activities = [a.strip() for a in raw.split(",") if a.strip()]
        mode = entry.get("executionMode")
        if not isinstance(mode, str):
            continue

        for activity in activities:
            if activity not in activity_execution_map or mode == EVALUATE_INLINE:
                activity_execution_map[activity] = mode

                locations = entry.get("locations")
                for location in locations if isinstance(locations, list) else []:
                    if isinstance(location, dict) and location.get("value") == app_id:
                        app_id_found = True
                        break

    return activity_execution_map, app_id_found


def extract_action(body: Optional[Dict[str, Any]]) -> str:
    actions = body.get("policyActions") if isinstance(body, dict) else None
    if isinstance(actions, list) and actions and isinstance(actions[0], dict):
        return actions[0].get("action") or "default"
    return "default"


def extract_rights_value(label_info: Any) -> str:
    """``value[0].rights.value`` lower-cased, or "" when missing."""
    try:
        raw = label_info["value"][0]["rights"]["value"]
    except (KeyError, IndexError, TypeError):
        return ""
    return raw.lower() if isinstance(raw, str) else ""
