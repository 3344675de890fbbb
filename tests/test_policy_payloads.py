import pytest

from app.modules.governedchat.errors import PolicyScopeError
from app.modules.governedchat.services.policy.payloads import (
    build_process_content_body,
    build_protection_scope_body,
    extract_action,
    extract_rights_value,
    parse_protection_scopes,
)

APP_ID = "app-id-123"


def scope(activities, mode, app_id=APP_ID):
    return {
        "activities": activities,
        "executionMode": mode,
        "locations": [{"@odata.type": "#microsoft.graph.policyLocationApplication", "value": app_id}],
    }


def test_inline_mode_wins_over_earlier_entries():
    body = {"value": [
        scope("uploadText", "evaluateOffline"),
        scope("uploadText,downloadText", "evaluateInline"),
    ]}

    modes, found = parse_protection_scopes(body, APP_ID)

    assert modes == {"uploadText": "evaluateInline", "downloadText": "evaluateInline"}
    assert found


def test_first_non_inline_mode_is_kept():
    body = {"value": [
        scope("downloadText", "evaluateOffline"),
        scope("downloadText", "default"),
    ]}

    modes, _ = parse_protection_scopes(body, APP_ID)

    assert modes == {"downloadText": "evaluateOffline"}


def test_inline_is_not_downgraded_by_later_entries():
    body = {"value": [
        scope("uploadText", "evaluateInline"),
        scope("uploadText", "evaluateOffline"),
    ]}

    modes, _ = parse_protection_scopes(body, APP_ID)

    assert modes["uploadText"] == "evaluateInline"


def test_unknown_application_is_reported():
    modes, found = parse_protection_scopes({"value": [scope("uploadText", "evaluateInline", "other-app")]}, APP_ID)

    assert modes == {"uploadText": "evaluateInline"}
    assert not found


def test_empty_scope_list_means_default_modes():
    assert parse_protection_scopes({"value": []}, APP_ID) == ({}, False)


@pytest.mark.parametrize("body", [{}, {"value": "nope"}, None, []])
def test_malformed_scope_response_raises(body):
    with pytest.raises(PolicyScopeError):
        parse_protection_scopes(body, APP_ID)


def test_scope_request_lists_both_activities():
    body = build_protection_scope_body(APP_ID)

    assert body["activities"] == "uploadText,downloadText"
    assert body["locations"][0]["value"] == APP_ID


def test_process_content_body_correlates_by_session():
    body = build_process_content_body("hello", "MyApp", 7, "session-1", "uploadText", APP_ID)

    content = body["contentToProcess"]
    entry = content["contentEntries"][0]
    assert entry["content"]["data"] == "hello"
    assert entry["correlationId"] == "session-1"
    assert entry["sequenceNumber"] == 7
    assert content["activityMetadata"] == {"activity": "uploadText"}
    assert content["protectedAppMetadata"]["applicationLocation"]["value"] == APP_ID


def test_extract_action():
    assert extract_action({"policyActions": [{"action": "restrictAccess"}]}) == "restrictAccess"
    assert extract_action({"policyActions": []}) == "default"
    assert extract_action({}) == "default"
    assert extract_action(None) == "default"
    assert extract_action(["restrictAccess"]) == "default"
    assert extract_action({"policyActions": "restrictAccess"}) == "default"


def test_extract_rights_value():
    assert extract_rights_value({"value": [{"rights": {"value": "VIEW"}}]}) == "view"
    assert extract_rights_value({"value": []}) == ""
    assert extract_rights_value({"value": [{"rights": None}]}) == ""
