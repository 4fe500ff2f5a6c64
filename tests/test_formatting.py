from __future__ import annotations

from toolwire.core.schemas import ToolDescriptor
from toolwire.tools.catalog import ToolListing
from toolwire.tools.errors import ErrorKind
from toolwire.tools.formatting import format_call_result, format_tool_listing
from toolwire.tools.results import CallFailure, CallSuccess, to_response_dict


def test_listing_marks_required_parameters():
    listing = ToolListing(tools=[ToolDescriptor(
        name="search",
        description="Search the catalog",
        inputSchema={"properties": {"q": {}, "limit": {}}, "required": ["q"]},
    )])
    text = format_tool_listing(listing, "files")
    assert "1. search" in text
    assert "Parameters: q*, limit" in text


def test_listing_error_and_empty():
    assert format_tool_listing(ToolListing(error="Server not connected"), "files") == "Error: Server not connected"
    assert format_tool_listing(ToolListing(), "files") == "Server files exposes no tools"


def test_success_prefers_parsed_json_then_text():
    as_json = CallSuccess(tool_name="t", progress_token="p", payload={"content": [{"type": "text", "text": "{\"a\": 1}"}]})
    as_text = CallSuccess(tool_name="t", progress_token="p", payload={"content": [{"type": "text", "text": "hello"}]})
    tool_error = CallSuccess(tool_name="t", progress_token="p", payload={"isError": True, "error": "Tool 't' error: nope"})
    assert format_call_result(as_json) == '{\n  "a": 1\n}'
    assert format_call_result(as_text) == "hello"
    assert format_call_result(tool_error) == "Tool error: Tool 't' error: nope"


def test_auth_failure_hint():
    failure = CallFailure(
        tool_name="t",
        error_kind=ErrorKind.AUTHENTICATION_FAILURE,
        message="expired",
        status_code=401,
        requires_authentication=True,
    )
    assert "Re-authenticate" in format_call_result(failure)


def test_response_dict_drops_empty_fields():
    failure = CallFailure(tool_name="t", error_kind=ErrorKind.NOT_FOUND, message="gone", status_code=404)
    assert to_response_dict(failure) == {
        "success": False,
        "error": "gone",
        "statusCode": 404,
        "errorType": "not_found",
        "toolName": "t",
    }
