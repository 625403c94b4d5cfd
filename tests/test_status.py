from __future__ import annotations

from typing import Dict, Mapping

import pytest

from prerender.services.session import BrowserResponse
from prerender.services.status import allows_body, is_metadata_response, parse_status_override, resolve_status


class StubResponse(BrowserResponse):
    def __init__(self, headers: Dict[str, str]) -> None:
        self._headers = headers

    def status(self) -> int:
        return 200

    def headers(self) -> Mapping[str, str]:
        return self._headers


@pytest.mark.unit
@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("503", 503),
        (" 404 ", 404),
        ("410 Gone", 410),
        (201, 201),
        ("", None),
        (None, None),
        ("abc", None),
        ("0", None),
        ("99", None),
        ("600", None),
        ("101", None),
        ("199", None),
        ("204", None),
        ("205", None),
        ("304", None),
        (True, None),
    ],
)
def test_parse_status_override(raw, expected) -> None:
    assert parse_status_override(raw) == expected


@pytest.mark.unit
@pytest.mark.parametrize(
    ("base", "override", "expected"),
    [
        (200, None, 200),
        (304, None, 200),
        (200, 503, 503),
        (304, 201, 201),
        (500, 503, 500),
        (404, 200, 404),
        (301, 404, 301),
    ],
)
def test_resolve_status(base: int, override, expected: int) -> None:
    assert resolve_status(base, override) == expected


@pytest.mark.unit
def test_metadata_header_lookup_is_case_insensitive() -> None:
    assert is_metadata_response(StubResponse({"Metadata-Flavor": "Google"}))
    assert is_metadata_response(StubResponse({"metadata-flavor": "Google"}))
    assert not is_metadata_response(StubResponse({"metadata-flavor": "Amazon"}))
    assert not is_metadata_response(StubResponse({}))


@pytest.mark.unit
@pytest.mark.parametrize(("status", "expected"), [(200, True), (404, True), (204, False), (205, False), (304, False), (101, False)])
def test_allows_body(status: int, expected: bool) -> None:
    assert allows_body(status) is expected
