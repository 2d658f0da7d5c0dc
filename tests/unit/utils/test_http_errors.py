import requests

from uploadx.utils.http_errors import extract_error_detail


def _response(status: int, body: bytes) -> requests.Response:
    response = requests.Response()
    response.status_code = status
    response._content = body
    return response


def test_nested_error_message():
    response = _response(400, b'{"error": {"message": "Range mismatch"}}')

    assert extract_error_detail(response) == "Range mismatch"


def test_detail_string():
    response = _response(404, b'{"detail": "Upload not found"}')

    assert extract_error_detail(response) == "Upload not found"


def test_non_dict_payload():
    assert extract_error_detail(_response(500, b'["boom"]')) == "['boom']"


def test_plain_text_body():
    assert extract_error_detail(_response(502, b"Bad gateway")) == "Bad gateway"


def test_empty_body():
    assert extract_error_detail(_response(500, b"")) is None
