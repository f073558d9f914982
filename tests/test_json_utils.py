from __future__ import annotations

import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from platform_web.errors import BadRequestError
from platform_web.json_utils import (
    InvalidJsonError,
    JSONObject,
    JSONTypeError,
    dump_json_str,
    load_json_str,
    narrow_json_to_dict,
    register_json_error_handler,
    require_str,
)


def test_dump_json_str_modes() -> None:
    value = {"a": [1, 2]}
    assert dump_json_str(value) == '{"a":[1,2]}'
    assert dump_json_str(value, compact=False) == '{"a": [1, 2]}'


def test_load_json_str() -> None:
    assert load_json_str('{"a": null, "b": [true, 1.5]}') == {"a": None, "b": [True, 1.5]}


def test_load_json_rejects_invalid() -> None:
    with pytest.raises(InvalidJsonError, match="Invalid JSON payload"):
        load_json_str("{oops")


def test_narrow_json_to_dict() -> None:
    assert narrow_json_to_dict({"a": 1}) == {"a": 1}
    with pytest.raises(JSONTypeError, match="Expected JSON object, got list"):
        narrow_json_to_dict([1])


def test_require_str() -> None:
    obj: JSONObject = {"name": "orders", "empty": "", "count": 3, "nothing": None}
    assert require_str(obj, "name") == "orders"
    assert require_str(obj, "empty") == ""
    with pytest.raises(JSONTypeError, match="Missing required field 'missing'"):
        require_str(obj, "missing")
    with pytest.raises(JSONTypeError, match="Missing required field 'nothing'"):
        require_str(obj, "nothing")
    with pytest.raises(JSONTypeError, match="must be a string, got int"):
        require_str(obj, "count")


def test_register_json_error_handler_reraises_bad_request() -> None:
    app = FastAPI()

    @app.post("/orders", response_model=None)
    async def create_order(request: Request) -> dict[str, str]:
        load_json_str((await request.body()).decode("utf-8"))
        return {"status": "ok"}

    register_json_error_handler(app, detail="Order body is not JSON")
    client = TestClient(app)

    with pytest.raises(BadRequestError) as excinfo:
        client.post("/orders", content=b"{oops")
    assert excinfo.value.message == "Order body is not JSON"
    assert excinfo.value.parameters == {"body": "Invalid JSON payload"}
    assert isinstance(excinfo.value.__cause__, InvalidJsonError)
