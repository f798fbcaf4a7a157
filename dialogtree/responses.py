"""Uniform JSON response envelopes and server-sent event payloads."""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import IntEnum
from typing import Any


class Code(IntEnum):
    SUCCESS = 0
    FAIL_VALIDATION = 1001
    FAIL_SERVICE = 1002

    def label(self) -> str:
        return _LABELS[self]


_LABELS = {
    Code.SUCCESS: "Success",
    Code.FAIL_VALIDATION: "Validation Failed",
    Code.FAIL_SERVICE: "Service Failed",
}


@dataclass
class Response:
    code: int
    data: Any
    msg: str

    def to_dict(self) -> dict[str, Any]:
        return {"code": int(self.code), "data": self.data, "msg": self.msg}


def success(data: Any, msg: str) -> Response:
    return Response(Code.SUCCESS, data, msg)


def success_with_data(data: Any) -> Response:
    return Response(Code.SUCCESS, data, "Success")


def success_with_msg(msg: str) -> Response:
    return Response(Code.SUCCESS, {}, msg)


def success_with_list(items: Any, count: int) -> Response:
    return Response(Code.SUCCESS, {"list": items, "count": count}, "Success")


def fail(err: BaseException | str, msg: str) -> Response:
    return Response(Code.FAIL_VALIDATION, f"Error: {err}", msg)


def fail_with_msg(msg: str) -> Response:
    return Response(Code.FAIL_VALIDATION, {}, msg)


def fail_with_data(data: Any, msg: str) -> Response:
    return Response(Code.FAIL_SERVICE, data, msg)


def fail_with_code(code: int) -> Response:
    """Failure whose message is the code's label, empty for unknown codes."""
    try:
        known = Code(code)
    except ValueError:
        return Response(int(code), {}, "")
    return Response(known, {}, known.label())


def fail_with_error(err: BaseException | str) -> Response:
    return fail_with_msg(str(err))


def with_list(items: Any, total: int, succeeded: int) -> Response:
    data = {
        "list": items,
        "count(total)": total,
        "count(success)": succeeded,
        "count(fail)": total - succeeded,
    }
    return Response(Code.FAIL_SERVICE, data, f"{succeeded} out of {total} succeed")


def _sse(response: Response) -> str:
    payload = json.dumps(response.to_dict(), ensure_ascii=False, separators=(",", ":"))
    return f"data:{payload}\n\n"


def sse_success(data: Any) -> str:
    """A server-sent event carrying a success envelope."""
    return _sse(Response(Code.SUCCESS, data, "success"))


def sse_fail(msg: str) -> str:
    """A server-sent event carrying a service-failure envelope."""
    return _sse(Response(Code.FAIL_SERVICE, {}, msg))