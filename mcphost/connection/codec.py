"""
JSON-RPC Wire Codec
===================

Newline-delimited JSON-RPC 2.0 framing. Each message is exactly one JSON
object on one line. Decoding classifies a line by its explicit shape:

    method + id       -> Request       (server-initiated when inbound)
    method, no id     -> Notification  (id absent or null)
    id + result       -> Response
    id + error        -> ErrorResponse

Anything else raises ProtocolError.
"""

import json
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from .errors import ProtocolError
from .values import JSONValue

JSONRPC_VERSION = "2.0"

RequestId = Union[int, str]


@dataclass
class Request:
    """A request expecting exactly one response with the same id."""
    id: RequestId
    method: str
    params: Optional[JSONValue] = None

    def to_dict(self) -> Dict[str, Any]:
        message = {"jsonrpc": JSONRPC_VERSION, "id": self.id, "method": self.method}
        if self.params is not None:
            message["params"] = self.params.to_python()
        return message


@dataclass
class Notification:
    """A fire-and-forget message; no response is ever sent."""
    method: str
    params: Optional[JSONValue] = None

    def to_dict(self) -> Dict[str, Any]:
        message = {"jsonrpc": JSONRPC_VERSION, "method": self.method}
        if self.params is not None:
            message["params"] = self.params.to_python()
        return message


@dataclass
class Response:
    """Successful answer to a request."""
    id: RequestId
    result: JSONValue

    def to_dict(self) -> Dict[str, Any]:
        return {"jsonrpc": JSONRPC_VERSION, "id": self.id, "result": self.result.to_python()}


@dataclass
class ErrorResponse:
    """Failed answer to a request. id is None when the request id was unreadable."""
    id: Optional[RequestId]
    code: int
    message: str
    data: Optional[JSONValue] = None

    def to_dict(self) -> Dict[str, Any]:
        error = {"code": self.code, "message": self.message}
        if self.data is not None:
            error["data"] = self.data.to_python()
        return {"jsonrpc": JSONRPC_VERSION, "id": self.id, "error": error}


Message = Union[Request, Notification, Response, ErrorResponse]


def encode_message(message: Message) -> bytes:
    """
    Encode a message as one UTF-8 line terminated by a newline.

    json.dumps escapes control characters inside strings, so the encoded
    object never contains a raw newline.
    """
    text = json.dumps(message.to_dict(), separators=(',', ':'),
                      ensure_ascii=False, allow_nan=False)
    return (text + "\n").encode('utf-8')


def _valid_id(value: Any) -> bool:
    return isinstance(value, (int, str)) and not isinstance(value, bool)


def _decode_params(raw: Dict[str, Any]) -> Optional[JSONValue]:
    if "params" not in raw or raw["params"] is None:
        return None
    params = raw["params"]
    if not isinstance(params, (dict, list)):
        raise ProtocolError("params must be an object or array")
    return JSONValue.from_python(params)


def decode_message(raw: Any) -> Message:
    """
    Classify an already-parsed JSON document.

    Raises:
        ProtocolError: If the document is not a JSON-RPC 2.0 message
    """
    if not isinstance(raw, dict):
        raise ProtocolError(f"Expected JSON object, got {type(raw).__name__}")

    version = raw.get("jsonrpc")
    if version is not None and version != JSONRPC_VERSION:
        raise ProtocolError(f"Unsupported jsonrpc version: {version!r}")

    try:
        method = raw.get("method")
        has_id = raw.get("id") is not None

        if method is not None:
            if not isinstance(method, str):
                raise ProtocolError("method must be a string")
            if has_id:
                if not _valid_id(raw["id"]):
                    raise ProtocolError(f"Invalid request id: {raw['id']!r}")
                return Request(id=raw["id"], method=method, params=_decode_params(raw))
            return Notification(method=method, params=_decode_params(raw))

        if "error" in raw:
            error = raw["error"]
            if not isinstance(error, dict):
                raise ProtocolError("error must be an object")
            code = error.get("code")
            if not isinstance(code, int) or isinstance(code, bool):
                raise ProtocolError("error.code must be an integer")
            request_id = raw.get("id")
            if request_id is not None and not _valid_id(request_id):
                raise ProtocolError(f"Invalid response id: {request_id!r}")
            data = error.get("data")
            return ErrorResponse(
                id=request_id,
                code=code,
                message=str(error.get("message", "")),
                data=JSONValue.from_python(data) if data is not None else None,
            )

        if has_id and "result" in raw:
            if not _valid_id(raw["id"]):
                raise ProtocolError(f"Invalid response id: {raw['id']!r}")
            return Response(id=raw["id"], result=JSONValue.from_python(raw["result"]))
    except ValueError as e:
        raise ProtocolError(f"Unrepresentable value in message: {e}") from e

    raise ProtocolError("Message is neither request, notification nor response")


def decode_line(line: Union[bytes, str]) -> Message:
    """
    Decode one line read from the provider's stdout.

    Raises:
        ProtocolError: On invalid UTF-8, malformed JSON or unknown shape
    """
    if isinstance(line, bytes):
        try:
            line = line.decode('utf-8')
        except UnicodeDecodeError as e:
            raise ProtocolError(f"Invalid UTF-8 on the wire: {e}") from e

    line = line.strip()
    if not line:
        raise ProtocolError("Empty line")

    try:
        raw = json.loads(line)
    except json.JSONDecodeError as e:
        raise ProtocolError(f"Malformed JSON: {e}") from e

    return decode_message(raw)
