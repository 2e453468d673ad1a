from typing import Any, Optional


def ok(data: Any = None, message: Optional[str] = None, **extra) -> dict:
    """Success envelope shared by every router."""
    body = {"success": True}
    if message is not None:
        body["message"] = message
    if data is not None:
        body["data"] = data
    body.update(extra)
    return body
