from typing import Any, Optional


# Success envelope shared by every route: {"success": true, "data": ..., "message"?: ...}
def envelope(data: Any = None, message: Optional[str] = None) -> dict[str, Any]:
    payload: dict[str, Any] = {"success": True}
    if message:
        payload["message"] = message
    if data is not None:
        payload["data"] = data
    return payload
