from typing import Any, Dict, Optional

from kubedyn.errors import ApiError


def is_status_failure(body: Any) -> bool:
    return (
        isinstance(body, dict)
        and body.get("kind") == "Status"
        and body.get("status") == "Failure"
    )


def synthesize_status(code: int, reason: Optional[str], message: str) -> Dict[str, Any]:
    """
    Some rejections (typically 401/403 from an authenticating proxy) come back
    as plain text rather than as a Status. Dress them up as one.
    """

    return {
        "apiVersion": "v1",
        "kind": "Status",
        "status": "Failure",
        "code": code,
        "reason": reason,
        "message": message,
        "metadata": {},
    }


def translate_status(
    status: int, reason: Optional[str], body: Any, cooked: bool = True
) -> Any:
    """
    Return `body` if the response is a success, raise ApiError otherwise.

    Callers who did not ask for a cooked (json) response get the body back
    untouched and have to do their own checking.
    """

    if not cooked:
        return body

    if is_status_failure(body):
        failure = dict(body)
        failure["message"] = body.get("message") or ""
        raise ApiError(failure)

    if isinstance(body, (str, bytes)) and status >= 400:
        text = body.decode("utf-8", "replace") if isinstance(body, bytes) else body
        raise ApiError(synthesize_status(status, reason, text))

    return body
