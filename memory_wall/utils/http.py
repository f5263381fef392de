from typing import Optional

from flask import abort, request


def read_json_body() -> dict:
    """JSON object body of the request, or 400."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        abort(400, description="Invalid or missing JSON body")
    return data


def iso(value) -> Optional[str]:
    return value.isoformat() if value else None
