import json
from datetime import datetime, timezone
from typing import Dict, Optional


def iso_timestamp() -> str:
    """UTC timestamp for structured CLI output."""
    return datetime.now(timezone.utc).isoformat()


def structured_response(
    command: str,
    *,
    status: str = "OK",
    message: str = "",
    payload: Optional[Dict] = None,
    exit_code: int = 0,
) -> int:
    """Unified JSON envelope printed by every command."""
    body: Dict[str, object] = {
        "command": command,
        "status": status,
        "message": message,
        "timestamp": iso_timestamp(),
        "payload": payload or {},
    }
    print(json.dumps(body, ensure_ascii=False, indent=2))
    return exit_code


def structured_error(command: str, message: str, *, code: str = "ERROR", payload: Optional[Dict] = None) -> int:
    body = dict(payload or {})
    body["code"] = code
    return structured_response(command, status="ERROR", message=message, payload=body, exit_code=1)


__all__ = ["iso_timestamp", "structured_response", "structured_error"]
