from typing import Optional
from fastapi import Request, HTTPException


def get_workspace_id(request: Request) -> str:
    """
    Resolve the caller's workspace.

    The auth middleware stores it from the JWT claim or the X-Workspace-Id header;
    service requests must send the header.
    """
    workspace_id: Optional[str] = getattr(request.state, "workspace_id", None) or request.headers.get("X-Workspace-Id")
    if not workspace_id:
        raise HTTPException(status_code=400, detail="Workspace ID missing in headers")
    return workspace_id


def is_service_request(request: Request) -> bool:
    return bool(getattr(request.state, "is_service_request", False))
