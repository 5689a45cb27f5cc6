"""
Request dependencies.

Authentication happens at the gateway; it forwards the caller's id in the
X-User-ID header.
"""

from typing import Optional

from fastapi import Header, HTTPException, Request, status

from rsvp_engine.services.rsvp_service import RsvpService


def get_rsvp_service(request: Request) -> RsvpService:
    return request.app.state.rsvp_service


async def get_current_user_id(x_user_id: Optional[str] = Header(None, max_length=128)) -> str:
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-ID header",
        )
    return x_user_id
