"""Viewer identity helpers for FastAPI endpoints.

Session management lives in the gateway in front of this service; it forwards
the authenticated user as ``X-User-Id``. Anonymous browsing sends no header.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status


@dataclass(slots=True, frozen=True)
class Viewer:
	id: UUID


async def get_optional_viewer(
	x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
) -> Optional[Viewer]:
	if not x_user_id:
		return None
	try:
		return Viewer(id=UUID(x_user_id.strip()))
	except ValueError:
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_viewer")


async def get_current_viewer(viewer: Optional[Viewer] = Depends(get_optional_viewer)) -> Viewer:
	if viewer is None:
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="unauthenticated")
	return viewer
