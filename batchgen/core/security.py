from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from starlette.concurrency import run_in_threadpool

from batchgen.core.firebase import verify_id_token

security_scheme = HTTPBearer()


async def get_current_user_id(token: Annotated[HTTPAuthorizationCredentials, Depends(security_scheme)]) -> str:
  """Verify the Firebase ID token and return the caller's uid as the tenant user id."""
  # Token verification does blocking I/O for key fetches; keep it off the event loop.
  decoded_claims = await run_in_threadpool(verify_id_token, token.credentials)

  if not decoded_claims:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid authentication credentials", headers={"WWW-Authenticate": "Bearer"})

  firebase_uid = decoded_claims.get("uid")
  if not firebase_uid:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token claims")

  return str(firebase_uid)
