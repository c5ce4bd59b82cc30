"""
Authentication dependency for Supabase-issued JWTs.

The authenticated user id doubles as the document owner id, so every
document route is scoped to the caller's own key prefix.

When a JWT secret is configured the token is verified locally with
python-jose (HS256), avoiding a round-trip to the Supabase Auth API.
Otherwise the token is checked remotely with the Supabase client.
"""

import asyncio
from typing import Optional

from fastapi import Header, HTTPException, Request
from jose import ExpiredSignatureError, JWTError, jwt


async def get_current_user(request: Request, authorization: Optional[str] = Header(None)) -> str:
    """
    Extract and verify the JWT from the Authorization header.

    Returns:
        user_id: Authenticated user's ID (the JWT ``sub`` claim)

    Raises:
        HTTPException: 401 if the token is missing, invalid or expired,
        503 if no verification method is configured
    """
    if not authorization:
        raise HTTPException(status_code=401, detail="Not authenticated")

    # Extract token from "Bearer <token>" format
    parts = authorization.split(" ")
    if len(parts) != 2 or parts[0] != "Bearer":
        raise HTTPException(status_code=401, detail="Invalid authentication credentials")

    token = parts[1]
    settings = request.app.state.settings

    if settings.supabase_jwt_secret:
        return _verify_jwt_locally(token, settings.supabase_jwt_secret)

    supabase = getattr(request.app.state, "supabase", None)
    if supabase is None:
        raise HTTPException(status_code=503, detail="Authentication is not configured")
    return await _verify_jwt_remotely(supabase, token)


def _verify_jwt_locally(token: str, secret: str) -> str:
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=["HS256"],
            options={"verify_aud": False},  # Supabase JWTs use the 'authenticated' role, not a fixed audience
        )
    except ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token")

    user_id: Optional[str] = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token")

    return user_id


async def _verify_jwt_remotely(supabase, token: str) -> str:
    try:
        response = await asyncio.to_thread(supabase.auth.get_user, token)
    except Exception as e:
        if "expired" in str(e).lower():
            raise HTTPException(status_code=401, detail="Token expired")
        raise HTTPException(status_code=401, detail="Invalid token")

    if not response or not response.user:
        raise HTTPException(status_code=401, detail="Invalid token")

    return response.user.id
