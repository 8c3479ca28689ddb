'''
Token handling for the acting identity.

Tokens are issued by the external identity service; this service only
verifies them and extracts the actor id that every write is attributed to.
'''
from typing import Optional, Annotated
from uuid import UUID
from jose import JWTError, jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..common.config import settings
from ..models.token import TokenPayload
from ..common.logger import log

# --- JWT Handling ---
class JWTHandler:
    @staticmethod
    def decode_token(token: str) -> TokenPayload | None:
        try:
            payload = jwt.decode(
                token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM]
            )
            return TokenPayload(**payload)
        except (JWTError, ValueError) as e: # Catch Pydantic validation errors too
            log.warning(f"JWT decode/validation error: {e}")
            return None

# --- JWT Verification Dependency Function ---
bearer_scheme = HTTPBearer(auto_error=False)

async def get_current_actor_id(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(bearer_scheme)]
    ) -> UUID:
    """
    Dependency that verifies the bearer JWT and returns the acting user's id.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None:
        log.warning("Request without bearer token on a protected route.")
        raise credentials_exception

    token_data = JWTHandler.decode_token(credentials.credentials)
    if not token_data:
        log.warning("JWT decode failed or invalid token structure.")
        raise credentials_exception

    return token_data.sub
