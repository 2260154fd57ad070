import logging
from fastapi import APIRouter, Depends, HTTPException, status, Response, Request
from fastapi.security import OAuth2PasswordBearer, OAuth2PasswordRequestForm
from datetime import datetime, timedelta, timezone
from uuid import uuid4
import jwt
from passlib.context import CryptContext
from pydantic import ValidationError

from .schemas.user import Token, TokenData, LoginRequest, UserResponse, LoginResponse
from ..models.redis_models import UserSessionRedis
from ..db.redis_client import RedisClient
from ..db.db_client import AsyncPostgresClient
from ..services.access import AuthContext
from ..config.config import settings
from .dependencies import get_db_client, get_redis_client
from .utilities.limiter import limiter

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/auth",
    tags=["Authentication"]
)
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/token")
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)

def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)

def create_access_token(data: dict, expires_delta: timedelta):
    """Creates a signed JWT carrying `data` that expires after `expires_delta`."""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + expires_delta
    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
    return encoded_jwt


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    redis_client: RedisClient = Depends(get_redis_client)
) -> AuthContext:
    """
    Decodes the token, validates its claims with pydantic, requires a live
    login session in Redis and returns the caller's AuthContext.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        token_data = TokenData.model_validate(payload)
    except (jwt.PyJWTError, ValidationError) as e:
        logger.warning(f"Token validation error: {e}")
        raise credentials_exception

    if token_data.sub is None:
        logger.warning("Token is valid but carries no subject.")
        raise credentials_exception

    user_session = await redis_client.get_user_session(token_data.sub)
    if user_session is None:
        logger.warning(f"User '{token_data.sub}' has a valid token but no active session in Redis. Denying access.")
        raise credentials_exception

    return AuthContext.for_user(user_session.user_data)


async def _perform_login(email: str, password: str, db_client: AsyncPostgresClient,
                         redis_client: RedisClient) -> LoginResponse:
    logger.info(f"Login attempt for '{email}'.")
    try:
        account = await db_client.get_user_credentials(email)
    except Exception as e:
        logger.error(f"Unexpected error during login: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="An unexpected server error occurred during login.")

    if account is None or not verify_password(password, account.password_hash):
        logger.warning(f"Authentication failed for '{email}' (invalid credentials).")
        raise HTTPException(status_code=401, detail="Invalid email or password.")

    user_data = UserResponse.model_validate(account)
    ttl = settings.SESSION_TTL_SECONDS
    now = datetime.now(timezone.utc)
    redis_session = UserSessionRedis(
        user_data=account.model_dump(exclude={"password_hash"}),
        session_id=uuid4(),
        session_start_time=now,
        session_end_time=now + timedelta(seconds=ttl),
    )
    try:
        await redis_client.save_user_session(redis_session, ttl=ttl)
    except Exception as e:
        logger.error(f"Could not store the login session of '{account.user_id}'.", exc_info=True)
        raise HTTPException(status_code=503, detail="Login is temporarily unavailable.")
    logger.info(f"Redis session created for user '{account.user_id}' with a TTL of {ttl} seconds.")

    access_token = create_access_token(data={"sub": account.user_id}, expires_delta=timedelta(seconds=ttl))
    logger.info(f"User '{account.user_id}' ({account.role.value}) logged in successfully.")
    return LoginResponse(token=Token(access_token=access_token), user=user_data)


@router.post("/token", response_model=Token)
@limiter.limit("20/minute")
async def login_for_access_token(
    request: Request,
    form_data: OAuth2PasswordRequestForm = Depends(),
    db_client: AsyncPostgresClient = Depends(get_db_client),
    redis_client: RedisClient = Depends(get_redis_client)
):
    """Standard OAuth2 endpoint for Swagger UI. The username field takes the e-mail."""
    login_response = await _perform_login(form_data.username, form_data.password, db_client, redis_client)
    return login_response.token


@router.post("/login", response_model=LoginResponse)
@limiter.limit("20/minute")
async def login(
    request: Request,
    login_request: LoginRequest,
    db_client: AsyncPostgresClient = Depends(get_db_client),
    redis_client: RedisClient = Depends(get_redis_client)
):
    """Login endpoint for mobile/web clients."""
    return await _perform_login(login_request.email, login_request.password, db_client, redis_client)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("60/minute")
async def logout(
    request: Request,
    redis_client: RedisClient = Depends(get_redis_client),
    current_user: AuthContext = Depends(get_current_user)
):
    """User logout, deletes the session from Redis."""
    logger.info(f"User '{current_user.user_id}' logging out.")
    try:
        await redis_client.delete_user_session(current_user.user_id)
        logger.info(f"Session for user '{current_user.user_id}' successfully deleted from Redis.")
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    except Exception as e:
        logger.error(f"Error during logout for user '{current_user.user_id}'.", exc_info=True)
        raise HTTPException(status_code=500, detail="An error occurred during logout.")
