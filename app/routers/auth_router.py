import logging
from typing import Callable

from fastapi import APIRouter, Depends, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.routing import APIRoute
from sqlalchemy.orm import Session
from app import auth
from app.database import get_db
from app.dependencies import get_current_user
from app.errors import AppError, UnexpectedError, error_body, flatten_validation_errors
from app.models import User
from app.schemas import LoginRequest, LoginResponse, MessageResponse, UserResponse, UserSummary

logger = logging.getLogger(__name__)


class LoginRoute(APIRoute):
    """
    Route class for /login.

    Login clients expect "status": "failure" on every error, with
    "Validation error" for bad input and "An error occurred during login"
    for store failures. Other routes use the app-wide "error" envelope.
    """

    def get_route_handler(self) -> Callable:
        original_handler = super().get_route_handler()

        async def login_handler(request: Request) -> Response:
            try:
                return await original_handler(request)
            except RequestValidationError as exc:
                return JSONResponse(
                    status_code=422,
                    content=error_body(
                        "Validation error",
                        flatten_validation_errors(exc.errors()),
                        status="failure",
                    ),
                )
            except UnexpectedError as exc:
                return JSONResponse(
                    status_code=500,
                    content=error_body(
                        "An error occurred during login", status="failure", error=exc.message
                    ),
                )
            except AppError as exc:
                return JSONResponse(
                    status_code=exc.status_code,
                    content=error_body(exc.message, exc.errors, status="failure"),
                )

        return login_handler


login_router = APIRouter(tags=["auth"], route_class=LoginRoute)
router = APIRouter(tags=["auth"])


@login_router.post("/login", response_model=LoginResponse)
async def login(request: LoginRequest, db: Session = Depends(get_db)):
    """
    Authenticate user and issue a bearer token.

    Process:
    1. Validate input (done by Pydantic)
    2. Look up user by lower-cased email
    3. Verify password hash
    4. Mint and store a new token
    5. Return token, role and user summary

    Error cases:
    - 422: Validation failed (email malformed, password empty)
    - 401: Invalid credentials, same message for unknown email and bad password
    - 500: Database error

    Every login mints a new token; earlier tokens stay valid.
    """
    token, user = auth.login(db, request.email, request.password)

    return LoginResponse(
        user_type=user.role,
        token=token,
        user=UserSummary.model_validate(user),
    )


@router.post("/logout", response_model=MessageResponse)
async def logout(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """
    Revoke every token of the calling user, not just the one used here.

    Error cases:
    - 401: Missing or invalid token (handled by dependency)
    - 500: Database error

    Idempotent at the store level: no tokens left is not an error.
    """
    auth.revoke_user_tokens(db, user.id)
    return MessageResponse(message="Successfully logged out")


@router.get("/user", response_model=UserResponse)
async def current_user(user: User = Depends(get_current_user)):
    """
    Get authenticated user's information.

    Returns 401 if not authenticated (handled by dependency).
    """
    return user


@router.get("/user/profile")
async def profile(user: User = Depends(get_current_user)):
    return {"success": True}
