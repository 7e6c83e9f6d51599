"""Account endpoints: registration, login and the current profile."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from src.middleware.auth import current_user
from src.models.request import LoginInput, RegisterInput, VerifyAccountInput
from src.models.user import User
from src.services.accounts import AccountService

router = APIRouter(prefix="/auth", tags=["auth"])


def _accounts(request: Request) -> AccountService:
    return request.app.state.accounts


@router.post("/register", status_code=201)
async def register(body: RegisterInput, request: Request) -> dict:
    user, token = await _accounts(request).register(body)
    return {
        "success": True,
        "message": "User registered successfully. A verification code has been sent to your phone.",
        "token": token,
        "user": user.public_view(),
    }


@router.post("/login")
async def login(body: LoginInput, request: Request) -> dict:
    user, token = await _accounts(request).login(body)
    return {"success": True, "message": "Login successful", "token": token, "user": user.public_view()}


@router.get("/me")
async def me(user: User = Depends(current_user)) -> dict:
    return {"success": True, "user": user.public_view()}


@router.post("/verify")
async def verify(body: VerifyAccountInput, request: Request, user: User = Depends(current_user)) -> dict:
    verified = await _accounts(request).verify(user.user_id, body.code)
    return {"success": True, "message": "Account verified", "user": verified.public_view()}


@router.post("/verify/resend")
async def resend_verification(request: Request, user: User = Depends(current_user)) -> dict:
    refreshed = await _accounts(request).resend_verification(user.user_id)
    if refreshed.is_verified:
        return {"success": True, "message": "Account is already verified"}
    return {"success": True, "message": "A new verification code has been sent"}
