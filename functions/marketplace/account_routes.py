"""
HTTP routes for registration, sign-in, profiles and administration.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, File, UploadFile

from marketplace.auth import Identity
from marketplace.context import MarketplaceContext
from marketplace.dependencies import get_context, get_identity, require_admin
from marketplace.errors import NotFoundError
from marketplace.schemas import (
    AdminProfileUpdatePayload,
    DeleteAccountPayload,
    LoginPayload,
    LoginResponse,
    MeResponse,
    MessageResponse,
    PasswordResetPayload,
    ProfilePictureResponse,
    ProfileUpdatePayload,
    RegisterPayload,
    RegisterResponse,
    StatusResponse,
    UserProfileOut,
    WorkerProfileOut,
)
from shared.firebase_constants import USERS_COLLECTION, WORKERS_COLLECTION
from shared.types import UserType

router = APIRouter()


def _me(context: MarketplaceContext, uid: str) -> MeResponse:
    user_type = context.users.user_type(uid)
    if user_type is None:
        raise NotFoundError(USERS_COLLECTION, uid)
    if user_type == UserType.WORKER:
        profile = WorkerProfileOut.model_validate(context.users.get_worker(uid))
    else:
        profile = UserProfileOut.model_validate(context.users.get_user(uid))
    return MeResponse(user_type=user_type, profile=profile)


@router.post("/auth/register", response_model=RegisterResponse, status_code=201)
def register(
    payload: RegisterPayload, context: MarketplaceContext = Depends(get_context)
):
    uid = context.accounts.register(**payload.model_dump())
    return RegisterResponse(uid=uid, user_type=payload.user_type)


@router.post("/auth/login", response_model=LoginResponse)
def login(payload: LoginPayload, context: MarketplaceContext = Depends(get_context)):
    result = context.accounts.sign_in(payload.email, payload.password)
    return LoginResponse(
        uid=result.uid,
        id_token=result.id_token,
        refresh_token=result.refresh_token,
        expires_in=result.expires_in,
        user_type=context.users.user_type(result.uid),
    )


@router.post("/auth/logout", response_model=StatusResponse)
def logout(
    identity: Identity = Depends(get_identity),
    context: MarketplaceContext = Depends(get_context),
):
    context.accounts.sign_out(identity.uid)
    return StatusResponse()


@router.post("/auth/password-reset", response_model=MessageResponse)
def password_reset(
    payload: PasswordResetPayload, context: MarketplaceContext = Depends(get_context)
):
    context.accounts.request_password_reset(payload.email)
    return MessageResponse(message="Password reset email sent!")


@router.get("/me", response_model=MeResponse)
def get_me(
    identity: Identity = Depends(get_identity),
    context: MarketplaceContext = Depends(get_context),
):
    return _me(context, identity.uid)


@router.patch("/me", response_model=MeResponse)
def update_me(
    payload: ProfileUpdatePayload,
    identity: Identity = Depends(get_identity),
    context: MarketplaceContext = Depends(get_context),
):
    context.users.update_profile(identity.uid, **payload.model_dump(exclude_unset=True))
    return _me(context, identity.uid)


@router.post("/me/profile-picture", response_model=ProfilePictureResponse)
async def upload_profile_picture(
    file: UploadFile = File(...),
    identity: Identity = Depends(get_identity),
    context: MarketplaceContext = Depends(get_context),
):
    data = await file.read()
    url = context.users.upload_profile_picture(
        identity.uid,
        file.filename or "",
        data,
        file.content_type or "application/octet-stream",
    )
    return ProfilePictureResponse(url=url)


@router.post("/me/delete", response_model=StatusResponse)
def delete_me(
    payload: DeleteAccountPayload,
    identity: Identity = Depends(get_identity),
    context: MarketplaceContext = Depends(get_context),
):
    context.accounts.delete_account(identity.uid, payload.confirmation_text)
    return StatusResponse()


@router.get("/users/{uid}", response_model=UserProfileOut)
def get_user_profile(
    uid: str,
    identity: Identity = Depends(get_identity),
    context: MarketplaceContext = Depends(get_context),
):
    return UserProfileOut.model_validate(context.users.get_user(uid))


@router.get("/workers/{uid}", response_model=WorkerProfileOut)
def get_worker_profile(
    uid: str,
    identity: Identity = Depends(get_identity),
    context: MarketplaceContext = Depends(get_context),
):
    # Refresh the cached average before showing the profile.
    context.users.get_worker(uid)
    context.lifecycle.recompute_worker_rating(uid)
    return WorkerProfileOut.model_validate(context.users.get_worker(uid))


# Admin


@router.get("/admin/users", response_model=list[UserProfileOut])
def admin_list_users(
    identity: Identity = Depends(require_admin),
    context: MarketplaceContext = Depends(get_context),
):
    return [UserProfileOut.model_validate(u) for u in context.users.list_users()]


@router.get("/admin/workers", response_model=list[WorkerProfileOut])
def admin_list_workers(
    identity: Identity = Depends(require_admin),
    context: MarketplaceContext = Depends(get_context),
):
    return [WorkerProfileOut.model_validate(w) for w in context.users.list_workers()]


@router.patch("/admin/profiles/{uid}", response_model=MeResponse)
def admin_update_profile(
    uid: str,
    payload: AdminProfileUpdatePayload,
    identity: Identity = Depends(require_admin),
    context: MarketplaceContext = Depends(get_context),
):
    fields = payload.model_dump(exclude_unset=True)
    username = fields.pop("username", None)
    if username is not None:
        context.accounts.change_username(uid, username)
    context.users.update_profile(uid, admin=True, **fields)
    return _me(context, uid)


@router.delete("/admin/users/{uid}", response_model=StatusResponse)
def admin_delete_user(
    uid: str,
    identity: Identity = Depends(require_admin),
    context: MarketplaceContext = Depends(get_context),
):
    context.accounts.admin_delete_user(uid)
    return StatusResponse()


@router.delete("/admin/workers/{worker_id}", response_model=MessageResponse)
def admin_delete_worker(
    worker_id: str,
    identity: Identity = Depends(require_admin),
    context: MarketplaceContext = Depends(get_context),
):
    if context.users.user_type(worker_id) != UserType.WORKER:
        raise NotFoundError(WORKERS_COLLECTION, worker_id)
    context.accounts.admin_delete_worker(worker_id)
    return MessageResponse(message="Worker and user deleted successfully!")
