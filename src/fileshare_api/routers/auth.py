from fastapi import APIRouter, Depends, status

from fileshare_api.dependencies import get_current_user, get_user_service
from fileshare_api.responses import success_response
from fileshare_api.schemas import AuthenticatedUser, TokenValidationResponse
from fileshare_api.services.user_service import UserService

router = APIRouter()


@router.get("/auth/validate", responses={status.HTTP_200_OK: {"model": TokenValidationResponse}})
async def validate_token(
    user: AuthenticatedUser = Depends(get_current_user),
    user_service: UserService = Depends(get_user_service),
):
    """
    Confirm the bearer token is valid and record the sign-in.

    The user's row is upserted on `(provider, provider_id)` with the token's `sub` as id.
    """
    synced = user_service.sync_user(user)
    email = synced.email if synced else user.email
    return success_response(TokenValidationResponse(user_id=user.user_id, email=email))
