from fastapi import APIRouter, Depends

from paywall.auth import current_active_user
from paywall.schemas.users import User, UserRead

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/me", response_model=UserRead)
async def read_current_user(user: User = Depends(current_active_user)) -> UserRead:
    return UserRead.from_user(user)
