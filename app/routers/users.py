from fastapi import APIRouter, Depends

from app.crud import user_crud
from app.deps import can_list_users
from app.schemas import UserResponse

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/", response_model=list[UserResponse], dependencies=[Depends(can_list_users)])
async def list_users() -> list[UserResponse]:
    return await user_crud.list_users()
