from fastapi import APIRouter, Depends, HTTPException, status

from ..deps import get_current_user_id, get_member_repo
from ..infrastructure.repositories import SqlAlchemyMemberRepository
from ..schemas import MemberRead
from ..usecases import members as member_usecase

router = APIRouter(prefix="/members", tags=["members"], dependencies=[Depends(get_current_user_id)])


@router.get("/{member_number}", response_model=MemberRead)
async def get_member(
    member_number: str,
    member_repo: SqlAlchemyMemberRepository = Depends(get_member_repo),
) -> MemberRead:
    member = await member_usecase.lookup_member(member_repo, member_number=member_number)
    if member is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="member not found")
    return MemberRead.from_db(member=member)
