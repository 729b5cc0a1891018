from ..domain.repositories import MemberRepository
from ..models import Member


async def lookup_member(member_repo: MemberRepository, *, member_number: str) -> Member | None:
    """Contact fields for booking-form autofill; None when blank or unknown."""
    number = member_number.strip()
    if not number:
        return None
    return await member_repo.get_by_number(number)
