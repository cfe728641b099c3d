from __future__ import annotations

from typing import Optional, Protocol

from tripledger.db.models import Member
from tripledger.errors import AuthorizationError


class MemberLookup(Protocol):
    async def get_member_by_user(self, group_id: int, user_id: int) -> Optional[Member]: ...


async def is_group_admin(repo: MemberLookup, group_id: int, user_id: int) -> bool:
    member = await repo.get_member_by_user(group_id, user_id)
    return member is not None and member.is_admin


async def assert_group_admin(repo: MemberLookup, group_id: int, user_id: int) -> Member:
    member = await repo.get_member_by_user(group_id, user_id)
    if member is None or not member.is_admin:
        raise AuthorizationError("Only group admins can perform this action.")
    return member


async def assert_group_member(repo: MemberLookup, group_id: int, user_id: int) -> Member:
    member = await repo.get_member_by_user(group_id, user_id)
    if member is None:
        raise AuthorizationError("You are not a member of this group.")
    return member
