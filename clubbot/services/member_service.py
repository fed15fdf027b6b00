"""
Member creation — turns a processed registration into a club player.

This service is not idempotent by itself; callers enforce at-most-once.
The unique registration_id column is a last line of defence: a second
insert for the same registration raises MemberAlreadyExists.
"""
from __future__ import annotations

import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from clubbot.models.models import Member, MemberStatus
from clubbot.services.exceptions import MemberAlreadyExists
from clubbot.services.schemas import MemberSnapshot, RegistrationSnapshot

logger = logging.getLogger(__name__)


def split_player_name(player_name: str) -> tuple[str, str]:
    """First token is the first name, the rest are surnames."""
    parts = player_name.split()
    if not parts:
        return "", ""
    return parts[0], " ".join(parts[1:])


def member_from_registration(registration: RegistrationSnapshot) -> Member:
    first_name, last_name = split_player_name(registration.player_name)
    return Member(
        registration_id=registration.id,
        first_name=first_name,
        last_name=last_name,
        birth_date=registration.birth_date or None,
        dni=registration.player_dni or None,
        phone=registration.contact_phone or None,
        email=registration.email or None,
        address=registration.address,
        city=registration.city,
        postal_code=registration.postal_code,
        category=registration.team or None,
        notes=registration.comments,
        status=MemberStatus.ACTIVE,
    )


async def get_member_for_registration(
    session: AsyncSession,
    registration_id: int,
) -> Optional[Member]:
    result = await session.execute(
        select(Member).where(Member.registration_id == registration_id)
    )
    return result.scalar_one_or_none()


async def list_members(session: AsyncSession) -> List[Member]:
    result = await session.execute(select(Member).order_by(Member.last_name, Member.first_name))
    return list(result.scalars().all())


class MemberService:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._factory = session_factory

    async def create_from_registration(
        self,
        registration: RegistrationSnapshot,
    ) -> MemberSnapshot:
        async with self._factory() as session:
            if await get_member_for_registration(session, registration.id) is not None:
                raise MemberAlreadyExists(registration.id)

            member = member_from_registration(registration)
            session.add(member)
            try:
                await session.flush()
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise MemberAlreadyExists(registration.id) from exc

            logger.info(
                "Member %d (%s) created from registration %d",
                member.id, member.display_name, registration.id,
            )
            return MemberSnapshot.model_validate(member)
