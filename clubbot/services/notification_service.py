"""
Applicant notification service.

When a registration changes state, the parent who submitted it receives a
message in their Telegram chat. Delivery is fire-and-forget: a blocked bot,
a deleted chat or a network hiccup is logged and never reaches the caller.
"""
from __future__ import annotations

import logging
from typing import Optional

from aiogram import Bot
from aiogram.enums import ParseMode
from aiogram.exceptions import TelegramBadRequest, TelegramForbiddenError

from clubbot.models.models import RegistrationStatus
from clubbot.services.schemas import RegistrationSnapshot

logger = logging.getLogger(__name__)


def _status_text(registration: RegistrationSnapshot) -> Optional[str]:
    if registration.is_converted:
        return (
            f"🎉 *Benvinguts al club!*\n\n"
            f"⚽️ {registration.player_name} ja forma part de la plantilla "
            f"({registration.team}).\n"
            f"Ens posarem en contacte per l'inici d'entrenaments."
        )
    if registration.status == RegistrationStatus.ACCEPTED:
        return (
            f"✅ *Inscripció acceptada*\n\n"
            f"👤 {registration.player_name}\n"
            f"📂 Equip: {registration.team}"
        )
    if registration.status == RegistrationStatus.REJECTED:
        return (
            f"❌ *Inscripció rebutjada*\n\n"
            f"👤 {registration.player_name}\n"
            f"Si creus que és un error, contacta amb el club."
        )
    return None


class Notifier:
    """Sends registration updates to the applicant's chat."""

    def __init__(self, bot: Bot) -> None:
        self._bot = bot

    async def registration_updated(self, registration: RegistrationSnapshot) -> None:
        if not registration.telegram_id:
            return
        text = _status_text(registration)
        if text is None:
            return
        try:
            await self._bot.send_message(
                chat_id=registration.telegram_id,
                text=text,
                parse_mode=ParseMode.MARKDOWN,
            )
        except (TelegramForbiddenError, TelegramBadRequest) as e:
            logger.warning(
                "Could not notify applicant telegram_id=%d: %s", registration.telegram_id, e
            )
