"""
Message bodies shared by the parent and admin handlers.
"""
from clubbot.models.models import PaymentType, RegistrationStatus, SyncState
from clubbot.services.schemas import RegistrationSnapshot


def sync_line(r: RegistrationSnapshot) -> str:
    if r.sync_state == SyncState.LOCALLY_AHEAD:
        return f"{r.sync_emoji} _Canvi pendent de desar; es tornarà a intentar automàticament._"
    return f"{r.sync_emoji} _Sincronitzat_"


def registration_card(
    r: RegistrationSnapshot,
    admin: bool = False,
    with_sync: bool = True,
) -> str:
    status = RegistrationStatus.LABELS.get(r.status, r.status)
    if r.is_converted:
        status += " · jugador creat"
    lines = [
        f"{r.status_emoji} *{r.player_name or 'Inscripció'}*",
        "━━━━━━━━━━━━━━━━━━",
        f"🎂 Naixement: {r.birth_date or '—'}",
        f"🪪 DNI: {r.player_dni or '—'}",
        f"📂 Equip: {r.team or '—'}",
        f"👪 Responsable: {r.parent_name or '—'}",
        f"📞 {r.contact_phone or '—'}   ✉️ {r.email or '—'}",
    ]
    if r.address or r.city:
        lines.append(f"🏠 {r.address or ''} {r.postal_code or ''} {r.city or ''}".strip())
    if r.shirt_size:
        lines.append(f"👕 Talla: {r.shirt_size}")
    lines.append(f"📌 Estat: {status}")
    if r.payment_info is not None:
        p = r.payment_info
        lines.append(f"💳 Pagament: {p.amount:.2f} € ({p.method}, {p.status})")
    if admin:
        if r.payment_info is not None and r.payment_info.reference:
            lines.append(f"🔖 Ref.: `{r.payment_info.reference}`")
        if r.comments:
            lines.append(f"💬 {r.comments}")
        if r.id is not None:
            lines.append(f"🆔 #{r.id}")
    if with_sync:
        lines.append("")
        lines.append(sync_line(r))
    return "\n".join(lines)


def payment_result_text(r: RegistrationSnapshot) -> str:
    if r.is_converted:
        return "🎉 *Pagament confirmat!* La inscripció s'ha completat."
    if r.status == RegistrationStatus.ACCEPTED:
        return "✅ *Pagament confirmat.* Estem completant la inscripció."
    if r.status == RegistrationStatus.REJECTED:
        return "❌ *El pagament no s'ha completat.* Contacta amb el club si creus que és un error."
    return "⏳ *Encara no hem rebut la confirmació del pagament.* Torna-ho a comprovar d'aquí a uns minuts."


def payment_amount_line(payment_type: str, amount_cents: int, currency: str) -> str:
    label = PaymentType.LABELS.get(payment_type, payment_type)
    return f"{label}: *{amount_cents / 100:.2f} {currency.upper()}*"
