"""
Async-safe email delivery for reservation notifications.

smtplib is blocking; every send runs in the loop's default executor so the
event loop is never blocked waiting for SMTP. The dispatcher is built once
at startup (``build_dispatcher``) and injected into the reservation
manager; ``deliver`` is the best-effort wrapper used for fire-and-forget
sends.
"""
import asyncio
import html
import logging
import smtplib
from collections.abc import Awaitable, Callable
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr
from typing import Any

from babyregistry.core.config import Settings, settings
from babyregistry.core.errors import NotificationDispatchError
from babyregistry.schemas.registry import GiftPublic

logger = logging.getLogger("babyregistry.mailer")

SMTP_TIMEOUT_SECONDS = 15


def _base_html_template(title: str, content_html: str, button_text: str | None = None, button_link: str | None = None) -> str:
    """Wrap pre-escaped content in the common email layout."""
    safe_title = html.escape(title)
    button_html = ""
    if button_text and button_link:
        safe_button_text = html.escape(button_text)
        safe_button_link = html.escape(button_link, quote=True)
        button_html = f'''
        <div style="text-align: center; margin: 24px 0;">
            <a href="{safe_button_link}" style="display: inline-block; padding: 10px 20px; background-color: #FF3387; color: #ffffff; text-decoration: none; border-radius: 4px;">
                {safe_button_text}
            </a>
        </div>'''

    return f'''<!DOCTYPE html>
<html lang="es">
<head>
    <meta charset="UTF-8">
    <title>{safe_title}</title>
</head>
<body style="margin: 0; padding: 0; font-family: Arial, sans-serif;">
    <div style="max-width: 600px; margin: 0 auto; padding: 20px; border: 1px solid #e0e0e0; border-radius: 8px;">
        <h1 style="color: #339CFF; font-size: 24px; text-align: center;">{safe_title}</h1>
        <div style="color: #4b5563; font-size: 16px; line-height: 1.6;">
            {content_html}
        </div>
        {button_html}
        <div style="text-align: center; margin-top: 30px; padding-top: 20px; border-top: 1px solid #e0e0e0;">
            <p style="color: #999; font-size: 12px;">
                Este correo electrónico ha sido enviado automáticamente. Por favor, no respondas a este mensaje.
            </p>
        </div>
    </div>
</body>
</html>'''


def _gift_card_html(gift: GiftPublic) -> str:
    store_line = ""
    if gift.store:
        store_line = f'<p style="margin: 0; color: #666; font-size: 14px;">Tienda: {html.escape(gift.store)}</p>'
    link_line = ""
    if gift.url:
        link_line = (
            f'<p style="margin-top: 8px;"><a href="{html.escape(gift.url, quote=True)}" '
            'style="color: #339CFF; text-decoration: none;">Ver en tienda</a></p>'
        )
    return f'''
    <div style="background-color: #f8f9fa; padding: 15px; border-radius: 8px; margin: 20px 0;">
        <h2 style="color: #333; font-size: 18px; margin: 0 0 5px 0;">{html.escape(gift.name)}</h2>
        <p style="margin: 0 0 5px 0; color: #666; font-size: 14px;">Precio: {gift.price:.2f} €</p>
        {store_line}
        {link_line}
    </div>
    '''


class Mailer:
    """SMTP transport. Raises NotificationDispatchError when a send fails."""

    def __init__(self, config: Settings) -> None:
        self._config = config

    @property
    def is_configured(self) -> bool:
        return bool(self._config.smtp_host)

    def _build_message(self, to_email: str, subject: str, text_body: str, html_body: str) -> MIMEMultipart:
        message = MIMEMultipart("alternative")
        message["Subject"] = subject
        message["From"] = formataddr((self._config.smtp_from_name, self._config.smtp_from_email))
        message["To"] = to_email
        message.attach(MIMEText(text_body, "plain", "utf-8"))
        message.attach(MIMEText(html_body, "html", "utf-8"))
        return message

    def _send_sync(self, message: MIMEMultipart) -> None:
        """Blocking SMTP send; must be run in an executor."""
        config = self._config
        if config.smtp_use_tls:
            with smtplib.SMTP(config.smtp_host, config.smtp_port, timeout=SMTP_TIMEOUT_SECONDS) as server:
                server.starttls()
                if config.smtp_username:
                    server.login(config.smtp_username, config.smtp_password)
                server.send_message(message)
        else:
            with smtplib.SMTP_SSL(config.smtp_host, config.smtp_port, timeout=SMTP_TIMEOUT_SECONDS) as server:
                if config.smtp_username:
                    server.login(config.smtp_username, config.smtp_password)
                server.send_message(message)

    async def send(self, to_email: str, subject: str, text_body: str, html_body: str) -> None:
        if not self._config.email_notifications_enabled:
            logger.info("Email notifications disabled. Skipping email to %s: %s", to_email, subject)
            return
        if not self.is_configured:
            logger.info("SMTP not configured. Email for %s would be sent: %s", to_email, subject)
            return

        message = self._build_message(to_email, subject, text_body, html_body)
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._send_sync, message)
        except (smtplib.SMTPException, OSError) as exc:
            raise NotificationDispatchError(f"Failed to send email to {to_email}: {exc}") from exc
        logger.info("Email sent to %s subject=%r", to_email, subject)


class NotificationDispatcher:
    """Builds and sends the reservation emails."""

    def __init__(self, mailer: Mailer, frontend_url: str) -> None:
        self._mailer = mailer
        self._frontend_url = frontend_url.rstrip("/")

    def cancellation_link(self, cancellation_token: str) -> str:
        return f"{self._frontend_url}/cancel-reservation/{cancellation_token}"

    async def send_reservation_confirmation(
        self,
        to_email: str,
        reserver_name: str,
        gift: GiftPublic,
        registry_display_name: str,
        cancellation_token: str,
    ) -> None:
        cancellation_url = self.cancellation_link(cancellation_token)
        subject = f"Confirmación de reserva: {gift.name} para {registry_display_name}"
        text_body = (
            f"¡Gracias por tu reserva, {reserver_name}!\n\n"
            f"Has reservado un regalo para {registry_display_name}.\n\n"
            f"Regalo: {gift.name}\n"
            f"Precio: {gift.price:.2f} €\n"
            + (f"Tienda: {gift.store}\n" if gift.store else "")
            + (f"Enlace: {gift.url}\n" if gift.url else "")
            + "\n¿Has cambiado de opinión? Puedes cancelar tu reserva aquí:\n"
            f"{cancellation_url}\n"
        )
        content_html = f'''
        <p style="text-align: center;">Has reservado un regalo para {html.escape(registry_display_name)}</p>
        {_gift_card_html(gift)}
        <ul style="color: #666; padding-left: 20px;">
            <li>Nombre: {html.escape(reserver_name)}</li>
            <li>Email: {html.escape(to_email)}</li>
        </ul>
        <p style="font-size: 14px;">
            <strong>¿Has cambiado de opinión?</strong> No hay problema, puedes cancelar tu reserva con el siguiente botón.
        </p>
        '''
        html_body = _base_html_template(
            title="¡Gracias por tu reserva!",
            content_html=content_html,
            button_text="Cancelar reserva",
            button_link=cancellation_url,
        )
        await self._mailer.send(to_email, subject, text_body, html_body)

    async def send_cancellation_confirmation(
        self,
        to_email: str,
        gift: GiftPublic,
        registry_display_name: str,
    ) -> None:
        subject = f"Reserva cancelada: {gift.name} para {registry_display_name}"
        text_body = (
            f"Tu reserva para el regalo de {registry_display_name} ha sido cancelada.\n\n"
            f"Regalo: {gift.name}\n\n"
            "El regalo ahora está disponible para que alguien más lo reserve.\n"
        )
        content_html = f'''
        <p style="text-align: center;">Tu reserva para el regalo de {html.escape(registry_display_name)} ha sido cancelada</p>
        {_gift_card_html(gift)}
        <p>Has cancelado correctamente la reserva de este regalo. El regalo ahora está disponible para que alguien más lo reserve.</p>
        '''
        html_body = _base_html_template(title="Reserva cancelada", content_html=content_html)
        await self._mailer.send(to_email, subject, text_body, html_body)

    async def send_owner_notification(
        self,
        to_email: str,
        reserver_name: str,
        reserver_email: str,
        gift: GiftPublic,
        registry_display_name: str,
        message: str,
    ) -> None:
        subject = f"{reserver_name} ha reservado {gift.name} para {registry_display_name}"
        text_body = (
            f"{reserver_name} ({reserver_email}) ha reservado un regalo de la lista de {registry_display_name}.\n\n"
            f"Regalo: {gift.name}\n\n"
            f"Mensaje:\n{message}\n"
        )
        content_html = f'''
        <p style="text-align: center;">
            <strong>{html.escape(reserver_name)}</strong> ({html.escape(reserver_email)}) ha reservado un regalo
            de la lista de {html.escape(registry_display_name)}
        </p>
        {_gift_card_html(gift)}
        <blockquote style="border-left: 4px solid #339CFF; margin: 0; padding: 10px 15px; color: #333;">
            {html.escape(message)}
        </blockquote>
        '''
        html_body = _base_html_template(title="¡Nuevo mensaje en tu lista!", content_html=content_html)
        await self._mailer.send(to_email, subject, text_body, html_body)


async def deliver(
    label: str,
    send: Callable[..., Awaitable[None]],
    **kwargs: Any,
) -> bool:
    """Run one notification with bounded attempts. Never raises.

    Failed sends are retried with backoff. A timed-out send is not: the SMTP
    worker thread cannot be cancelled and may still deliver the message.
    """
    attempts = max(1, settings.notification_max_attempts)
    for attempt in range(1, attempts + 1):
        try:
            await asyncio.wait_for(send(**kwargs), timeout=settings.notification_timeout_seconds)
            return True
        except NotificationDispatchError as exc:
            logger.warning("Notification %s failed attempt=%s/%s: %s", label, attempt, attempts, exc)
        except asyncio.TimeoutError:
            logger.error("Notification %s timed out attempt=%s/%s, not retrying", label, attempt, attempts)
            return False
        except Exception:
            logger.exception("Notification %s crashed attempt=%s/%s", label, attempt, attempts)
        if attempt < attempts:
            await asyncio.sleep(settings.notification_retry_backoff_seconds * 2 ** (attempt - 1))
    logger.error("Notification %s dropped after %s attempts", label, attempts)
    return False


def build_dispatcher(config: Settings | None = None) -> NotificationDispatcher:
    config = config or settings
    mailer = Mailer(config)
    logger.info(
        "Email config host=%s port=%s tls=%s user=%s enabled=%s",
        config.smtp_host or "NOT SET",
        config.smtp_port,
        config.smtp_use_tls,
        config.smtp_username or "NOT SET",
        config.email_notifications_enabled,
    )
    return NotificationDispatcher(mailer, config.frontend_url)
