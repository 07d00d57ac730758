from __future__ import annotations

import logging

from agenda_auth.application.ports.notification_port import NotificationSenderPort
from agenda_auth.domain.entities.recovery_token import RecoveryChannel
from agenda_auth.shared.config import Settings

from .email_provider import SendGridEmailProvider, SmtpEmailProvider
from .sender import ChannelSender, NotificationProvider
from .sms_provider import ZenviaSmsProvider
from .twilio_provider import TwilioMessagingProvider
from .whatsapp_provider import MetaWhatsAppProvider


logger = logging.getLogger(__name__)


def build_email_provider(settings: Settings) -> NotificationProvider | None:
    if settings.email_provider == "smtp":
        if not settings.smtp_host or not settings.email_from_address:
            return None
        return SmtpEmailProvider(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            from_address=settings.email_from_address,
            from_name=settings.email_from_name,
            use_tls=settings.smtp_use_tls,
            timeout_seconds=settings.notification_timeout_seconds,
        )
    if settings.email_provider == "sendgrid":
        if not settings.sendgrid_api_key or not settings.email_from_address:
            return None
        return SendGridEmailProvider(
            api_key=settings.sendgrid_api_key,
            from_address=settings.email_from_address,
            from_name=settings.email_from_name,
            timeout_seconds=settings.notification_timeout_seconds,
        )
    return None


def _build_twilio_provider(
    settings: Settings,
    *,
    channel: RecoveryChannel,
    from_number: str,
) -> NotificationProvider | None:
    if not settings.twilio_account_sid or not settings.twilio_auth_token or not from_number:
        return None
    return TwilioMessagingProvider(
        channel=channel,
        account_sid=settings.twilio_account_sid,
        auth_token=settings.twilio_auth_token,
        from_number=from_number,
        timeout_seconds=settings.notification_timeout_seconds,
    )


def build_sms_provider(settings: Settings) -> NotificationProvider | None:
    if settings.sms_provider == "twilio":
        return _build_twilio_provider(
            settings,
            channel=RecoveryChannel.SMS,
            from_number=settings.twilio_phone_number,
        )
    if settings.sms_provider == "zenvia":
        if not settings.zenvia_api_token or not settings.zenvia_sender_id:
            return None
        return ZenviaSmsProvider(
            api_token=settings.zenvia_api_token,
            sender_id=settings.zenvia_sender_id,
            timeout_seconds=settings.notification_timeout_seconds,
        )
    return None


def build_whatsapp_provider(settings: Settings) -> NotificationProvider | None:
    if settings.whatsapp_provider == "meta":
        if not settings.meta_access_token or not settings.meta_phone_number_id:
            return None
        return MetaWhatsAppProvider(
            access_token=settings.meta_access_token,
            phone_number_id=settings.meta_phone_number_id,
            api_version=settings.meta_api_version,
            timeout_seconds=settings.notification_timeout_seconds,
        )
    if settings.whatsapp_provider == "twilio":
        return _build_twilio_provider(
            settings,
            channel=RecoveryChannel.WHATSAPP,
            from_number=settings.twilio_whatsapp_number or settings.twilio_phone_number,
        )
    return None


def build_notification_senders(settings: Settings) -> dict[RecoveryChannel, NotificationSenderPort]:
    providers = {
        RecoveryChannel.EMAIL: build_email_provider(settings),
        RecoveryChannel.SMS: build_sms_provider(settings),
        RecoveryChannel.WHATSAPP: build_whatsapp_provider(settings),
    }
    for channel, provider in providers.items():
        if provider is None:
            logger.warning("notification_factory: provider_not_configured channel=%s", channel.value)
    return {channel: ChannelSender(channel=channel, provider=provider) for channel, provider in providers.items()}
