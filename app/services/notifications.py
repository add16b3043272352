"""
Outbound email (SMTP) and SMS (Twilio REST) notifications.

Dispatch is fire-and-forget from the workflows' point of view: the
``notify_*`` helpers log failures and never raise, so a broken mail relay
cannot undo a state change that has already been committed.
"""

from __future__ import annotations

import asyncio
import logging
import smtplib
from email.message import EmailMessage
from html import escape

import httpx

from app.core.config import Settings, settings

logger = logging.getLogger(__name__)

TWILIO_MESSAGES_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"


class Notifier:
    """Transport handle built once at startup and injected where needed."""

    def __init__(self, config: Settings = settings, http: httpx.AsyncClient | None = None) -> None:
        self.config = config
        self._http = http

    async def aclose(self) -> None:
        if self._http is not None:
            await self._http.aclose()

    # ── Transports ──────────────────────────────────────────────────
    async def send_email(self, to: str, subject: str, html: str) -> None:
        if not self.config.SMTP_HOST:
            logger.info("Email send skipped (no SMTP configured): to=%s subject=%s", to, subject)
            return
        message = EmailMessage()
        message["From"] = self.config.SMTP_FROM
        message["To"] = to
        message["Subject"] = subject
        message.set_content("This message requires an HTML capable mail client.")
        message.add_alternative(html, subtype="html")
        await asyncio.to_thread(self._deliver, message)
        logger.info("Email sent: to=%s subject=%s", to, subject)

    def _deliver(self, message: EmailMessage) -> None:
        port = self.config.SMTP_PORT
        smtp_cls = smtplib.SMTP_SSL if port == 465 else smtplib.SMTP
        with smtp_cls(self.config.SMTP_HOST, port, timeout=30) as smtp:
            if port != 465:
                smtp.starttls()
            if self.config.SMTP_USER:
                smtp.login(self.config.SMTP_USER, self.config.SMTP_PASSWORD)
            smtp.send_message(message)

    async def send_sms(self, to: str, body: str) -> None:
        masked = to[:4] + "****"
        if not self.config.TWILIO_ACCOUNT_SID:
            logger.info("SMS send skipped (Twilio not configured): to=%s", masked)
            return
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=15.0)
        response = await self._http.post(
            TWILIO_MESSAGES_URL.format(sid=self.config.TWILIO_ACCOUNT_SID),
            data={"To": to, "From": self.config.TWILIO_PHONE_NUMBER, "Body": body},
            auth=(self.config.TWILIO_ACCOUNT_SID, self.config.TWILIO_AUTH_TOKEN),
        )
        response.raise_for_status()
        logger.info("SMS sent: to=%s", masked)

    # ── Messages ────────────────────────────────────────────────────
    async def notify_otp(self, *, email: str | None, phone: str | None, otp: str) -> None:
        minutes = max(1, self.config.OTP_EXPIRY_SECONDS // 60)
        try:
            if email:
                html = (
                    "<h2>Verification Code</h2>"
                    f"<p>Your verification code is: <strong>{otp}</strong></p>"
                    f"<p>This code expires in {minutes} minutes. Do not share it with anyone.</p>"
                )
                await self.send_email(email, "Your Verification Code", html)
            elif phone:
                await self.send_sms(phone, f"Your verification code is {otp}. It expires in {minutes} minutes.")
        except Exception:
            logger.exception("Failed to deliver OTP")

    async def notify_password_reset(self, email: str, reset_token: str) -> None:
        reset_url = f"{self.config.FRONTEND_URL}/reset-password?token={reset_token}"
        html = (
            "<h2>Password Reset</h2>"
            "<p>You requested a password reset. Follow the link below to set a new password:</p>"
            f'<p><a href="{escape(reset_url)}">Reset Password</a></p>'
            "<p>This link expires in 1 hour. If you didn't request this, you can safely ignore this email.</p>"
        )
        try:
            await self.send_email(email, "Password Reset", html)
        except Exception:
            logger.exception("Failed to deliver password reset email to %s", email)

    async def notify_warranty_activated(
        self, email: str, *, model_name: str, start_date: str, end_date: str
    ) -> None:
        html = (
            "<h2>Warranty Activated</h2>"
            "<p>Your warranty has been successfully activated.</p>"
            "<table>"
            f"<tr><td>Product</td><td>{escape(model_name)}</td></tr>"
            f"<tr><td>Start Date</td><td>{start_date}</td></tr>"
            f"<tr><td>End Date</td><td>{end_date}</td></tr>"
            "</table>"
            f'<p>See your <a href="{escape(self.config.FRONTEND_URL)}/dashboard">dashboard</a> for details.</p>'
        )
        try:
            await self.send_email(email, "Warranty Activated", html)
        except Exception:
            logger.exception("Failed to deliver warranty confirmation to %s", email)
