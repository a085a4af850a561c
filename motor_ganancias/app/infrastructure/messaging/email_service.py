"""
email_service.py
----------------
Notificaciones por email del motor de ganancias vía SMTP.

Usa aiosmtplib para envío asíncrono sin bloquear el event loop.

Uso:
    from app.infrastructure.messaging.email_service import email_service
    await email_service.send_fraud_block_alert(
        recipients=["riesgo@empresa.com"],
        user_id="u1",
        reason="Auto-blocked: early fraud warning",
        source="early_fraud_warning",
        metadata={"charge_id": "ch_123"},
    )
"""

import html
import logging
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

import aiosmtplib

from app.core.config import settings

logger = logging.getLogger(__name__)


class EmailService:
    """
    Envía emails operativos via SMTP asíncrono.

    Métodos disponibles:
      - send_fraud_block_alert() → avisa a administradores de un
                                   bloqueo automático por fraude
    """

    async def _send(self, to: str, subject: str, body: str) -> bool:
        """
        Método base de envío. Maneja la conexión SMTP y el envío.
        Retorna True si se envió correctamente, False si hubo error.
        """
        message = MIMEMultipart("alternative")
        message["From"]    = settings.EMAIL_FROM
        message["To"]      = to
        message["Subject"] = subject
        message.attach(MIMEText(body, "html"))

        try:
            await aiosmtplib.send(
                message,
                hostname  = settings.SMTP_HOST,
                port      = settings.SMTP_PORT,
                username  = settings.SMTP_USER,
                password  = settings.SMTP_PASSWORD,
                start_tls = True,
            )
            logger.info(f"[Email] Enviado correctamente a {to} — asunto: {subject}")
            return True

        except aiosmtplib.SMTPException as e:
            logger.error(f"[Email] Error SMTP enviando a {to}: {e}")
        except Exception as e:
            logger.error(f"[Email] Error inesperado enviando a {to}: {e}")

        return False

    async def send_fraud_block_alert(
        self,
        recipients: list[str],
        user_id:    str,
        reason:     str,
        source:     str,
        metadata:   dict,
    ) -> int:
        """
        Envía el aviso de bloqueo a cada administrador configurado.
        Retorna cuántos envíos fueron exitosos.
        """
        if not recipients:
            logger.info("[Email] Sin destinatarios para alertas de fraude")
            return 0

        subject = f"Usuario bloqueado por fraude — {user_id}"
        rows = "".join(
            f"""
                                        <tr>
                                            <td style="color:#666666; font-size:13px;
                                                       padding:4px 0;">{html.escape(str(key))}</td>
                                            <td style="color:#333333; font-size:13px;
                                                       text-align:right; padding:4px 0;">
                                                {html.escape(str(value))}
                                            </td>
                                        </tr>"""
            for key, value in metadata.items()
        )
        body = f"""
        <!DOCTYPE html>
        <html lang="es">
        <head><meta charset="UTF-8"></head>
        <body style="margin:0; padding:0; background-color:#f4f4f4; font-family:Arial,sans-serif;">
            <table width="100%" cellpadding="0" cellspacing="0">
                <tr>
                    <td align="center" style="padding:40px 0;">
                        <table width="520" cellpadding="0" cellspacing="0"
                               style="background:#ffffff; border-radius:8px;
                                      box-shadow:0 2px 8px rgba(0,0,0,0.08);">
                            <tr>
                                <td style="background:#7a1f1f; border-radius:8px 8px 0 0;
                                           padding:24px 32px;">
                                    <h1 style="color:#ffffff; margin:0; font-size:20px;">
                                        Bloqueo automático por fraude
                                    </h1>
                                </td>
                            </tr>
                            <tr>
                                <td style="padding:32px;">
                                    <p style="color:#333333; font-size:14px; margin:0 0 8px;">
                                        Usuario: <strong>{html.escape(user_id)}</strong>
                                    </p>
                                    <p style="color:#333333; font-size:14px; margin:0 0 8px;">
                                        Origen: <strong>{html.escape(source)}</strong>
                                    </p>
                                    <p style="color:#666666; font-size:14px; margin:0 0 24px;">
                                        {html.escape(reason)}
                                    </p>
                                    <table width="100%" style="background:#f9f9f9;
                                                               border-radius:8px;
                                                               padding:16px;">{rows}
                                    </table>
                                    <p style="color:#999999; font-size:12px; margin:24px 0 0;">
                                        Revisa el caso en el panel de riesgo. Si es un falso
                                        positivo, elimina la entrada de la blacklist.
                                    </p>
                                </td>
                            </tr>
                        </table>
                    </td>
                </tr>
            </table>
        </body>
        </html>
        """

        sent = 0
        for to in recipients:
            if await self._send(to=to, subject=subject, body=body):
                sent += 1
        return sent


# Singleton
email_service = EmailService()
