"""
Email delivery for alerts whose rule lists the "email" notification method.
"""

import sendgrid
import structlog
from sendgrid.helpers.mail import Mail

from core.config import get_settings
from db.models import Alert

logger = structlog.get_logger()


async def send_alert_email(alert: Alert, system_name: str = "", row_number: int | None = None) -> bool:
    """
    Send an alert notification via SendGrid.

    Skipped (returns False) when no API key or recipient is configured.
    Returns True if SendGrid accepted the message.
    """
    settings = get_settings()
    if not settings.sendgrid_api_key or not settings.alert_email_to:
        return False

    subject = f"AquaSense {alert.alert_type.upper()}: {alert.parameter}"
    location = system_name + (f" / row {row_number}" if row_number is not None else "")

    html_content = f"""
    <div style="font-family: Inter, sans-serif; max-width: 600px; margin: 0 auto;">
      <div style="background: #14532d; color: white; padding: 24px; border-radius: 12px 12px 0 0;">
        <h1 style="margin: 0; font-size: 20px;">AquaSense Alert</h1>
      </div>
      <div style="background: #f8fafc; padding: 24px; border: 1px solid #e2e8f0;">
        <div style="background: {'#fef2f2' if alert.alert_type == 'critical' else '#fff7ed'};
                    border-left: 4px solid {'#dc2626' if alert.alert_type == 'critical' else '#f59e0b'};
                    padding: 16px; border-radius: 0 8px 8px 0; margin-bottom: 16px;">
          <p style="margin: 0; font-weight: 600; color: #1e293b;">
            {alert.alert_type.upper()}: {alert.parameter}
          </p>
        </div>
        <p style="color: #334155; line-height: 1.6;">{alert.message}</p>
        {'<p style="color: #64748b;"><strong>Location:</strong> ' + location + '</p>' if location else ''}
        <p style="color: #64748b;"><strong>Observed:</strong> {alert.value:g}
           &nbsp; <strong>Threshold:</strong> {alert.threshold:g}</p>
      </div>
    </div>
    """

    try:
        sg = sendgrid.SendGridAPIClient(api_key=settings.sendgrid_api_key)
        email = Mail(
            from_email=settings.alert_from_email,
            to_emails=settings.alert_email_to,
            subject=subject,
            html_content=html_content,
        )
        response = sg.send(email)
        return response.status_code in (200, 201, 202)
    except Exception as exc:  # noqa: BLE001
        logger.warning("alerts.email_failed", alert_id=str(alert.alert_id), error=str(exc))
        return False
