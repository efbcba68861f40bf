"""Email service for notifying the research team of consent decisions via Gmail SMTP."""
import logging
import smtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from html import escape
from prionstudy.config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()

SUBJECTS = {
    "accept": "ACCEPTED - Participant {participant_id} - Prion Study",
    "more_info": "INFO REQUEST - Participant {participant_id} - Prion Study",
    "decline": "DECLINED - Participant {participant_id} - Prion Study",
}

PRIORITIES = {
    "accept": "High (contact within 3-5 days)",
    "more_info": "Medium (schedule an information session)",
    "decline": "Low (record and confirm only)",
}

NEXT_STEPS = {
    "accept": (
        "<ol><li>Add to the study roadmap.</li><li>Contact within 3-5 days.</li>"
        "<li>Send the consent form and study information.</li></ol>"
    ),
    "more_info": "<ol><li>Send the leaflet and FAQ.</li><li>Offer an information video call.</li></ol>",
    "decline": "<p>Record the decision and send a respectful thank-you.</p>",
}


class EmailService:
    """Service for sending emails via Gmail SMTP."""

    def __init__(self):
        self.sender = settings.email_user
        self.password = settings.email_pass
        self.recipient = settings.research_email
        self.smtp_server = settings.smtp_host
        self.smtp_port = settings.smtp_port

    @property
    def configured(self) -> bool:
        return bool(self.sender and self.password and self.recipient)

    def build_consent_notification(self, participant_id: str, response: str, ts: str) -> MIMEMultipart:
        message = MIMEMultipart()
        message["From"] = f"Prion Study System <{self.sender}>"
        message["To"] = self.recipient
        message["Subject"] = SUBJECTS[response].format(participant_id=participant_id)

        body = f"""
<p><strong>Response received</strong> for participant <strong>{escape(participant_id)}</strong>.</p>
<ul>
  <li><strong>Decision:</strong> {response}</li>
  <li><strong>Timestamp (UTC):</strong> {ts}</li>
  <li><strong>Priority:</strong> {PRIORITIES[response]}</li>
</ul>
<h3>Suggested next steps</h3>
{NEXT_STEPS[response]}
<hr />
<p>This email was sent automatically by the response system.</p>
        """.strip()

        message.attach(MIMEText(body, "html"))
        return message

    def send_consent_notification(self, participant_id: str, response: str, ts: str) -> dict:
        """Blocking; call through asyncio.to_thread from request handlers."""
        if not self.configured:
            logger.warning("EMAIL_USER/EMAIL_PASS/RESEARCH_EMAIL not set, skipping notification")
            return {"success": False, "skipped": True}

        message = self.build_consent_notification(participant_id, response, ts)
        with smtplib.SMTP(self.smtp_server, self.smtp_port, timeout=30) as server:
            server.starttls()
            server.login(self.sender, self.password)
            server.send_message(message)

        logger.info("Notification sent for participant %s (%s)", participant_id, response)
        return {"success": True, "to": self.recipient}


email_service = EmailService()
