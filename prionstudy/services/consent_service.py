import asyncio
import logging
import secrets
from datetime import datetime, timezone
from typing import Optional
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from prionstudy.config import get_settings
from prionstudy.exceptions import ConflictError, ServerError, ValidationError
from prionstudy.models.consent import ConsentResponse
from prionstudy.schemas.consent import ConsentSubmission
from prionstudy.services.email_service import email_service

logger = logging.getLogger(__name__)

DUPLICATE_MESSAGE = "A response already exists for this participant"

FIELD_ERRORS = {
    "response": 'Invalid "response" parameter (use: accept | more_info | decline).',
    "id": 'Invalid "id" parameter (letters, digits, _ - : . ; 3-128 chars).',
}


def validate_payload(payload: dict) -> ConsentSubmission:
    try:
        submission = ConsentSubmission.model_validate(
            {k: payload.get(k) for k in ("response", "id", "token") if payload.get(k) is not None}
        )
    except PydanticValidationError as e:
        field_name = str(e.errors()[0]["loc"][0]) if e.errors() and e.errors()[0]["loc"] else ""
        raise ValidationError(FIELD_ERRORS.get(field_name, "Invalid payload"))

    expected = get_settings().submission_token
    if expected and not secrets.compare_digest(submission.token or "", expected):
        raise ValidationError("Invalid submission token.")
    return submission


class ConsentService:
    async def record(
        self,
        payload: dict,
        db: AsyncSession,
        ip: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> dict:
        submission = validate_payload(payload)

        if await db.get(ConsentResponse, submission.id) is not None:
            raise ConflictError(DUPLICATE_MESSAGE)

        ts = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
        db.add(ConsentResponse(
            participant_id=submission.id,
            response=submission.response,
            ts_utc=ts,
            ip=ip,
            user_agent=user_agent,
        ))
        try:
            await db.commit()
        except IntegrityError:
            # lost a race with a concurrent submission for the same participant
            await db.rollback()
            raise ConflictError(DUPLICATE_MESSAGE)
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("DB insert error for %s: %s", submission.id, e)
            raise ServerError("Server error")

        logger.info("Recorded %s for participant %s", submission.response, submission.id)
        await self.notify(submission.id, submission.response, ts)
        return {"ok": True, "message": "Response recorded", "ts": ts}

    async def notify(self, participant_id: str, response: str, ts: str) -> None:
        """Notification problems never fail the participant-facing write."""
        try:
            await asyncio.to_thread(email_service.send_consent_notification, participant_id, response, ts)
        except Exception as e:
            logger.error("Email error for participant %s: %s", participant_id, e)


consent_service = ConsentService()
