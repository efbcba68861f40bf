from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
from prionstudy.database import get_db
from prionstudy.exceptions import ValidationError
from prionstudy.rate_limit import submit_limit
from prionstudy.schemas.consent import ConsentReceipt
from prionstudy.services.consent_service import consent_service

router = APIRouter()


async def _read_body(request: Request) -> dict:
    content_type = request.headers.get("content-type", "")
    if "application/x-www-form-urlencoded" in content_type or "multipart/form-data" in content_type:
        form = await request.form()
        return dict(form)
    raw = await request.body()
    if not raw:
        return {}
    try:
        body = await request.json()
    except ValueError:
        raise ValidationError("Malformed JSON body")
    if not isinstance(body, dict):
        raise ValidationError("Body must be a JSON object")
    return body


def _client_info(request: Request) -> tuple:
    ip = request.client.host if request.client else None
    return ip, request.headers.get("user-agent")


@router.post("/submit", response_model=ConsentReceipt)
@submit_limit
async def submit_post(request: Request, db: AsyncSession = Depends(get_db)):
    """Record a participant decision sent from the consent page. Body: {"response", "id", "token"?}"""
    payload = await _read_body(request)
    ip, user_agent = _client_info(request)
    return await consent_service.record(payload, db, ip=ip, user_agent=user_agent)


@router.get("/submit", response_model=ConsentReceipt)
@submit_limit
async def submit_get(request: Request, db: AsyncSession = Depends(get_db)):
    """Same as POST, for the direct links in invitation emails."""
    ip, user_agent = _client_info(request)
    return await consent_service.record(dict(request.query_params), db, ip=ip, user_agent=user_agent)
