from fastapi import APIRouter
from prionstudy.services.i18n_service import DEFAULT_LANGUAGE, SUPPORTED_LANGUAGES, get_all_translations

router = APIRouter()


@router.get("/translations")
async def translations():
    return {"success": True, "translations": get_all_translations()}


@router.get("/languages")
async def languages():
    return {"success": True, "languages": SUPPORTED_LANGUAGES, "default": DEFAULT_LANGUAGE}
