from fastapi import HTTPException, Request

from app.studio import DreamStudio


def get_studio(request: Request) -> DreamStudio:
    studio: DreamStudio | None = getattr(request.app.state, "studio", None)
    if studio is None:
        raise HTTPException(status_code=503, detail="Dream studio is not running")
    return studio
