from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlmodel import Session

from app.database import get_session
from app.dependencies.services import get_certificate_issuer
from app.models.user import User
from app.schemas.certificate_schemas import CertificateRequest
from app.services.certificate_service import (
    CertificateIssuer,
    list_user_certificates,
    verify_certificate,
)
from app.utils.token import get_current_user

router = APIRouter()


@router.post("/check")
def check_certificate(
    data: CertificateRequest,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
    issuer: CertificateIssuer = Depends(get_certificate_issuer),
):
    """Passive check after progress changes; an unfinished course is not an error."""
    achievement_id, achievement_type = data.achievement
    return issuer.issue(session, user.id, achievement_id, achievement_type).to_dict()


@router.post("/generate")
def generate_certificate(
    data: CertificateRequest,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
    issuer: CertificateIssuer = Depends(get_certificate_issuer),
):
    achievement_id, achievement_type = data.achievement
    return issuer.issue(
        session,
        user.id,
        achievement_id,
        achievement_type,
        raise_if_incomplete=True,
    ).to_dict()


@router.post("/sync")
def sync_certificates(
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
    issuer: CertificateIssuer = Depends(get_certificate_issuer),
):
    return issuer.sync_certificates(session, user.id, user.role)


@router.get("")
def my_certificates(
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
):
    return list_user_certificates(session, user.id)


@router.get("/{certificate_id}/verify")
def verify(certificate_id: str, session: Session = Depends(get_session)):
    result = verify_certificate(session, certificate_id)
    if not result["valid"]:
        return JSONResponse(status_code=404, content=result)
    return result
