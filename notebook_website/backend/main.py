import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import APIRouter, Cookie, Depends, FastAPI, Header, HTTPException, Query, Request, Response
from fastapi.concurrency import run_in_threadpool

from .config import Settings, configure_logging, get_settings
from .database import Database
from .domain import AuthError, MailError, NotFoundError
from .mailer import Mailer
from .models import (
    ExportGroupResponse,
    ExportNotesResponse,
    ForgotPasswordData,
    GroupData,
    GroupResponse,
    GroupsListResponse,
    LoginResponse,
    MessageResponse,
    NoteData,
    NoteResponse,
    NotesListResponse,
    NoteUpdate,
    ProfileResponse,
    ProfileUpdate,
    RecentlyDeletedResponse,
    ResetPasswordData,
    ResetTokenData,
    SignupData,
    UserCreds,
    UserResponse,
    VerifyTokenResponse,
)
from .pdf.builders import export_group, export_notes
from .pdf.renderer import DocumentRenderer
from .services import PIM, AuthService, Storage
from .utils import time_now

logger = logging.getLogger(__name__)

router = APIRouter()

INTERNAL_ERROR = "Internal server error"


def get_pim(request: Request) -> PIM:
    return request.app.state.pim


def get_session_token(authorization: Optional[str] = Header(None), token: Optional[str] = Cookie(None)) -> str:
    """Session token from the Authorization header, falling back to the cookie."""
    value = authorization or token
    if not value:
        raise HTTPException(status_code=401, detail="Please login or signup")
    return value


def get_current_user(session_token: str = Depends(get_session_token), pim: PIM = Depends(get_pim)) -> str:
    try:
        return pim.auth.validate(session_token)
    except AuthError as e:
        raise HTTPException(status_code=401, detail=str(e))


def _pdf_response(artifact) -> Response:
    return Response(
        content=artifact.content,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{artifact.filename}"'},
    )


@router.get("/")
async def read_root():
    return {"message": "Notes API is running"}


@router.get("/health")
async def health_check():
    return {"status": "healthy", "timestamp": time_now()}


# auth

@router.post("/register", response_model=UserResponse, status_code=201)
async def register(creds: SignupData, pim: PIM = Depends(get_pim)):
    try:
        uid = pim.register_user(creds.email, creds.password, creds.first_name, creds.avatar)
        return UserResponse(success=True, user_id=uid)
    except AuthError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception:
        logger.exception("Registration error")
        raise HTTPException(status_code=500, detail=INTERNAL_ERROR)


@router.post("/login", response_model=LoginResponse)
async def login(creds: UserCreds, response: Response, request: Request, pim: PIM = Depends(get_pim)):
    try:
        token = pim.login(creds.email, creds.password)
    except AuthError as e:
        raise HTTPException(status_code=401, detail=str(e))
    except Exception:
        logger.exception("Login error")
        raise HTTPException(status_code=500, detail=INTERNAL_ERROR)
    settings: Settings = request.app.state.settings
    response.set_cookie(
        "token", token, httponly=True, samesite="lax",
        max_age=settings.session_ttl_minutes * 60, secure=settings.cookie_secure,
    )
    return LoginResponse(success=True, token=token)


@router.post("/logout", response_model=MessageResponse)
async def logout(response: Response, session_token: str = Depends(get_session_token), pim: PIM = Depends(get_pim)):
    response.delete_cookie("token")
    if pim.logout(session_token):
        return MessageResponse(success=True, message="Logged out successfully")
    return MessageResponse(success=False, message="Already logged out")


# password reset

@router.post("/forgot-password", response_model=MessageResponse)
async def forgot_password(data: ForgotPasswordData, pim: PIM = Depends(get_pim)):
    try:
        await run_in_threadpool(pim.forgot_password, data.email)
        return MessageResponse(success=True, message="Password reset email sent successfully")
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except AuthError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except MailError:
        raise HTTPException(status_code=500, detail="Failed to send reset email. Please try again later.")


@router.post("/verify-reset-token", response_model=VerifyTokenResponse)
async def verify_reset_token(data: ResetTokenData, pim: PIM = Depends(get_pim)):
    try:
        return VerifyTokenResponse(success=True, email=pim.verify_reset_token(data.token))
    except AuthError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/reset-password", response_model=MessageResponse)
async def reset_password(data: ResetPasswordData, pim: PIM = Depends(get_pim)):
    try:
        pim.reset_password(data.token, data.password)
        return MessageResponse(success=True, message="Password reset successful")
    except AuthError as e:
        raise HTTPException(status_code=400, detail=str(e))


# notes

@router.post("/notes", response_model=NoteResponse)
async def add_note(note: NoteData, user_id: str = Depends(get_current_user), pim: PIM = Depends(get_pim)):
    try:
        new_note = pim.add_note(user_id, note.title, note.content)
        return NoteResponse(success=True, note=new_note.to_dict(), message="Note created successfully")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception:
        logger.exception("Add note error")
        raise HTTPException(status_code=500, detail=INTERNAL_ERROR)


@router.get("/notes", response_model=NotesListResponse)
async def list_notes(user_id: str = Depends(get_current_user), pim: PIM = Depends(get_pim)):
    notes = [n.to_dict() for n in pim.list_notes(user_id)]
    return NotesListResponse(success=True, notes=notes, count=len(notes))


@router.get("/notes/{note_id}", response_model=NoteResponse)
async def get_note(note_id: str, user_id: str = Depends(get_current_user), pim: PIM = Depends(get_pim)):
    try:
        note = pim.get_note(user_id, note_id)
        return NoteResponse(success=True, note=note.to_dict(), message="Note retrieved successfully")
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.put("/notes/{note_id}", response_model=NoteResponse)
async def update_note(note_id: str, note: NoteUpdate, user_id: str = Depends(get_current_user),
                      pim: PIM = Depends(get_pim)):
    try:
        updated = pim.update_note(user_id, note_id, note.title, note.content or "")
        return NoteResponse(success=True, note=updated.to_dict(), message="Note updated successfully")
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception:
        logger.exception("Update note error")
        raise HTTPException(status_code=500, detail=INTERNAL_ERROR)


@router.delete("/notes/{note_id}", response_model=MessageResponse)
async def delete_note(note_id: str, user_id: str = Depends(get_current_user), pim: PIM = Depends(get_pim)):
    if not pim.delete_note(user_id, note_id):
        raise HTTPException(status_code=404, detail="Note not found")
    return MessageResponse(success=True, message="Note deleted successfully")


@router.patch("/notes/{note_id}/trash", response_model=NoteResponse)
async def trash_note(note_id: str, user_id: str = Depends(get_current_user), pim: PIM = Depends(get_pim)):
    try:
        note = pim.trash_note(user_id, note_id)
        return NoteResponse(success=True, note=note.to_dict(), message="Note moved to recently deleted")
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.patch("/notes/{note_id}/restore", response_model=NoteResponse)
async def restore_note(note_id: str, user_id: str = Depends(get_current_user), pim: PIM = Depends(get_pim)):
    try:
        note = pim.restore_note(user_id, note_id)
        return NoteResponse(success=True, note=note.to_dict(), message="Note restored")
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/recently-deleted", response_model=RecentlyDeletedResponse)
async def recently_deleted(user_id: str = Depends(get_current_user), pim: PIM = Depends(get_pim)):
    notes = [n.to_dict() for n in pim.recently_deleted(user_id)]
    return RecentlyDeletedResponse(success=True, recently_deleted_notes=notes)


# groups

def _group_payload(group, notes=None):
    payload = group.to_dict()
    if notes is not None:
        payload["note_objects"] = [n.to_dict() for n in notes]
    return payload


@router.post("/groups", response_model=GroupResponse)
async def create_group(data: GroupData, user_id: str = Depends(get_current_user), pim: PIM = Depends(get_pim)):
    try:
        group = pim.create_group(user_id, data.name, data.description, data.note_ids)
        return GroupResponse(success=True, group_note=_group_payload(group), message="Group note created successfully")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception:
        logger.exception("Create group error")
        raise HTTPException(status_code=500, detail=INTERNAL_ERROR)


@router.get("/groups", response_model=GroupsListResponse)
async def list_groups(user_id: str = Depends(get_current_user), pim: PIM = Depends(get_pim)):
    groups = [_group_payload(g) for g in pim.list_groups(user_id)]
    return GroupsListResponse(success=True, group_notes=groups, count=len(groups))


@router.get("/groups/{group_id}", response_model=GroupResponse)
async def get_group(group_id: str, user_id: str = Depends(get_current_user), pim: PIM = Depends(get_pim)):
    try:
        group, notes = pim.get_group(user_id, group_id)
        return GroupResponse(success=True, group_note=_group_payload(group, notes))
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


# profile

@router.get("/profile", response_model=ProfileResponse)
async def get_profile(user_id: str = Depends(get_current_user), pim: PIM = Depends(get_pim)):
    try:
        user, total = pim.profile(user_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return ProfileResponse(id=user.id, email=user.email, first_name=user.first_name,
                           avatar=user.avatar, total_notes=total)


@router.put("/profile", response_model=ProfileResponse)
async def update_profile(data: ProfileUpdate, user_id: str = Depends(get_current_user), pim: PIM = Depends(get_pim)):
    try:
        user = pim.update_profile(user_id, first_name=data.first_name, email=data.email, avatar=data.avatar)
        _, total = pim.profile(user_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return ProfileResponse(id=user.id, email=user.email, first_name=user.first_name,
                           avatar=user.avatar, total_notes=total)


@router.patch("/profile/delete-account", response_model=MessageResponse)
async def delete_account(response: Response, user_id: str = Depends(get_current_user), pim: PIM = Depends(get_pim)):
    try:
        pim.delete_account(user_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    response.delete_cookie("token")
    return MessageResponse(success=True, message="Account deleted successfully")


# export

def _export_notes_payload(pim: PIM, user_id: str, note_id: Optional[str]) -> ExportNotesResponse:
    try:
        notes = pim.export_notes(user_id, note_id)
        user = pim.export_user_info(user_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return ExportNotesResponse(notes=[n.to_dict() for n in notes], user=user)


def _export_group_payload(pim: PIM, user_id: str, group_id: Optional[str]) -> ExportGroupResponse:
    if not group_id:
        raise HTTPException(status_code=400, detail="Group ID is required")
    try:
        group, notes, _ = pim.export_group(user_id, group_id)
        user = pim.export_user_info(user_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return ExportGroupResponse(group_note=_group_payload(group, notes), user=user)


@router.get("/export-pdf", response_model=ExportNotesResponse)
async def export_pdf_data(note_id: Optional[str] = Query(None), user_id: str = Depends(get_current_user),
                          pim: PIM = Depends(get_pim)):
    return _export_notes_payload(pim, user_id, note_id)


@router.get("/group-pdf", response_model=ExportGroupResponse)
async def group_pdf_data(group_id: Optional[str] = Query(None), user_id: str = Depends(get_current_user),
                         pim: PIM = Depends(get_pim)):
    return _export_group_payload(pim, user_id, group_id)


@router.get("/export-pdf/download")
async def export_pdf_download(request: Request, note_id: Optional[str] = Query(None),
                              user_id: str = Depends(get_current_user), pim: PIM = Depends(get_pim)):
    payload = _export_notes_payload(pim, user_id, note_id)
    artifact = await run_in_threadpool(export_notes, payload.notes, payload.user, request.app.state.renderer)
    if artifact is None:
        raise HTTPException(status_code=404, detail="No notes to export")
    return _pdf_response(artifact)


@router.get("/group-pdf/download")
async def group_pdf_download(request: Request, group_id: Optional[str] = Query(None),
                             user_id: str = Depends(get_current_user), pim: PIM = Depends(get_pim)):
    payload = _export_group_payload(pim, user_id, group_id)
    artifact = await run_in_threadpool(export_group, payload.group_note, payload.user, request.app.state.renderer)
    if artifact is None:
        raise HTTPException(status_code=404, detail="Group note not found or contains no notes")
    return _pdf_response(artifact)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Notes API starting up (database: %s)", app.state.settings.database_path)
    yield
    logger.info("Notes API shutting down")


def create_app(settings: Optional[Settings] = None, mailer: Optional[Mailer] = None,
               renderer: Optional[DocumentRenderer] = None) -> FastAPI:
    """Build the API with its own database, services and PDF renderer."""
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    db = Database(settings.database_path)
    auth = AuthService(db, settings.session_ttl_minutes, settings.reset_token_ttl_minutes)
    mailer = mailer or Mailer(
        settings.smtp_host, settings.smtp_port, settings.smtp_username,
        settings.smtp_password, settings.smtp_use_tls, settings.mail_from,
    )

    app = FastAPI(title="Notes API", description="Personal notes with groups and PDF export",
                  version="1.0.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.pim = PIM(Storage(db), auth, mailer, settings.frontend_url)
    app.state.renderer = renderer or DocumentRenderer(image_timeout=settings.image_fetch_timeout)
    app.include_router(router)
    return app


if __name__ == "__main__":
    import uvicorn

    _settings = get_settings()
    uvicorn.run("notebook_website.backend.main:create_app", factory=True, host=_settings.host, port=_settings.port)
