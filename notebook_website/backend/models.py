from typing import Any, Dict, List, Optional
from pydantic import BaseModel, EmailStr, Field


class UserCreds(BaseModel):
    email: EmailStr
    password: str


class SignupData(UserCreds):
    first_name: str = ""
    avatar: str = ""


class NoteData(BaseModel):
    title: str
    content: str


class NoteUpdate(BaseModel):
    title: str
    content: Optional[str] = ""


class GroupData(BaseModel):
    name: str
    description: str = ""
    note_ids: List[str] = Field(default_factory=list)


class ProfileUpdate(BaseModel):
    first_name: Optional[str] = None
    email: Optional[EmailStr] = None
    avatar: Optional[str] = None


class ForgotPasswordData(BaseModel):
    email: EmailStr


class ResetTokenData(BaseModel):
    token: str


class ResetPasswordData(BaseModel):
    token: str
    password: str


class UserResponse(BaseModel):
    success: bool
    user_id: str


class LoginResponse(BaseModel):
    success: bool
    token: str


class MessageResponse(BaseModel):
    success: bool
    message: str


class NoteResponse(BaseModel):
    success: bool
    note: Dict[str, Any]
    message: str = ""


class NotesListResponse(BaseModel):
    success: bool
    notes: List[Dict[str, Any]]
    count: int


class RecentlyDeletedResponse(BaseModel):
    success: bool
    recently_deleted_notes: List[Dict[str, Any]]
    message: str = "Recently deleted notes fetched successfully"


class GroupResponse(BaseModel):
    success: bool
    group_note: Dict[str, Any]
    message: str = ""


class GroupsListResponse(BaseModel):
    success: bool
    group_notes: List[Dict[str, Any]]
    count: int


class ProfileResponse(BaseModel):
    id: str
    email: str
    first_name: str
    avatar: str
    total_notes: int


class VerifyTokenResponse(BaseModel):
    success: bool
    email: str
    message: str = "Token is valid"


class ExportNotesResponse(BaseModel):
    notes: List[Dict[str, Any]]
    user: Dict[str, str]


class ExportGroupResponse(BaseModel):
    group_note: Dict[str, Any]
    user: Dict[str, str]
