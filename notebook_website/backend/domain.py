from typing import Any, Dict, List, Optional


class User:
    """Represents a registered account."""

    def __init__(self, id: str, email: str, first_name: str, avatar: str,
                 created_time: str, updated_time: str, is_account_deleted: bool = False):
        self.id = id
        self.email = email
        self.first_name = first_name
        self.avatar = avatar
        self.created_time = created_time
        self.updated_time = updated_time
        self.is_account_deleted = is_account_deleted

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "first_name": self.first_name,
            "avatar": self.avatar,
            "created_time": self.created_time,
            "updated_time": self.updated_time,
        }


class Note:
    """Represents a single note object."""

    def __init__(self, id: str, user_id: str, title: str, content: str, created_time: str,
                 updated_time: str, is_deleted: bool = False, deleted_time: Optional[str] = None):
        self.id = id
        self.user_id = user_id
        self.title = title
        self.content = content
        self.created_time = created_time
        self.updated_time = updated_time
        self.is_deleted = bool(is_deleted)
        self.deleted_time = deleted_time

    def to_dict(self) -> Dict[str, Any]:
        """Convert note to dictionary representation."""
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "created_time": self.created_time,
            "updated_time": self.updated_time,
            "is_deleted": self.is_deleted,
            "deleted_time": self.deleted_time,
        }


class NoteGroup:
    """A named, ordered collection of a user's notes."""

    def __init__(self, id: str, user_id: str, name: str, description: str, created_time: str,
                 updated_time: str, note_ids: Optional[List[str]] = None, is_deleted: bool = False):
        self.id = id
        self.user_id = user_id
        self.name = name
        self.description = description
        self.created_time = created_time
        self.updated_time = updated_time
        self.note_ids = list(note_ids or [])
        self.is_deleted = bool(is_deleted)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "note_ids": list(self.note_ids),
            "created_time": self.created_time,
            "updated_time": self.updated_time,
        }


class AuthError(Exception):
    """Custom exception for authentication errors."""
    pass


class NotFoundError(Exception):
    """Raised when a user, note or group does not exist for the caller."""
    pass


class MailError(Exception):
    """Raised when the mail relay refuses or fails to deliver a message."""
    pass
