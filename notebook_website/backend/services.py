import logging
import sqlite3
from typing import Dict, List, Optional, Tuple

from .database import Database
from .domain import AuthError, Note, NoteGroup, NotFoundError, User
from .mailer import Mailer
from .utils import (
    age_minutes,
    hash_password,
    hash_token,
    is_expired,
    make_id,
    new_reset_token,
    time_after,
    time_now,
)

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6
RECENTLY_DELETED_LIMIT = 10

_USER_COLUMNS = "id, email, first_name, avatar, created_time, updated_time, is_account_deleted"
_NOTE_COLUMNS = "id, user_id, title, content, created_time, updated_time, is_deleted, deleted_time"
_GROUP_COLUMNS = "id, user_id, name, description, created_time, updated_time"


def _strip_bearer(token: str) -> str:
    return token[7:] if token.startswith("Bearer ") else token


def _normalize_email(email: str) -> str:
    return email.strip().lower()


def _check_password(password: str) -> None:
    if len(password) < MIN_PASSWORD_LENGTH:
        raise AuthError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")


class AuthService:
    """Handles user registration, login, session validation and password resets."""

    def __init__(self, db: Database, session_ttl_minutes: int = 60, reset_token_ttl_minutes: int = 30):
        self.db = db
        self.session_ttl_minutes = session_ttl_minutes
        self.reset_token_ttl_minutes = reset_token_ttl_minutes

    def add_user(self, email: str, password: str, first_name: str = "", avatar: str = "") -> str:
        email = _normalize_email(email)
        _check_password(password)
        uid = make_id("usr")
        now = time_now()
        try:
            with self.db.transaction() as cursor:
                cursor.execute(
                    "INSERT INTO users (id, email, password_hash, first_name, avatar, created_time, updated_time) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?)",
                    (uid, email, hash_password(password), first_name.strip(), avatar.strip(), now, now),
                )
        except sqlite3.IntegrityError:
            raise AuthError("Email already exists")
        logger.info("Registered user %s", uid)
        return uid

    def login(self, email: str, password: str) -> str:
        with self.db.connect() as conn:
            row = conn.execute(
                "SELECT id, password_hash, is_account_deleted FROM users WHERE email=?",
                (_normalize_email(email),),
            ).fetchone()
        if not row or row[1] != hash_password(password):
            raise AuthError("Invalid email or password")
        if row[2]:
            raise AuthError("Account deleted, please create a new account")
        token = make_id("sess")
        with self.db.transaction() as cursor:
            cursor.execute(
                "INSERT INTO sessions (token, user_id, created_time) VALUES (?, ?, ?)",
                (token, row[0], time_now()),
            )
        return token

    def validate(self, token: str) -> str:
        """Return the user id behind a session token (bare or ``Bearer`` prefixed)."""
        if not token:
            raise AuthError("Authorization token is required")
        token = _strip_bearer(token)
        with self.db.connect() as conn:
            row = conn.execute("SELECT user_id, created_time FROM sessions WHERE token=?", (token,)).fetchone()
        if not row:
            raise AuthError("Invalid or expired session token")
        if age_minutes(row[1]) > self.session_ttl_minutes:
            self.logout(token)
            raise AuthError("Invalid or expired session token")
        return row[0]

    def logout(self, token: str) -> bool:
        with self.db.transaction() as cursor:
            cursor.execute("DELETE FROM sessions WHERE token=?", (_strip_bearer(token),))
            return cursor.rowcount > 0

    def get_user(self, user_id: str) -> User:
        with self.db.connect() as conn:
            row = conn.execute(f"SELECT {_USER_COLUMNS} FROM users WHERE id=?", (user_id,)).fetchone()
        if not row:
            raise NotFoundError("User not found")
        return User(*row)

    def update_profile(self, user_id: str, first_name: Optional[str] = None,
                       email: Optional[str] = None, avatar: Optional[str] = None) -> User:
        user = self.get_user(user_id)
        if first_name:
            user.first_name = first_name.strip()
        if avatar:
            user.avatar = avatar.strip()
        if email:
            user.email = _normalize_email(email)
        user.updated_time = time_now()
        try:
            with self.db.transaction() as cursor:
                cursor.execute(
                    "UPDATE users SET first_name=?, avatar=?, email=?, updated_time=? WHERE id=?",
                    (user.first_name, user.avatar, user.email, user.updated_time, user_id),
                )
        except sqlite3.IntegrityError:
            raise ValueError("Email is already used by another account")
        return user

    def delete_account(self, user_id: str) -> None:
        """Flag the account as deleted and revoke every session it holds."""
        self.get_user(user_id)
        with self.db.transaction() as cursor:
            cursor.execute(
                "UPDATE users SET is_account_deleted=1, updated_time=? WHERE id=?", (time_now(), user_id)
            )
            cursor.execute("DELETE FROM sessions WHERE user_id=?", (user_id,))
        logger.info("Account %s deleted", user_id)

    def create_reset_token(self, email: str) -> Tuple[User, str]:
        """Store a hashed single-use reset token and return the plain one."""
        with self.db.connect() as conn:
            row = conn.execute(
                f"SELECT {_USER_COLUMNS} FROM users WHERE email=?", (_normalize_email(email),)
            ).fetchone()
        if not row:
            raise NotFoundError("User with this email does not exist")
        user = User(*row)
        if user.is_account_deleted:
            raise AuthError("Account deleted, please create a new account")
        token = new_reset_token()
        with self.db.transaction() as cursor:
            cursor.execute(
                "UPDATE users SET reset_token_hash=?, reset_token_expires=? WHERE id=?",
                (hash_token(token), time_after(self.reset_token_ttl_minutes), user.id),
            )
        return user, token

    def _user_for_reset_token(self, token: str) -> User:
        with self.db.connect() as conn:
            row = conn.execute(
                f"SELECT {_USER_COLUMNS}, reset_token_expires FROM users WHERE reset_token_hash=?",
                (hash_token(token or ""),),
            ).fetchone()
        if not row or is_expired(row[-1]):
            raise AuthError("Invalid or expired token")
        return User(*row[:-1])

    def verify_reset_token(self, token: str) -> str:
        return self._user_for_reset_token(token).email

    def reset_password(self, token: str, password: str) -> None:
        user = self._user_for_reset_token(token)
        _check_password(password)
        with self.db.transaction() as cursor:
            cursor.execute(
                "UPDATE users SET password_hash=?, reset_token_hash=NULL, reset_token_expires=NULL, "
                "updated_time=? WHERE id=?",
                (hash_password(password), time_now(), user.id),
            )
            cursor.execute("DELETE FROM sessions WHERE user_id=?", (user.id,))
        logger.info("Password reset for user %s", user.id)


class Storage:
    """Stores and retrieves notes and note groups."""

    def __init__(self, db: Database):
        self.db = db

    def add_note(self, note: Note) -> Note:
        with self.db.transaction() as cursor:
            cursor.execute(
                f"INSERT INTO notes ({_NOTE_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (note.id, note.user_id, note.title, note.content, note.created_time,
                 note.updated_time, int(note.is_deleted), note.deleted_time),
            )
        logger.debug("Note saved: %s", note.id)
        return note

    def list_notes(self, user_id: str, include_deleted: bool = False) -> List[Note]:
        """Notes of a user, newest first."""
        query = f"SELECT {_NOTE_COLUMNS} FROM notes WHERE user_id=?"
        if not include_deleted:
            query += " AND is_deleted=0"
        with self.db.connect() as conn:
            rows = conn.execute(query + " ORDER BY created_time DESC, rowid DESC", (user_id,)).fetchall()
        return [Note(*row) for row in rows]

    def count_notes(self, user_id: str) -> int:
        with self.db.connect() as conn:
            return conn.execute(
                "SELECT COUNT(*) FROM notes WHERE user_id=? AND is_deleted=0", (user_id,)
            ).fetchone()[0]

    def get_note(self, user_id: str, note_id: str) -> Optional[Note]:
        with self.db.connect() as conn:
            row = conn.execute(
                f"SELECT {_NOTE_COLUMNS} FROM notes WHERE user_id=? AND id=?", (user_id, note_id)
            ).fetchone()
        return Note(*row) if row else None

    def update_note(self, note: Note) -> bool:
        with self.db.transaction() as cursor:
            cursor.execute(
                "UPDATE notes SET title=?, content=?, updated_time=?, is_deleted=?, deleted_time=? "
                "WHERE id=? AND user_id=?",
                (note.title, note.content, note.updated_time, int(note.is_deleted),
                 note.deleted_time, note.id, note.user_id),
            )
            return cursor.rowcount > 0

    def delete_note(self, user_id: str, note_id: str) -> bool:
        with self.db.transaction() as cursor:
            cursor.execute("DELETE FROM notes WHERE user_id=? AND id=?", (user_id, note_id))
            return cursor.rowcount > 0

    def list_recently_deleted(self, user_id: str, limit: int = RECENTLY_DELETED_LIMIT) -> List[Note]:
        """Soft-deleted notes, most recently deleted first."""
        with self.db.connect() as conn:
            rows = conn.execute(
                f"SELECT {_NOTE_COLUMNS} FROM notes WHERE user_id=? AND is_deleted=1 "
                "ORDER BY deleted_time DESC, rowid DESC LIMIT ?",
                (user_id, limit),
            ).fetchall()
        return [Note(*row) for row in rows]

    def add_group(self, group: NoteGroup) -> NoteGroup:
        with self.db.transaction() as cursor:
            cursor.execute(
                f"INSERT INTO note_groups ({_GROUP_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?)",
                (group.id, group.user_id, group.name, group.description, group.created_time, group.updated_time),
            )
            cursor.executemany(
                "INSERT INTO group_notes (group_id, note_id, position) VALUES (?, ?, ?)",
                [(group.id, note_id, position) for position, note_id in enumerate(group.note_ids)],
            )
        return group

    def _members(self, conn: sqlite3.Connection, group_id: str) -> List[str]:
        rows = conn.execute(
            "SELECT note_id FROM group_notes WHERE group_id=? ORDER BY position", (group_id,)
        ).fetchall()
        return [row[0] for row in rows]

    def list_groups(self, user_id: str) -> List[NoteGroup]:
        with self.db.connect() as conn:
            rows = conn.execute(
                f"SELECT {_GROUP_COLUMNS} FROM note_groups WHERE user_id=? AND is_deleted=0 "
                "ORDER BY created_time DESC, rowid DESC",
                (user_id,),
            ).fetchall()
            return [NoteGroup(*row, note_ids=self._members(conn, row[0])) for row in rows]

    def get_group(self, user_id: str, group_id: str) -> Optional[NoteGroup]:
        with self.db.connect() as conn:
            row = conn.execute(
                f"SELECT {_GROUP_COLUMNS} FROM note_groups WHERE user_id=? AND id=? AND is_deleted=0",
                (user_id, group_id),
            ).fetchone()
            if not row:
                return None
            return NoteGroup(*row, note_ids=self._members(conn, group_id))

    def group_notes(self, group: NoteGroup) -> List[Note]:
        """Live member notes of a group, in group order."""
        with self.db.connect() as conn:
            rows = conn.execute(
                "SELECT n.id, n.user_id, n.title, n.content, n.created_time, n.updated_time, "
                "n.is_deleted, n.deleted_time FROM group_notes g JOIN notes n ON n.id = g.note_id "
                "WHERE g.group_id=? AND n.user_id=? AND n.is_deleted=0 ORDER BY g.position",
                (group.id, group.user_id),
            ).fetchall()
        return [Note(*row) for row in rows]


class PIM:
    """Main app logic: manages users, notes and groups on behalf of a caller."""

    def __init__(self, store: Storage, auth: AuthService, mailer: Optional[Mailer] = None,
                 frontend_url: str = "http://localhost:8000/"):
        self.store = store
        self.auth = auth
        self.mailer = mailer or Mailer()
        self.frontend_url = frontend_url if frontend_url.endswith("/") else frontend_url + "/"

    def register_user(self, email: str, password: str, first_name: str = "", avatar: str = "") -> str:
        return self.auth.add_user(email, password, first_name, avatar)

    def login(self, email: str, password: str) -> str:
        return self.auth.login(email, password)

    def logout(self, token: str) -> bool:
        return self.auth.logout(token)

    # notes

    def add_note(self, user_id: str, title: str, content: str) -> Note:
        if not title.strip() or not content.strip():
            raise ValueError("Title and content are required")
        now = time_now()
        note = Note(make_id("note"), user_id, title.strip(), content.strip(), now, now)
        return self.store.add_note(note)

    def list_notes(self, user_id: str) -> List[Note]:
        return self.store.list_notes(user_id)

    def get_note(self, user_id: str, note_id: str) -> Note:
        note = self.store.get_note(user_id, note_id)
        if not note:
            raise NotFoundError("Note not found")
        return note

    def update_note(self, user_id: str, note_id: str, title: str, content: str) -> Note:
        if not title.strip():
            raise ValueError("Note title cannot be empty")
        note = self.get_note(user_id, note_id)
        note.title = title.strip()
        note.content = content.strip()
        note.updated_time = time_now()
        if not self.store.update_note(note):
            raise NotFoundError("Note not found")
        return note

    def delete_note(self, user_id: str, note_id: str) -> bool:
        return self.store.delete_note(user_id, note_id)

    def trash_note(self, user_id: str, note_id: str) -> Note:
        note = self.get_note(user_id, note_id)
        if not note.is_deleted:
            note.is_deleted = True
            note.deleted_time = time_now()
            self.store.update_note(note)
        return note

    def restore_note(self, user_id: str, note_id: str) -> Note:
        note = self.get_note(user_id, note_id)
        note.is_deleted = False
        note.deleted_time = None
        self.store.update_note(note)
        return note

    def recently_deleted(self, user_id: str) -> List[Note]:
        return self.store.list_recently_deleted(user_id)

    # groups

    def create_group(self, user_id: str, name: str, description: str = "",
                     note_ids: Optional[List[str]] = None) -> NoteGroup:
        if not name or not name.strip():
            raise ValueError("Group name is required")
        ordered: List[str] = []
        for note_id in note_ids or []:
            if note_id in ordered:
                continue
            note = self.store.get_note(user_id, note_id)
            if not note or note.is_deleted:
                raise ValueError(f"Unknown note: {note_id}")
            ordered.append(note_id)
        now = time_now()
        group = NoteGroup(make_id("grp"), user_id, name.strip(), (description or "").strip(), now, now, ordered)
        return self.store.add_group(group)

    def list_groups(self, user_id: str) -> List[NoteGroup]:
        return self.store.list_groups(user_id)

    def get_group(self, user_id: str, group_id: str) -> Tuple[NoteGroup, List[Note]]:
        group = self.store.get_group(user_id, group_id)
        if not group:
            raise NotFoundError("Group note not found")
        return group, self.store.group_notes(group)

    # profile

    def profile(self, user_id: str) -> Tuple[User, int]:
        return self.auth.get_user(user_id), self.store.count_notes(user_id)

    def update_profile(self, user_id: str, first_name: Optional[str] = None,
                       email: Optional[str] = None, avatar: Optional[str] = None) -> User:
        return self.auth.update_profile(user_id, first_name=first_name, email=email, avatar=avatar)

    def delete_account(self, user_id: str) -> None:
        self.auth.delete_account(user_id)

    # password reset

    def forgot_password(self, email: str) -> None:
        """E-mail a reset link; raises NotFoundError, AuthError or MailError."""
        user, token = self.auth.create_reset_token(email)
        reset_url = f"{self.frontend_url}reset-password/{token}"
        self.mailer.send_password_reset(user.email, reset_url, self.auth.reset_token_ttl_minutes)

    def verify_reset_token(self, token: str) -> str:
        return self.auth.verify_reset_token(token)

    def reset_password(self, token: str, password: str) -> None:
        self.auth.reset_password(token, password)

    # export data

    def export_notes(self, user_id: str, note_id: Optional[str] = None) -> List[Note]:
        """Notes to export: one note when ``note_id`` is given, else all live notes."""
        if note_id:
            return [self.get_note(user_id, note_id)]
        return self.store.list_notes(user_id)

    def export_group(self, user_id: str, group_id: str) -> Tuple[NoteGroup, List[Note], User]:
        group, notes = self.get_group(user_id, group_id)
        return group, notes, self.auth.get_user(user_id)

    def export_user_info(self, user_id: str) -> Dict[str, str]:
        user = self.auth.get_user(user_id)
        return {"name": user.first_name, "avatar": user.avatar, "email": user.email, "id": user.id}
