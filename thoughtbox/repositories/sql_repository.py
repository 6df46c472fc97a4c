"""High-level data access helpers backed by SQLAlchemy."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping, Optional
import logging

from sqlalchemy import delete, false, func, or_, select, text, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, aliased

from thoughtbox.db import models
from thoughtbox.db.session import get_session
from thoughtbox.domain.departments import DepartmentError, DepartmentList, departments_or_default
from thoughtbox.domain.filters import ThoughtFilters, date_bounds, ensure_utc
from thoughtbox.domain.history import build_history_view
from thoughtbox.domain.records import (
    CHANGE_CREATED,
    CHANGE_DELETED,
    CHANGE_EDITED,
    DEFAULT_CATEGORY,
    ROLE_ADMIN,
    ROLE_USER,
    ROLES,
    SETUP_DEPARTMENTS,
    THOUGHT_UPDATABLE_FIELDS,
    Clinic,
    NewClinic,
    NewThought,
    NewUser,
    SetupResult,
    Thought,
    ThoughtHistory,
    ThoughtHistoryWithUser,
    ThoughtWithAuthor,
    User,
    UserWithClinic,
    apply_clinic_updates,
    apply_user_updates,
    pick_updates,
)
from thoughtbox.repositories.base import DuplicateUserError, Storage

logger = logging.getLogger(__name__)


def _to_user(entity: models.User) -> User:
    return User(
        id=entity.id,
        username=entity.username,
        email=entity.email,
        password=entity.password,
        role=entity.role,
        clinic_id=entity.clinic_id,
        created_at=ensure_utc(entity.created_at),
    )


def _to_clinic(entity: models.Clinic) -> Clinic:
    return Clinic(
        id=entity.id,
        name=entity.name,
        url=entity.url,
        logo_url=entity.logo_url,
        departments=list(entity.departments or []),
        created_at=ensure_utc(entity.created_at),
    )


def _to_thought(entity: models.Thought) -> Thought:
    return Thought(
        id=entity.id,
        clinic_id=entity.clinic_id,
        author_id=entity.author_id,
        title=entity.title,
        content=entity.content,
        category=entity.category,
        department=entity.department,
        is_deleted=bool(entity.is_deleted),
        deleted_at=ensure_utc(entity.deleted_at),
        deleted_by=entity.deleted_by,
        edit_count=int(entity.edit_count or 0),
        last_edited_at=ensure_utc(entity.last_edited_at),
        last_edited_by=entity.last_edited_by,
        is_read=bool(entity.is_read),
        read_at=ensure_utc(entity.read_at),
        created_at=ensure_utc(entity.created_at),
    )


def _to_history(entity: models.ThoughtHistory) -> ThoughtHistory:
    return ThoughtHistory(
        id=entity.id,
        thought_id=entity.thought_id,
        title=entity.title,
        content=entity.content,
        category=entity.category,
        department=entity.department,
        edited_by=entity.edited_by,
        edited_at=ensure_utc(entity.edited_at),
        change_type=entity.change_type,
    )


def _history_entity(thought: models.Thought, editor_id: int, edited_at: datetime, change_type: str) -> models.ThoughtHistory:
    return models.ThoughtHistory(
        thought_id=thought.id,
        title=thought.title,
        content=thought.content,
        category=thought.category,
        department=thought.department,
        edited_by=editor_id,
        edited_at=edited_at,
        change_type=change_type,
    )


class SQLRepository(Storage):
    """CRUD helpers wrapping the SQLAlchemy session.

    Every mutating method commits exactly once, so a department rename and the
    rewrite of the thoughts that reference it land together or not at all.
    """

    # -------------------------- system --------------------------
    def has_any_users(self) -> bool:
        with get_session() as session:
            return session.execute(select(models.User.id).limit(1)).first() is not None

    def setup_first_admin(self, user: NewUser, clinic: NewClinic) -> Optional[SetupResult]:
        now = self._now()
        with get_session() as session:
            if session.get_bind().dialect.name == "postgresql":
                session.execute(text("LOCK TABLE users IN SHARE ROW EXCLUSIVE MODE"))
            if session.execute(select(models.User.id).limit(1)).first() is not None:
                logger.warning("First admin setup skipped: users already exist")
                return None
            clinic_entity = models.Clinic(
                name=clinic.name,
                url=clinic.url or None,
                logo_url=clinic.logo_url or None,
                departments=departments_or_default(clinic.departments or SETUP_DEPARTMENTS),
                created_at=now,
            )
            session.add(clinic_entity)
            session.flush()
            user_entity = models.User(
                username=user.username,
                email=user.email,
                password=user.password,
                role=ROLE_ADMIN,
                clinic_id=clinic_entity.id,
                created_at=now,
            )
            session.add(user_entity)
            session.commit()
            logger.info("Created first admin %s for clinic %s", user_entity.id, clinic_entity.id)
            return SetupResult(user=_to_user(user_entity), clinic=_to_clinic(clinic_entity))

    # -------------------------- users --------------------------
    def _check_unique_user(self, session: Session, username: str, email: str, *, exclude_id: int | None = None) -> None:
        stmt = select(models.User).where(or_(models.User.username == username, models.User.email == email))
        if exclude_id is not None:
            stmt = stmt.where(models.User.id != exclude_id)
        clash = session.execute(stmt.limit(1)).scalar_one_or_none()
        if clash is None:
            return
        if clash.username == username:
            raise DuplicateUserError("username", username)
        raise DuplicateUserError("email", email)

    def get_user(self, user_id: int) -> Optional[User]:
        with get_session() as session:
            entity = session.get(models.User, user_id)
            return _to_user(entity) if entity else None

    def get_user_by_username(self, username: str) -> Optional[User]:
        with get_session() as session:
            stmt = select(models.User).where(models.User.username == username)
            entity = session.execute(stmt).scalar_one_or_none()
            return _to_user(entity) if entity else None

    def get_user_with_clinic(self, user_id: int) -> Optional[UserWithClinic]:
        with get_session() as session:
            stmt = (
                select(models.User, models.Clinic)
                .outerjoin(models.Clinic, models.Clinic.id == models.User.clinic_id)
                .where(models.User.id == user_id)
            )
            row = session.execute(stmt).first()
            if row is None:
                return None
            user_entity, clinic_entity = row
            return UserWithClinic(user=_to_user(user_entity), clinic=_to_clinic(clinic_entity) if clinic_entity else None)

    def create_user(self, data: NewUser) -> User:
        entity = models.User(
            username=data.username,
            email=data.email,
            password=data.password,
            role=data.role if data.role in ROLES else ROLE_USER,
            clinic_id=data.clinic_id or None,
            created_at=self._now(),
        )
        with get_session() as session:
            self._check_unique_user(session, data.username, data.email)
            session.add(entity)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                self._check_unique_user(session, data.username, data.email)
                raise DuplicateUserError("username", data.username) from exc
            session.refresh(entity)
            return _to_user(entity)

    def update_user(self, user_id: int, updates: Mapping[str, Any]) -> Optional[User]:
        with get_session() as session:
            stmt = select(models.User).where(models.User.id == user_id).with_for_update()
            entity = session.execute(stmt).scalar_one_or_none()
            if not entity:
                return None
            updated = apply_user_updates(_to_user(entity), updates)
            self._check_unique_user(session, updated.username, updated.email, exclude_id=user_id)
            entity.username = updated.username
            entity.email = updated.email
            entity.password = updated.password
            entity.role = updated.role
            entity.clinic_id = updated.clinic_id
            session.commit()
            return _to_user(entity)

    def delete_user(self, user_id: int) -> bool:
        with get_session() as session:
            result = session.execute(delete(models.User).where(models.User.id == user_id))
            session.commit()
            return result.rowcount > 0

    def get_users_by_clinic(self, clinic_id: int) -> list[User]:
        with get_session() as session:
            stmt = select(models.User).where(models.User.clinic_id == clinic_id).order_by(models.User.id)
            return [_to_user(entity) for entity in session.execute(stmt).scalars().all()]

    # -------------------------- clinics --------------------------
    def get_clinic(self, clinic_id: int) -> Optional[Clinic]:
        with get_session() as session:
            entity = session.get(models.Clinic, clinic_id)
            return _to_clinic(entity) if entity else None

    def create_clinic(self, data: NewClinic) -> Clinic:
        entity = models.Clinic(
            name=data.name,
            url=data.url or None,
            logo_url=data.logo_url or None,
            departments=departments_or_default(data.departments),
            created_at=self._now(),
        )
        with get_session() as session:
            session.add(entity)
            session.commit()
            session.refresh(entity)
            return _to_clinic(entity)

    def update_clinic(self, clinic_id: int, updates: Mapping[str, Any]) -> Optional[Clinic]:
        with get_session() as session:
            entity = self._locked_clinic(session, clinic_id)
            if not entity:
                return None
            updated = apply_clinic_updates(_to_clinic(entity), updates)
            entity.name = updated.name
            entity.url = updated.url
            entity.logo_url = updated.logo_url
            entity.departments = list(updated.departments)
            session.commit()
            return _to_clinic(entity)

    def delete_clinic(self, clinic_id: int) -> bool:
        with get_session() as session:
            session.execute(update(models.User).where(models.User.clinic_id == clinic_id).values(clinic_id=None))
            result = session.execute(delete(models.Clinic).where(models.Clinic.id == clinic_id))
            session.commit()
            return result.rowcount > 0

    def get_all_clinics(self) -> list[Clinic]:
        with get_session() as session:
            stmt = select(models.Clinic).order_by(models.Clinic.id)
            return [_to_clinic(entity) for entity in session.execute(stmt).scalars().all()]

    # -------------------------- departments --------------------------
    def _locked_clinic(self, session: Session, clinic_id: int) -> Optional[models.Clinic]:
        stmt = select(models.Clinic).where(models.Clinic.id == clinic_id).with_for_update()
        return session.execute(stmt).scalar_one_or_none()

    def _reassign_department(self, session: Session, clinic_id: int, old_name: str, new_name: str) -> int:
        stmt = (
            update(models.Thought)
            .where(models.Thought.clinic_id == clinic_id, models.Thought.department == old_name)
            .values(department=new_name)
        )
        return session.execute(stmt).rowcount

    def list_departments(self, clinic_id: int) -> list[str]:
        with get_session() as session:
            entity = session.get(models.Clinic, clinic_id)
            return departments_or_default(entity.departments if entity else None)

    def add_department(self, clinic_id: int, name: str) -> bool:
        with get_session() as session:
            entity = self._locked_clinic(session, clinic_id)
            if not entity:
                logger.info("Clinic not found: %s", clinic_id)
                return False
            departments = DepartmentList(entity.departments)
            try:
                added = departments.add(name)
            except DepartmentError as exc:
                logger.info("Cannot add department to clinic %s: %s", clinic_id, exc)
                return False
            entity.departments = departments.names()
            session.commit()
            logger.info("Added department %r to clinic %s", added, clinic_id)
            return True

    def update_department(self, clinic_id: int, old_name: str, new_name: str) -> bool:
        with get_session() as session:
            entity = self._locked_clinic(session, clinic_id)
            if not entity:
                logger.info("Clinic not found: %s", clinic_id)
                return False
            departments = DepartmentList(entity.departments)
            try:
                previous, renamed = departments.rename(old_name, new_name)
            except DepartmentError as exc:
                logger.info("Cannot rename department in clinic %s: %s", clinic_id, exc)
                return False
            entity.departments = departments.names()
            moved = self._reassign_department(session, clinic_id, previous, renamed)
            session.commit()
            logger.info("Renamed department %r to %r in clinic %s (%s thoughts)", previous, renamed, clinic_id, moved)
            return True

    def remove_department(self, clinic_id: int, name: str) -> bool:
        with get_session() as session:
            entity = self._locked_clinic(session, clinic_id)
            if not entity:
                logger.info("Clinic not found: %s", clinic_id)
                return False
            departments = DepartmentList(entity.departments)
            try:
                removed, fallback = departments.remove(name)
            except DepartmentError as exc:
                logger.info("Cannot remove department from clinic %s: %s", clinic_id, exc)
                return False
            entity.departments = departments.names()
            moved = self._reassign_department(session, clinic_id, removed, fallback)
            session.commit()
            logger.info("Removed department %r from clinic %s, %s thoughts moved to %r", removed, clinic_id, moved, fallback)
            return True

    # -------------------------- thoughts --------------------------
    def _locked_thought(self, session: Session, thought_id: int) -> Optional[models.Thought]:
        stmt = select(models.Thought).where(models.Thought.id == thought_id).with_for_update()
        return session.execute(stmt).scalar_one_or_none()

    def create_thought(self, data: NewThought, author_id: int) -> Thought:
        now = self._now()
        entity = models.Thought(
            clinic_id=data.clinic_id,
            author_id=author_id,
            title=data.title,
            content=data.content,
            category=data.category or DEFAULT_CATEGORY,
            department=data.department or None,
            is_deleted=False,
            edit_count=0,
            is_read=False,
            created_at=now,
        )
        with get_session() as session:
            session.add(entity)
            session.flush()
            session.add(_history_entity(entity, author_id, now, CHANGE_CREATED))
            session.commit()
            session.refresh(entity)
            return _to_thought(entity)

    def get_thought(self, thought_id: int) -> Optional[Thought]:
        with get_session() as session:
            entity = session.get(models.Thought, thought_id)
            return _to_thought(entity) if entity else None

    def get_thoughts_by_clinic(
        self,
        clinic_id: int,
        include_deleted: bool = False,
        filters: ThoughtFilters | None = None,
    ) -> list[ThoughtWithAuthor]:
        author = aliased(models.User)
        deleter = aliased(models.User)
        editor = aliased(models.User)
        stmt = (
            select(models.Thought, author, deleter, editor)
            .join(author, author.id == models.Thought.author_id)
            .outerjoin(deleter, deleter.id == models.Thought.deleted_by)
            .outerjoin(editor, editor.id == models.Thought.last_edited_by)
            .where(models.Thought.clinic_id == clinic_id)
        )
        if not include_deleted:
            stmt = stmt.where(models.Thought.is_deleted == false())
        if filters is not None:
            start, end = date_bounds(filters, self._tz)
            if start is not None:
                stmt = stmt.where(models.Thought.created_at >= start)
            if end is not None:
                stmt = stmt.where(models.Thought.created_at <= end)
            if filters.user_id:
                stmt = stmt.where(models.Thought.author_id == filters.user_id)
            if filters.department:
                stmt = stmt.where(models.Thought.department == filters.department)
            if filters.include_read is False:
                stmt = stmt.where(models.Thought.is_read == false())
        stmt = stmt.order_by(models.Thought.created_at.desc(), models.Thought.id.asc())

        with get_session() as session:
            return [
                ThoughtWithAuthor(
                    thought=_to_thought(thought),
                    author=_to_user(author_entity),
                    deleted_by_user=_to_user(deleter_entity) if deleter_entity else None,
                    last_edited_by_user=_to_user(editor_entity) if editor_entity else None,
                )
                for thought, author_entity, deleter_entity, editor_entity in session.execute(stmt).all()
            ]

    def update_thought(self, thought_id: int, updates: Mapping[str, Any], editor_id: int) -> Optional[Thought]:
        now = self._now()
        with get_session() as session:
            entity = self._locked_thought(session, thought_id)
            if not entity:
                return None
            for key, value in pick_updates(updates, THOUGHT_UPDATABLE_FIELDS).items():
                setattr(entity, key, value)
            entity.edit_count = int(entity.edit_count or 0) + 1
            entity.last_edited_at = now
            entity.last_edited_by = editor_id
            session.add(_history_entity(entity, editor_id, now, CHANGE_EDITED))
            session.commit()
            return _to_thought(entity)

    def delete_thought(self, thought_id: int, deleter_id: int) -> bool:
        now = self._now()
        with get_session() as session:
            entity = self._locked_thought(session, thought_id)
            if not entity:
                return False
            entity.is_deleted = True
            entity.deleted_at = now
            entity.deleted_by = deleter_id
            session.add(_history_entity(entity, deleter_id, now, CHANGE_DELETED))
            session.commit()
            return True

    def mark_thought_as_read(self, thought_id: int) -> bool:
        with get_session() as session:
            entity = self._locked_thought(session, thought_id)
            if not entity:
                return False
            if not entity.is_read:
                entity.is_read = True
                entity.read_at = self._now()
                session.commit()
            return True

    def get_thought_history(self, thought_id: int) -> list[ThoughtHistoryWithUser]:
        with get_session() as session:
            stmt = (
                select(models.ThoughtHistory)
                .where(models.ThoughtHistory.thought_id == thought_id)
                .order_by(models.ThoughtHistory.edited_at.desc(), models.ThoughtHistory.id.desc())
            )
            entries = [_to_history(entity) for entity in session.execute(stmt).scalars().all()]
            thought_entity = session.get(models.Thought, thought_id)
            thought = _to_thought(thought_entity) if thought_entity else None

            user_ids = {entry.edited_by for entry in entries}
            if thought is not None:
                user_ids.add(thought.author_id)
            users: dict[int, User] = {}
            if user_ids:
                found = session.execute(select(models.User).where(models.User.id.in_(user_ids))).scalars().all()
                users = {entity.id: _to_user(entity) for entity in found}
            return build_history_view(entries, thought, users)

    def get_unread_thoughts_count(self, clinic_id: int) -> int:
        with get_session() as session:
            stmt = (
                select(func.count())
                .select_from(models.Thought)
                .where(
                    models.Thought.clinic_id == clinic_id,
                    models.Thought.is_read == false(),
                    models.Thought.is_deleted == false(),
                )
            )
            return int(session.execute(stmt).scalar_one())
