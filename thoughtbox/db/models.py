"""SQLAlchemy models for users, clinics, thoughts and their history.

Author/editor columns on thoughts and history are soft references: users can
be deleted while their thoughts and audit entries stay behind.
"""
from __future__ import annotations

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    JSON,
    func,
)
from sqlalchemy.orm import relationship

from .session import Base


class Clinic(Base):
    __tablename__ = "clinics"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(Text, nullable=False)
    url = Column(Text, nullable=True)
    logo_url = Column(Text, nullable=True)
    departments = Column(JSON, default=list, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    users = relationship("User", back_populates="clinic", passive_deletes=True)


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(255), unique=True, nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    password = Column(Text, nullable=False)
    role = Column(String(16), default="user", nullable=False)
    clinic_id = Column(Integer, ForeignKey("clinics.id", ondelete="SET NULL"), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    clinic = relationship("Clinic", back_populates="users")


class Thought(Base):
    __tablename__ = "thoughts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    clinic_id = Column(Integer, nullable=False, index=True)
    author_id = Column(Integer, nullable=False, index=True)
    title = Column(Text, nullable=False)
    content = Column(Text, nullable=False)
    category = Column(String(64), default="general", nullable=False)
    department = Column(String(255), nullable=True)
    is_deleted = Column(Boolean, default=False, nullable=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    deleted_by = Column(Integer, nullable=True)
    edit_count = Column(Integer, default=0, nullable=False)
    last_edited_at = Column(DateTime(timezone=True), nullable=True)
    last_edited_by = Column(Integer, nullable=True)
    is_read = Column(Boolean, default=False, nullable=False)
    read_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    history = relationship("ThoughtHistory", back_populates="thought", order_by="ThoughtHistory.id")


class ThoughtHistory(Base):
    __tablename__ = "thought_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    thought_id = Column(Integer, ForeignKey("thoughts.id"), nullable=False, index=True)
    title = Column(Text, nullable=True)
    content = Column(Text, nullable=True)
    category = Column(String(64), nullable=True)
    department = Column(String(255), nullable=True)
    edited_by = Column(Integer, nullable=False)
    edited_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    change_type = Column(String(16), nullable=False)

    thought = relationship("Thought", back_populates="history")
