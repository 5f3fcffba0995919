"""Curriculum catalog models (subjects, chapters, activities)."""

from __future__ import annotations

from datetime import datetime, timezone

from ..extensions import db


def utcnow():
    return datetime.now(timezone.utc)


class Subject(db.Model):
    __tablename__ = "subjects"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False, index=True)
    grade_levels = db.Column(db.JSON, nullable=False, default=list)  # e.g. ["CP", "CE1"]
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)

    chapters = db.relationship("Chapter", back_populates="subject", lazy="dynamic")

    def offers(self, grade_level: str) -> bool:
        return grade_level in (self.grade_levels or [])


class Chapter(db.Model):
    __tablename__ = "chapters"

    id = db.Column(db.Integer, primary_key=True)
    subject_id = db.Column(db.Integer, db.ForeignKey("subjects.id"), nullable=False, index=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    grade_level = db.Column(db.String(16), nullable=False, index=True)
    order_index = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)

    subject = db.relationship("Subject", back_populates="chapters")
    activities = db.relationship("Activity", back_populates="chapter", lazy="dynamic")


class Activity(db.Model):
    """A quiz item attached to a chapter."""

    __tablename__ = "activities"
    __table_args__ = (db.Index("ix_activities_chapter_difficulty", "chapter_id", "difficulty"),)

    id = db.Column(db.Integer, primary_key=True)
    chapter_id = db.Column(db.Integer, db.ForeignKey("chapters.id"), nullable=False)
    subject_id = db.Column(db.Integer, db.ForeignKey("subjects.id"), nullable=False)
    title = db.Column(db.String(255), nullable=False)
    type = db.Column(db.String(32), nullable=False, default="quiz")
    difficulty = db.Column(db.Integer, nullable=False)  # 1 easy, 3 medium, 5 hard
    points = db.Column(db.Integer, nullable=False, default=0)
    grade_level = db.Column(db.String(16), nullable=False)
    content = db.Column(db.JSON, nullable=False, default=dict)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)

    chapter = db.relationship("Chapter", back_populates="activities")
