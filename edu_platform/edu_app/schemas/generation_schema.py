"""Schemas for generation service payloads and the bulk generation endpoints."""

from __future__ import annotations

from marshmallow import EXCLUDE, Schema, ValidationError, fields, validate, validates

from ..models.generation import JOB_TYPES


class GenerationEnvelopeSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    success = fields.Boolean(required=True)
    data = fields.Dict(required=True)

    @validates("success")
    def _must_succeed(self, value, **_kwargs):
        if not value:
            raise ValidationError("Generation service reported failure.")


class GeneratedChapterSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    title = fields.String(required=True, validate=validate.Length(min=1))
    description = fields.String(load_default=None, allow_none=True)
    order_index = fields.Integer(load_default=None, allow_none=True)


class ChapterBatchSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    chapters = fields.List(
        fields.Nested(GeneratedChapterSchema), required=True, validate=validate.Length(min=1)
    )


class GeneratedQuizSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    title = fields.String(load_default=None, allow_none=True)
    questions = fields.List(fields.Dict(), required=True, validate=validate.Length(min=1))


class JobTypeSchema(Schema):
    job_type = fields.String(required=True, validate=validate.OneOf(JOB_TYPES))


class FailureListQuerySchema(Schema):
    include_resolved = fields.Boolean(load_default=False)
    limit = fields.Integer(load_default=200, validate=validate.Range(min=1, max=1000))
