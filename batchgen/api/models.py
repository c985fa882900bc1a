from __future__ import annotations

import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictInt, StrictStr, model_validator

from batchgen.jobs.models import JobStatus

MIN_ITEM_COUNT = 1
MAX_ITEM_COUNT = 100
MIN_ITEM_LENGTH = 300
MAX_ITEM_LENGTH = 3000


class PersonaInput(BaseModel):
  """Inline persona snapshot supplied by the client."""

  gender: StrictStr | None = Field(default=None, max_length=32)
  age: StrictInt | None = Field(default=None, ge=10, le=100)
  occupation: StrictStr | None = Field(default=None, max_length=100)
  is_married: StrictBool | None = None
  has_children: StrictBool | None = None
  blog_topic: StrictStr | None = Field(default=None, max_length=200)
  description: StrictStr | None = Field(default=None, max_length=1000)
  model_config = ConfigDict(extra="forbid")


class CreateJobRequest(BaseModel):
  """Request payload for a batch generation job."""

  keyword: StrictStr = Field(min_length=1, max_length=200, description="Search keyword the posts target.", examples=["gangnam brunch"])
  post_type: StrictStr = Field(default="default", min_length=1, max_length=100, description="Post type; selects prompt variant and reference-summary cache.")
  persona: PersonaInput | None = Field(default=None, description="Inline persona snapshot. Mutually exclusive with use_random_persona.")
  use_random_persona: StrictBool = Field(default=False, description="Give every item a fresh random persona.")
  blog_index: Literal["normal", "semi-optimal", "optimal"] = Field(default="normal", description="Target blog index tier.")
  writing_tone: Literal["casual", "formal", "narrative"] = Field(default="casual", description="Sentence ending style.")
  recommended_keyword: StrictStr | None = Field(default=None, max_length=200)
  length: StrictInt = Field(ge=MIN_ITEM_LENGTH, le=MAX_ITEM_LENGTH, description="Target characters per post.")
  count: StrictInt = Field(ge=MIN_ITEM_COUNT, le=MAX_ITEM_COUNT, description="Number of posts to generate.")
  additional_fields: dict[str, Any] | None = None
  idempotency_key: StrictStr | None = Field(default=None, max_length=128, description="Optional client-generated key to prevent duplicate jobs.")
  model_config = ConfigDict(extra="forbid")

  @model_validator(mode="after")
  def _exactly_one_persona_source(self) -> CreateJobRequest:
    if self.persona is not None and self.use_random_persona:
      raise ValueError("Provide either persona or use_random_persona, not both.")
    if self.persona is None and not self.use_random_persona:
      raise ValueError("Either persona or use_random_persona is required.")
    return self

  def to_params(self) -> dict[str, Any]:
    """Return the opaque parameter bag stored on the job."""
    persona = {"is_random": True} if self.use_random_persona else {**self.persona.model_dump(exclude_none=True), "is_random": False}
    return {
      "post_type": self.post_type,
      "persona": persona,
      "blog_index": self.blog_index,
      "writing_tone": self.writing_tone,
      "recommended_keyword": self.recommended_keyword,
      "length": self.length,
      "additional_fields": self.additional_fields or {},
    }


class JobCreateResponse(BaseModel):
  """Response payload for job creation."""

  job_id: StrictStr
  display_id: StrictStr | None = None
  status: JobStatus
  target_count: StrictInt
  total_cost: StrictInt = Field(ge=0, description="Credits charged up front.")


class JobErrorResponse(BaseModel):
  message: StrictStr | None = None
  occurred_at: datetime.datetime | None = None


class JobProgressResponse(BaseModel):
  """Progress payload for a polling client."""

  job_id: StrictStr
  display_id: StrictStr | None = None
  status: JobStatus
  completed_count: StrictInt
  target_count: StrictInt
  progress: StrictInt = Field(ge=0, le=100, description="Percent complete, rounded.")
  artifacts_created: StrictInt
  started_at: datetime.datetime | None = None
  completed_at: datetime.datetime | None = None
  elapsed_seconds: StrictInt
  error: JobErrorResponse | None = None


class ArtifactResponse(BaseModel):
  index: StrictInt
  title: StrictStr | None = None
  content: StrictStr
  total_tokens: StrictInt = 0
  created_at: datetime.datetime | None = None


class JobArtifactsResponse(BaseModel):
  job_id: StrictStr
  artifacts: list[ArtifactResponse]


class CreditBalanceResponse(BaseModel):
  user_id: StrictStr
  balance: StrictInt


class TaskPayload(BaseModel):
  job_id: StrictStr


class ResumeStalledResponse(BaseModel):
  enqueued: list[StrictStr]
