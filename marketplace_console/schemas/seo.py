"""Pydantic schemas for the SEO configuration endpoints."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

DEFAULT_ROBOTS_TXT = "User-agent: *\nAllow: /"


class SeoConfig(BaseModel):
    """GET /api/admin/seo/config."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    robots_txt: str = DEFAULT_ROBOTS_TXT
    general: dict = Field(default_factory=dict)


class Redirect(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    source: str
    destination: str
    permanent: bool = False
    created_at: datetime | None = None
