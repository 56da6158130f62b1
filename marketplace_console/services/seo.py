"""SEO settings: robots.txt, global meta defaults and URL redirects."""

import logging
from typing import Any

from pydantic import TypeAdapter, ValidationError

from marketplace_console.errors import MalformedResponseError, PayloadValidationError
from marketplace_console.schemas.seo import Redirect, SeoConfig
from marketplace_console.services.api import ApiClient

logger = logging.getLogger(__name__)

CONFIG_PATH = "/api/admin/seo/config"
REDIRECTS_PATH = "/api/admin/seo/redirects"


class SeoClient:

    def __init__(self, api: ApiClient):
        self.api = api

    async def get_config(self) -> SeoConfig:
        data = await self.api.get(CONFIG_PATH)
        try:
            return SeoConfig.model_validate(data or {})
        except ValidationError as exc:
            raise MalformedResponseError(f"Invalid SEO config: {exc}") from exc

    async def update_robots(self, content: str) -> None:
        await self.api.post(CONFIG_PATH, {"type": "robots", "content": content})
        logger.info("robots.txt updated (%d bytes)", len(content))

    async def update_general(self, values: dict[str, Any]) -> None:
        await self.api.post(CONFIG_PATH, {"type": "general", "content": values})
        logger.info("Global SEO settings updated: %s", ", ".join(sorted(values)) or "(cleared)")

    async def list_redirects(self) -> list[Redirect]:
        data = await self.api.get(REDIRECTS_PATH)
        if isinstance(data, dict):
            data = data.get("redirects", [])
        try:
            return TypeAdapter(list[Redirect]).validate_python(data or [])
        except ValidationError as exc:
            raise MalformedResponseError(f"Invalid redirect list: {exc}") from exc

    async def add_redirect(self, source: str, destination: str, permanent: bool = False) -> Redirect:
        """Create a redirect.  Source and destination must be non-blank.

        Raises:
            PayloadValidationError: blank source or destination (no request sent).
        """
        source, destination = source.strip(), destination.strip()
        if not source or not destination:
            raise PayloadValidationError(
                "Source and destination are required",
                field="source" if not source else "destination",
            )
        data = await self.api.post(
            REDIRECTS_PATH,
            {"source": source, "destination": destination, "permanent": permanent},
        )
        raw = data.get("redirect") if isinstance(data, dict) else None
        try:
            redirect = Redirect.model_validate(raw)
        except ValidationError as exc:
            raise MalformedResponseError(f"Invalid redirect in response: {exc}") from exc
        logger.info(
            "Redirect %s -> %s added (%s)",
            redirect.source, redirect.destination, "301" if redirect.permanent else "302",
        )
        return redirect

    async def delete_redirect(self, redirect_id: str) -> None:
        await self.api.delete(REDIRECTS_PATH, params={"id": redirect_id})
        logger.info("Redirect %s deleted", redirect_id)
