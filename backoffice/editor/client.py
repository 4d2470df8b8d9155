"""Async HTTP client for the menu authority.

Each call maps to one endpoint. Failures surface as the editor's own error
types: ``TransportError`` when nothing usable came back, ``WriteRejectedError``
when the authority answered with an error status.
"""
import logging
from typing import List, Optional, Sequence

import httpx
from pydantic import BaseModel, ValidationError

from backoffice.core.config import settings
from backoffice.core.errors import TransportError, WriteRejectedError
from backoffice.models.menu import MenuType
from backoffice.schemas.catalog import CatalogDishIn, CatalogDishOut, CatalogSearchOut
from backoffice.schemas.menu import (
    BasicsPayload,
    DishesOut,
    DishIn,
    DishOut,
    DraftCreated,
    MenuOut,
    MenuTypeChange,
    PublishResult,
    SectionIn,
    SectionOut,
    SectionsOut,
    WriteResult,
)

logger = logging.getLogger(__name__)


def _detail(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(data, dict) and data.get("detail"):
        detail = data["detail"]
        return detail if isinstance(detail, str) else str(detail)
    return str(data)


class MenuApiClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        http: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
    ):
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(
            base_url=base_url or settings.API_BASE_URL,
            timeout=timeout or settings.HTTP_TIMEOUT_SECONDS,
        )
        self._prefix = settings.API_V1_STR.rstrip("/")

    def _url(self, path: str) -> str:
        if not path.startswith("/"):
            path = "/" + path
        return self._prefix + path

    async def _request(self, method: str, path: str, model, **kwargs):
        try:
            response = await self._http.request(method, self._url(path), **kwargs)
        except httpx.TransportError as exc:
            raise TransportError(f"{method} {path} failed: {exc}") from exc
        if response.status_code >= 400:
            raise WriteRejectedError(_detail(response), status_code=response.status_code)
        try:
            return model.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise TransportError(f"{method} {path} returned an unreadable body") from exc

    @staticmethod
    def _body(model: BaseModel) -> dict:
        return model.model_dump(mode="json")

    # Menus

    async def create_draft(self, menu_type: MenuType) -> int:
        created = await self._request(
            "POST", "/group-menus/drafts", DraftCreated, json={"menu_type": MenuType(menu_type).value}
        )
        logger.info("Created draft menu %s", created.menu_id)
        return created.menu_id

    async def get_menu(self, menu_id: int) -> MenuOut:
        return await self._request("GET", f"/group-menus/{menu_id}", MenuOut)

    async def patch_basics(self, menu_id: int, payload: BasicsPayload) -> WriteResult:
        result = await self._request("PATCH", f"/group-menus/{menu_id}/basics", WriteResult, json=self._body(payload))
        if not result.success:
            raise WriteRejectedError(result.message or "Basics were not saved")
        return result

    async def change_menu_type(self, menu_id: int, menu_type: MenuType) -> MenuType:
        result = await self._request(
            "PATCH", f"/group-menus/{menu_id}/type", MenuTypeChange, json={"menu_type": MenuType(menu_type).value}
        )
        return result.menu_type

    async def put_sections(self, menu_id: int, sections: Sequence[SectionIn]) -> List[SectionOut]:
        body = {"sections": [self._body(s) for s in sections]}
        result = await self._request("PUT", f"/group-menus/{menu_id}/sections", SectionsOut, json=body)
        return result.sections

    async def put_section_dishes(self, menu_id: int, section_id: int, dishes: Sequence[DishIn]) -> List[DishOut]:
        body = {"dishes": [self._body(d) for d in dishes]}
        result = await self._request(
            "PUT", f"/group-menus/{menu_id}/sections/{section_id}/dishes", DishesOut, json=body
        )
        return result.dishes

    async def publish(self, menu_id: int) -> PublishResult:
        result = await self._request("POST", f"/group-menus/{menu_id}/publish", PublishResult)
        if not result.success:
            raise WriteRejectedError("Menu was not published")
        return result

    # Dish catalog

    async def upsert_catalog_dish(self, dish: CatalogDishIn) -> CatalogDishOut:
        return await self._request("PUT", "/dish-catalog", CatalogDishOut, json=self._body(dish))

    async def search_catalog(self, query: str, limit: Optional[int] = None) -> List[CatalogDishOut]:
        params = {"q": query, "limit": limit or settings.CATALOG_SEARCH_LIMIT}
        result = await self._request("GET", "/dish-catalog/search", CatalogSearchOut, params=params)
        return result.items

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()
