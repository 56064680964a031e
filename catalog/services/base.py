import logging
from typing import Any, Generic, List, Optional, Type, TypeVar

from pydantic import ValidationError as ModelValidationError

from catalog.errors import RemoteFailure
from catalog.models import CatalogModel, Confirmation
from catalog.services.http_client import CatalogHTTPClient

logger = logging.getLogger(__name__)

EntityT = TypeVar("EntityT", bound=CatalogModel)


class Repository(Generic[EntityT]):
    """CRUD against one REST resource. Every call is a fresh round trip.

    Subclasses set `resource` (path segment), `model` (read model) and the
    singular/plural labels used in fallback error messages. Reads are public
    unless `auth_reads` is set; writes always carry the bearer token.
    """

    resource: str = ""
    model: Type[EntityT]
    singular: str = "item"
    plural: str = "items"
    auth_reads: bool = False

    def __init__(self, client: CatalogHTTPClient) -> None:
        self.client = client

    # ------------------------- Parsing ------------------------- #
    def _parse(self, data: Any, fallback: str, model: Optional[Type[CatalogModel]] = None) -> Any:
        model = model or self.model
        if not isinstance(data, dict):
            raise RemoteFailure(f"{fallback}: unexpected response")
        try:
            return model.model_validate(data)
        except ModelValidationError as e:
            logger.error(f"{fallback}: malformed {model.__name__} in response: {e}")
            raise RemoteFailure(f"{fallback}: unexpected response") from e

    def _parse_list(self, data: Any, fallback: str, model: Optional[Type[CatalogModel]] = None) -> List[Any]:
        if data is None:
            return []
        if not isinstance(data, list):
            raise RemoteFailure(f"{fallback}: unexpected response")
        return [self._parse(item, fallback, model) for item in data]

    @staticmethod
    def _confirmation(data: Any) -> Confirmation:
        if isinstance(data, dict):
            return Confirmation.model_validate(data)
        if isinstance(data, str):
            return Confirmation(message=data)
        return Confirmation()

    # ------------------------- CRUD ------------------------- #
    async def list(self) -> List[EntityT]:
        fallback = f"Failed to fetch {self.plural}"
        data = await self.client.get(f"/{self.resource}", fallback=fallback, auth=self.auth_reads)
        return self._parse_list(data, fallback)

    async def get_by_id(self, entity_id: Any) -> EntityT:
        fallback = f"Failed to fetch {self.singular}"
        data = await self.client.get(f"/{self.resource}/{entity_id}", fallback=fallback, auth=self.auth_reads)
        return self._parse(data, fallback)

    async def create(self, payload: CatalogModel) -> EntityT:
        fallback = f"Failed to create {self.singular}"
        data = await self.client.post(f"/{self.resource}", fallback=fallback, auth=True, payload=payload.to_dict())
        entity = self._parse(data, fallback)
        logger.info(f"Created {self.singular} {getattr(entity, 'id', '')}")
        return entity

    async def update(self, entity_id: Any, payload: CatalogModel) -> EntityT:
        fallback = f"Failed to update {self.singular}"
        data = await self.client.put(
            f"/{self.resource}/{entity_id}", fallback=fallback, auth=True, payload=payload.to_dict()
        )
        entity = self._parse(data, fallback)
        logger.info(f"Updated {self.singular} {entity_id}")
        return entity

    async def delete(self, entity_id: Any) -> Confirmation:
        fallback = f"Failed to delete {self.singular}"
        data = await self.client.delete(f"/{self.resource}/{entity_id}", fallback=fallback, auth=True)
        logger.info(f"Deleted {self.singular} {entity_id}")
        return self._confirmation(data)
