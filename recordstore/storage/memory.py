from __future__ import annotations

import copy
import threading
from typing import Any, Dict, List

from recordstore.logging import get_logger
from recordstore.storage.common import (
    GROUPS_COLLECTION,
    IDENTIFIER_FIELD,
    PERMISSIONS_COLLECTION,
    ROLES_COLLECTION,
    assign_identifier,
    flatten_ids,
    record_already_exists,
    record_not_found,
    require_document,
    require_identifier,
    validate_collection_name,
)
from recordstore.storage.errors import NotFoundError
from recordstore.storage.models import GroupRef, UserData


def _contains_user(ids: Any, user_id: str) -> bool:
    # jsonb "@>" semantics: an array element or an equal scalar, never a substring
    if isinstance(ids, list):
        return user_id in ids
    return ids == user_id


class MemoryRecordStore:
    """In-process record store with the same contract as the Postgres one.

    Collections spring into existence on first write and read as empty until
    then. Documents are deep-copied in both directions so callers never share
    state with the store.
    """

    def __init__(self) -> None:
        self.logger = get_logger(__name__)
        self.collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        # RLock so helpers can be called while the lock is already held
        self._data_lock = threading.RLock()
        self.logger.info("record_store_initialized", backend="memory")

    async def __aenter__(self) -> "MemoryRecordStore":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def open(self) -> None:
        return None

    async def close(self) -> None:
        return None

    def _collection(self, collection: str) -> Dict[str, Dict[str, Any]]:
        with self._data_lock:
            records = self.collections.get(collection)
            if records is None:
                records = self.collections[collection] = {}
                self.logger.info("collection_provisioned", collection=collection)
            return records

    async def get_all(self, collection: str) -> List[Any]:
        validate_collection_name(collection)
        with self._data_lock:
            records = self.collections.get(collection, {})
            return [copy.deepcopy(doc) for doc in records.values()]

    async def get(self, collection: str, identifier: str) -> Any:
        validate_collection_name(collection)
        require_identifier(identifier)
        with self._data_lock:
            doc = self.collections.get(collection, {}).get(identifier)
            if doc is None:
                raise record_not_found(collection, identifier)
            return copy.deepcopy(doc)

    async def create(self, collection: str, record: Dict[str, Any]) -> Dict[str, Any]:
        validate_collection_name(collection)
        require_document(record)
        identifier = assign_identifier(record)
        with self._data_lock:
            records = self._collection(collection)
            if identifier in records:
                raise record_already_exists(collection, identifier)
            records[identifier] = copy.deepcopy(record)
        return record

    async def update(
        self,
        collection: str,
        identifier: str,
        record: Dict[str, Any],
        upsert: bool = False,
    ) -> Dict[str, Any]:
        validate_collection_name(collection)
        require_identifier(identifier)
        require_document(record)
        record[IDENTIFIER_FIELD] = identifier
        with self._data_lock:
            if upsert:
                records = self._collection(collection)
            else:
                records = self.collections.get(collection, {})
                if identifier not in records:
                    raise record_not_found(collection, identifier)
            records[identifier] = copy.deepcopy(record)
        return record

    async def delete(self, collection: str, identifier: str) -> None:
        validate_collection_name(collection)
        require_identifier(identifier)
        with self._data_lock:
            self.collections.get(collection, {}).pop(identifier, None)

    async def delete_all(self) -> None:
        with self._data_lock:
            count = len(self.collections)
            self.collections.clear()
        self.logger.info("collections_dropped", count=count)

    def _auth_collection(self, collection: str) -> Dict[str, Dict[str, Any]]:
        records = self.collections.get(collection)
        if records is None:
            raise NotFoundError(
                f"The collection {collection} does not exist.",
                {"collection": collection},
            )
        return records

    async def get_user_data(self, user_id: str) -> UserData:
        require_identifier(user_id)
        with self._data_lock:
            groups = [
                doc
                for doc in self._auth_collection(GROUPS_COLLECTION).values()
                if _contains_user(doc.get("members"), user_id)
            ]
            role_ids = flatten_ids(doc.get("roles") for doc in groups)

            role_docs = self._auth_collection(ROLES_COLLECTION)
            roles = [role_docs[role_id] for role_id in role_ids if role_id in role_docs]
            roles.extend(
                doc for doc in role_docs.values() if _contains_user(doc.get("users"), user_id)
            )
            permission_ids = flatten_ids(doc.get("permissions") for doc in roles)

            permission_docs = self._auth_collection(PERMISSIONS_COLLECTION)
            permissions = [
                permission_docs[permission_id]
                for permission_id in permission_ids
                if permission_id in permission_docs
            ]

            return UserData(
                groups=[GroupRef(id=doc[IDENTIFIER_FIELD], name=doc.get("name")) for doc in groups],
                roles=[doc.get("name") for doc in roles],
                permissions=[doc.get("name") for doc in permissions],
            )
