"""Helpers shared by the memory and postgres record stores.

Both backends must agree on how collection names are vetted, where a record's
identifier lives inside its document, and the exact wording of the domain
errors, so those rules live here.
"""

from __future__ import annotations

import re
import uuid
from typing import Any, Dict, Iterable, List, Optional

from recordstore.storage.errors import ArgumentError, NotFoundError, ValidationError

IDENTIFIER_FIELD = "_id"

GROUPS_COLLECTION = "groups"
ROLES_COLLECTION = "roles"
PERMISSIONS_COLLECTION = "permissions"

# 48 characters leaves room for the "_identifier_key" suffix inside
# Postgres' 63 byte identifier limit.
_COLLECTION_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,47}$")


def validate_collection_name(collection: Any) -> str:
    """Return ``collection`` if it is safe to splice into SQL text."""

    if not isinstance(collection, str) or not _COLLECTION_NAME_RE.match(collection):
        raise ArgumentError(
            f"The provided collection name is invalid: {collection!r}",
            {"collection": collection},
        )
    return collection


def quote_collection(collection: str) -> str:
    """Quote a validated collection name for use as a table identifier."""

    return f'"{validate_collection_name(collection)}"'


def identifier_constraint(collection: str) -> str:
    return f'"{validate_collection_name(collection)}_identifier_key"'


def require_identifier(identifier: Any) -> str:
    if not isinstance(identifier, str) or not identifier:
        raise ArgumentError(
            f"The provided identifier is invalid: {identifier!r}",
            {"identifier": identifier},
        )
    return identifier


def require_document(document: Any) -> Dict[str, Any]:
    if not isinstance(document, dict):
        raise ArgumentError(
            "A record must be a JSON object",
            {"type": type(document).__name__},
        )
    return document


def assign_identifier(document: Dict[str, Any]) -> str:
    """Give ``document`` a uuid4 identifier unless it already carries one."""

    if not document.get(IDENTIFIER_FIELD):
        document[IDENTIFIER_FIELD] = str(uuid.uuid4())
    return require_identifier(document[IDENTIFIER_FIELD])


def flatten_ids(id_lists: Iterable[Optional[Iterable[Any]]]) -> List[str]:
    """Concatenate embedded id arrays, skipping documents that have none.

    Order is preserved and duplicates are kept.
    """

    flattened: List[str] = []
    for ids in id_lists:
        if not ids or isinstance(ids, (str, bytes, dict)):
            continue
        flattened.extend(str(item) for item in ids)
    return flattened


def record_not_found(collection: str, identifier: str) -> NotFoundError:
    return NotFoundError(
        f"The record {identifier} in {collection} does not exist.",
        {"collection": collection, "identifier": identifier},
    )


def record_already_exists(collection: str, identifier: str) -> ValidationError:
    return ValidationError(
        f"The record {identifier} in {collection} already exists.",
        {"collection": collection, "identifier": identifier},
    )
