from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class GroupRef:
    id: str
    name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"_id": self.id, "name": self.name}


@dataclass
class UserData:
    """Groups, role names and permission names reachable from one user.

    Entries are kept in query order and are not deduplicated: a role referenced
    by two of the user's groups appears twice, and so do its permissions.
    """

    groups: List[GroupRef] = field(default_factory=list)
    roles: List[Optional[str]] = field(default_factory=list)
    permissions: List[Optional[str]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "groups": [group.to_dict() for group in self.groups],
            "roles": list(self.roles),
            "permissions": list(self.permissions),
        }
