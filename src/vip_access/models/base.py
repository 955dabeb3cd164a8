from __future__ import annotations

from typing import Any, ClassVar, Dict, List, Tuple

from pydantic import BaseModel


IndexSpec = Tuple[List[Tuple[str, int]], Dict[str, Any]]


class DBSerializableModel(BaseModel):
    """
    Base Pydantic model for documents persisted by a DB manager.

    - Serializes itself for persistence
    - Declares the indexes its collection needs, so a backend can create
      them at startup without knowing about individual models
    """

    # Logical collection name; subclasses should override
    collection_name: ClassVar[str]

    # (keys, options) pairs understood by the Mongo backend
    indexes: ClassVar[List[IndexSpec]] = []

    def serialize_for_db(self) -> Dict[str, Any]:
        """
        Convert to a dict suitable for DB persistence.

        This is the single place to control how models are stored;
        DB adapters can still post-process this if needed.
        """
        return self.model_dump(mode="python", by_alias=True, exclude_none=True)
