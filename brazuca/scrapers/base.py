from abc import ABC, abstractmethod
from typing import List, Optional

from pydantic import BaseModel

from brazuca.utils.models import Candidate


class DiscoverOptions(BaseModel):
    realdebrid_token: Optional[str] = None


class SourceProvider(ABC):
    """A search backend able to turn a media id into stream candidates."""

    def __init__(self, name: str):
        self.name = name

    @abstractmethod
    async def discover(
        self,
        media_type: str,
        media_id: str,
        options: Optional[DiscoverOptions] = None,
    ) -> List[Candidate]:
        """Return relevant, deduplicated candidates. Must never raise."""
