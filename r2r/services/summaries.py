"""
Summary Archive

Analysis results are appended to one global collection and filtered by
user on read.

"Latest" is the most recently APPENDED summary for a user. It is not the
summary with the latest period: analysing last year after analysing this
month makes last year's summary the latest one. The dashboard and the
analysis page both rely on this insertion-order meaning.
"""

from typing import Optional

from r2r.models.finance import AnalysisSummary
from r2r.services.storage import SummaryStorageInterface


class SummaryArchive:
    """Append-only archive of analysis summaries."""

    def __init__(self, storage: SummaryStorageInterface):
        self._storage = storage

    async def archive(self, summary: AnalysisSummary) -> AnalysisSummary:
        return await self._storage.append_summary(summary)

    async def history(self, user_id: str) -> list[AnalysisSummary]:
        """All summaries for the user, oldest append first."""
        return await self._storage.list_summaries(user_id)

    async def latest(self, user_id: str) -> Optional[AnalysisSummary]:
        summaries = await self.history(user_id)
        return summaries[-1] if summaries else None
