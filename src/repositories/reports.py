"""Report repository with keyed report ↔ entry links."""

from collections import defaultdict
from uuid import UUID

from sqlalchemy import select

from src.db.tables import ReportEntryLinkRow, ReportRow
from src.models.common import EntityType, ReportStatus
from src.models.report import Report
from src.repositories.base import VersionedRepository


class ReportRepository(VersionedRepository[Report]):
    """Reports are writable only while in DRAFT."""

    row_type = ReportRow
    model_type = Report
    entity_type = EntityType.REPORT

    async def _links_for(self, report_ids: list[UUID]) -> dict[UUID, list[UUID]]:
        if not report_ids:
            return {}
        result = await self._session.execute(
            select(ReportEntryLinkRow)
            .where(ReportEntryLinkRow.report_id.in_(report_ids))
            .order_by(ReportEntryLinkRow.position)
        )
        links: dict[UUID, list[UUID]] = defaultdict(list)
        for link in result.scalars().all():
            links[link.report_id].append(link.entry_id)
        return links

    async def _with_links(self, reports: list[Report]) -> list[Report]:
        links = await self._links_for([r.report_id for r in reports])
        return [
            r.model_copy(update={"linked_entry_ids": links.get(r.report_id, [])})
            for r in reports
        ]

    async def get(self, report_id: UUID) -> Report | None:
        report = await super().get(report_id)
        if report is None:
            return None
        return (await self._with_links([report]))[0]

    async def list_all(self) -> list[Report]:
        return await self._with_links(
            await self._list_where(order_by=ReportRow.generated_at)
        )

    async def list_for_period(self, reporting_period: str) -> list[Report]:
        return await self._with_links(
            await self._list_where(
                ReportRow.reporting_period == reporting_period,
                order_by=ReportRow.generated_at,
            )
        )

    async def create(self, report: Report) -> Report:
        self._session.add(ReportRow(**self._to_values(report)))
        for position, entry_id in enumerate(report.linked_entry_ids):
            self._session.add(ReportEntryLinkRow(
                report_id=report.report_id, entry_id=entry_id, position=position,
            ))
        await self._session.flush()
        return report

    async def update_draft(self, report: Report) -> Report:
        """Conditional on the stored report still being a draft."""
        return await self.update(
            report,
            ReportRow.status == ReportStatus.DRAFT,
            conflict_detail="report is no longer a draft",
        )

    async def is_entry_in_submitted_report(self, entry_id: UUID) -> bool:
        result = await self._session.execute(
            select(ReportEntryLinkRow.report_id)
            .join(ReportRow, ReportRow.report_id == ReportEntryLinkRow.report_id)
            .where(
                ReportEntryLinkRow.entry_id == entry_id,
                ReportRow.status == ReportStatus.SUBMITTED,
            )
            .limit(1)
        )
        return result.scalar_one_or_none() is not None
