"""Ledger — every repository over one AsyncSession.

Services receive a Ledger instead of a bag of repositories so that all
reads and writes in a call chain share one unit of work, and so that
all-or-nothing steps can open a savepoint on the same session.
"""

from sqlalchemy.ext.asyncio import AsyncSession, AsyncSessionTransaction

from src.repositories.audit import AuditLogRepository, VerifierRepository
from src.repositories.certificates import CertificateRepository
from src.repositories.entries import CalculationSnapshotRepository, EntryRepository
from src.repositories.regulatory import RegulatoryVersionRepository
from src.repositories.reports import ReportRepository
from src.repositories.workflows import ChangeRequestRepository, RecalculationRequestRepository


class Ledger:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.entries = EntryRepository(session)
        self.snapshots = CalculationSnapshotRepository(session)
        self.change_requests = ChangeRequestRepository(session)
        self.recalculations = RecalculationRequestRepository(session)
        self.versions = RegulatoryVersionRepository(session)
        self.reports = ReportRepository(session)
        self.certificates = CertificateRepository(session)
        self.verifiers = VerifierRepository(session)
        self.audit_log = AuditLogRepository(session)

    def savepoint(self) -> AsyncSessionTransaction:
        """``async with ledger.savepoint():`` rolls back the block on any exception."""
        return self.session.begin_nested()
