"""Regulatory version registry.

Holds versioned bundles of phase-in factors and default mark-ups. At
most one version is ACTIVE; activation supersedes the previous one in
the same savepoint. Activation never recalculates anything: existing
entries keep the version they were calculated under until an approved
recalculation moves them.
"""

import logging
from uuid import UUID

from src.governance.authorization import (
    ACTIVATE_REGULATORY_VERSION,
    REGISTER_REGULATORY_VERSION,
    require_admin,
)
from src.governance.events import EventType
from src.lifecycle.context import LifecycleContext
from src.models.common import EntityType, RegulatoryVersionStatus
from src.models.outcome import Outcome, RejectionCode
from src.models.regulatory import (
    RegulatoryParameters,
    RegulatoryVersion,
    RegulatoryVersionDraft,
    fallback_version,
)

logger = logging.getLogger(__name__)


def _value_for_year(schedule: dict[int, float], year: int, default: float) -> float:
    """Value for ``year``, else the nearest earlier configured year, else the earliest."""
    if not schedule:
        return default
    if year in schedule:
        return schedule[year]
    earlier = [y for y in schedule if y < year]
    if earlier:
        return schedule[max(earlier)]
    return schedule[min(schedule)]


def parameters_for(version: RegulatoryVersion, year: int) -> RegulatoryParameters:
    """Resolve the phase-in factor and mark-up that apply to ``year``."""
    return RegulatoryParameters(
        version_id=None if version.is_fallback else version.version_id,
        version_label=version.label,
        year=year,
        cbam_factor=_value_for_year(version.cbam_factors, year, 1.0),
        markup_percent=_value_for_year(version.default_markups, year, 0.0),
        free_allocation_active=version.free_allocation_active,
    )


class RegulatoryVersionRegistry:
    """Register, activate and resolve regulatory versions."""

    def __init__(self, ctx: LifecycleContext) -> None:
        self._ctx = ctx
        self._versions = ctx.ledger.versions

    async def get_current_version(self) -> RegulatoryVersion:
        """The active version, or the built-in fallback when none is active."""
        active = await self._versions.get_active()
        if active is not None:
            return active
        fallback = fallback_version()
        logger.warning(
            "No active regulatory version; using built-in fallback %s", fallback.label,
        )
        return fallback

    async def get(self, version_id: UUID) -> RegulatoryVersion:
        return await self._versions.require(version_id)

    async def list_versions(self) -> list[RegulatoryVersion]:
        return await self._versions.list_all()

    def parameters_for(self, version: RegulatoryVersion, year: int) -> RegulatoryParameters:
        return parameters_for(version, year)

    async def current_parameters(self, year: int) -> RegulatoryParameters:
        return parameters_for(await self.get_current_version(), year)

    async def register_new_version(
        self, draft: RegulatoryVersionDraft, actor: str,
    ) -> Outcome[RegulatoryVersion]:
        require_admin(self._ctx.authorizer, actor, REGISTER_REGULATORY_VERSION)

        existing = await self._versions.list_all()
        if any(v.label == draft.label for v in existing):
            return Outcome.rejected(
                RejectionCode.PRECONDITION_FAILED,
                f"Regulatory version label '{draft.label}' already exists.",
                label=draft.label,
            )

        now = self._ctx.clock()
        version = RegulatoryVersion(
            **draft.model_dump(),
            status=RegulatoryVersionStatus.PENDING_ACTIVATION,
            created_by=actor,
            created_at=now,
        )
        await self._versions.create(version)
        await self._ctx.audit.log(
            EntityType.REGULATORY_VERSION, version.version_id, "registered", actor,
            {"label": version.label, "effective_date": version.effective_date.isoformat()},
        )
        return Outcome.success(version)

    async def activate_version(self, version_id: UUID, actor: str) -> Outcome[RegulatoryVersion]:
        require_admin(self._ctx.authorizer, actor, ACTIVATE_REGULATORY_VERSION)

        target = await self._versions.require(version_id)
        if target.status != RegulatoryVersionStatus.PENDING_ACTIVATION:
            return Outcome.rejected(
                RejectionCode.INVALID_TRANSITION,
                f"Only a version pending activation can be activated (status '{target.status}').",
                from_state=target.status,
                to_state=RegulatoryVersionStatus.ACTIVE,
            )

        now = self._ctx.clock()
        previous = await self._versions.get_active()
        async with self._ctx.ledger.savepoint():
            if previous is not None:
                await self._versions.update_from(
                    previous.model_copy(update={
                        "status": RegulatoryVersionStatus.SUPERSEDED,
                        "superseded_at": now,
                    }),
                    RegulatoryVersionStatus.ACTIVE,
                )
            activated = await self._versions.update_from(
                target.model_copy(update={
                    "status": RegulatoryVersionStatus.ACTIVE,
                    "activated_by": actor,
                    "activated_at": now,
                }),
                RegulatoryVersionStatus.PENDING_ACTIVATION,
            )

        await self._ctx.audit.log(
            EntityType.REGULATORY_VERSION, version_id, "activated", actor,
            {
                "label": activated.label,
                "superseded_version_id": previous.version_id if previous else None,
            },
        )
        await self._ctx.publish(
            EventType.REGULATORY_VERSION_ACTIVATED, version_id, actor,
            label=activated.label,
            superseded_version_id=str(previous.version_id) if previous else None,
        )
        return Outcome.success(activated)
