"""Calculation gateway — bounded-time access to the pure calculation function.

The emissions formulas are opaque to the lifecycle engine. It submits an
entry snapshot plus resolved regulatory parameters and persists only the
numeric fields of the answer. Two implementations of CalculationFunction
ship here:

- BenchmarkCalculator: deterministic, in-process, benchmark based.
- HttpCalculationFunction: POSTs the request JSON to a remote service.
"""

import asyncio
import logging
from typing import Any, Protocol

import httpx
from pydantic import ValidationError

from src.engine.benchmarks import lookup_benchmark
from src.models.common import CalculationMethod, CBAMBase
from src.models.entry import CalculationOutputs, Entry, EntryDraft
from src.models.errors import CalculationRejected, UpstreamFailure
from src.models.regulatory import RegulatoryParameters

logger = logging.getLogger(__name__)

# Default values must produce at least this much (tCO2e).
_MIN_DEFAULT_EMISSIONS = 0.001

# Entry fields sent to the calculation function.
CALCULATION_INPUT_FIELDS = frozenset({
    "entry_id",
    "cn_code",
    "quantity",
    "country_of_origin",
    "reporting_period_year",
    "calculation_method",
    "product_name",
    "production_route",
    "direct_emissions_specific",
    "indirect_emissions_specific",
    "carbon_price_due_paid",
    "precursors",
})


class CalculationRequest(CBAMBase):
    entry: dict[str, Any]
    parameters: RegulatoryParameters
    include_precursors: bool = True


class CalculationResponse(CBAMBase):
    success: bool
    calculated_entry: dict[str, Any] | None = None
    error: str | None = None


class CalculationFunction(Protocol):
    async def __call__(self, request: CalculationRequest) -> CalculationResponse: ...


# ---------------------------------------------------------------------------
# Reference implementation
# ---------------------------------------------------------------------------


class BenchmarkCalculator:
    """Deterministic benchmark/actual-value calculator.

    Default values use the route benchmark with the year's mark-up.
    Actual values use operator-reported specific emissions. Combined uses
    actual values where reported and the benchmark for the rest.
    """

    async def __call__(self, request: CalculationRequest) -> CalculationResponse:
        return self.calculate(request)

    def calculate(self, request: CalculationRequest) -> CalculationResponse:
        try:
            entry = EntryDraft.model_validate(request.entry)
        except ValidationError as exc:
            return CalculationResponse(success=False, error=f"Invalid entry snapshot: {exc}")

        params = request.parameters
        year = entry.reporting_period_year or params.year

        if len(entry.cn_code) != 8 or not entry.cn_code.isdigit():
            return CalculationResponse(success=False, error="CN code must be 8 digits")
        if entry.quantity <= 0:
            return CalculationResponse(success=False, error="Quantity must be > 0")
        if not entry.country_of_origin:
            return CalculationResponse(success=False, error="Country of origin required")
        if year < 2026:
            return CalculationResponse(
                success=False, error="Reporting year cannot be before 2026",
            )

        quantity = entry.quantity
        benchmark = lookup_benchmark(
            entry.cn_code,
            country=entry.country_of_origin,
            product_name=entry.product_name,
            production_route=entry.production_route,
        )

        direct_specific = entry.direct_emissions_specific
        indirect_specific = entry.indirect_emissions_specific or 0.0
        if entry.calculation_method == CalculationMethod.ACTUAL_VALUES:
            default_used = False
            direct = (direct_specific or 0.0) * quantity
            indirect = indirect_specific * quantity
        elif entry.calculation_method == CalculationMethod.COMBINED and direct_specific:
            default_used = False
            direct = direct_specific * quantity
            indirect = indirect_specific * quantity
        else:
            if benchmark is None:
                return CalculationResponse(
                    success=False, error=f"No benchmark found for CN code {entry.cn_code}",
                )
            default_used = True
            direct = benchmark.value_per_tonne * quantity
            indirect = 0.0

        precursor_emissions = 0.0
        if request.include_precursors:
            for precursor in entry.precursors:
                if not precursor.precursor_cn_code:
                    return CalculationResponse(
                        success=False, error="Precursor is missing its CN code",
                    )
                if precursor.emissions_embedded is not None:
                    precursor_emissions += precursor.emissions_embedded
                elif (
                    precursor.emissions_intensity_factor is not None
                    and precursor.quantity_consumed is not None
                ):
                    precursor_emissions += (
                        precursor.emissions_intensity_factor * precursor.quantity_consumed
                    )
                else:
                    return CalculationResponse(
                        success=False,
                        error=f"Precursor {precursor.precursor_cn_code} has no emission data",
                    )

        total = direct + indirect + precursor_emissions

        markup = params.markup_percent if default_used else 0.0
        total_with_markup = total * (1 + markup / 100)
        if default_used and total_with_markup < _MIN_DEFAULT_EMISSIONS:
            return CalculationResponse(
                success=False,
                error=f"Default values must produce non-zero emissions, got {total_with_markup:.6f}",
            )

        free_allocation = 0.0
        if params.free_allocation_active:
            base = benchmark.value_per_tonne if benchmark is not None and default_used else direct / quantity
            free_allocation = base * quantity * (1 - params.cbam_factor)

        chargeable = max(0.0, total_with_markup - free_allocation - entry.carbon_price_due_paid)

        outputs = CalculationOutputs(
            direct_emissions_specific=direct / quantity,
            indirect_emissions_specific=indirect / quantity,
            precursor_emissions=precursor_emissions,
            total_embedded_emissions=total,
            chargeable_emissions=chargeable,
            certificates_required=chargeable,
            cbam_factor_applied=params.cbam_factor,
            free_allocation_adjustment=free_allocation,
            mark_up_percentage_applied=markup,
            production_route=benchmark.production_route if benchmark else entry.production_route,
            default_value_used=default_used,
        )
        payload = outputs.model_dump()
        payload["goods_category"] = benchmark.goods_category if benchmark else None
        payload["regulatory_version"] = params.version_label
        return CalculationResponse(success=True, calculated_entry=payload)


# ---------------------------------------------------------------------------
# Remote implementation
# ---------------------------------------------------------------------------


class HttpCalculationFunction:
    """POST the request JSON to a remote calculation service."""

    def __init__(self, url: str, *, client: httpx.AsyncClient | None = None) -> None:
        self._url = url
        self._client = client

    async def __call__(self, request: CalculationRequest) -> CalculationResponse:
        payload = request.model_dump(mode="json")
        try:
            if self._client is not None:
                response = await self._client.post(self._url, json=payload)
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.post(self._url, json=payload)
            response.raise_for_status()
        except httpx.TimeoutException as exc:
            raise UpstreamFailure(
                f"Calculation service timed out: {exc}", retryable=True, timed_out=True,
            ) from exc
        except httpx.HTTPStatusError as exc:
            raise UpstreamFailure(
                f"Calculation service returned {exc.response.status_code}",
                retryable=exc.response.status_code >= 500,
            ) from exc
        except httpx.HTTPError as exc:
            raise UpstreamFailure(f"Calculation service unreachable: {exc}", retryable=True) from exc

        try:
            return CalculationResponse.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise UpstreamFailure(f"Malformed calculation response: {exc}") from exc


# ---------------------------------------------------------------------------
# Gateway
# ---------------------------------------------------------------------------


class CalculationResult(CBAMBase):
    """Numeric outputs plus the category the calculation resolved."""

    outputs: CalculationOutputs
    goods_category: str | None = None


class CalculationGateway:
    """Wraps a CalculationFunction with a timeout and response checking."""

    def __init__(self, function: CalculationFunction, *, timeout_seconds: float = 10.0) -> None:
        self._function = function
        self._timeout = timeout_seconds

    async def calculate(
        self,
        entry: Entry | EntryDraft,
        parameters: RegulatoryParameters,
        *,
        include_precursors: bool = True,
    ) -> CalculationResult:
        """Run the calculation for ``entry``. Never writes anything.

        Raises UpstreamFailure on timeout or transport errors and
        CalculationRejected when the function refuses the input.
        """
        request = CalculationRequest(
            entry=entry.model_dump(mode="json", include=CALCULATION_INPUT_FIELDS),
            parameters=parameters,
            include_precursors=include_precursors,
        )
        try:
            response = await asyncio.wait_for(self._function(request), timeout=self._timeout)
        except TimeoutError as exc:
            logger.warning(
                "Calculation timed out after %.1fs for CN %s", self._timeout, request.entry.get("cn_code"),
            )
            raise UpstreamFailure(
                f"Calculation exceeded {self._timeout}s", retryable=True, timed_out=True,
            ) from exc

        if not response.success or response.calculated_entry is None:
            raise CalculationRejected(response.error or "Calculation failed")

        try:
            outputs = CalculationOutputs.model_validate(response.calculated_entry)
        except ValidationError as exc:
            raise UpstreamFailure(f"Calculation response is missing numeric fields: {exc}") from exc
        return CalculationResult(
            outputs=outputs,
            goods_category=response.calculated_entry.get("goods_category"),
        )
