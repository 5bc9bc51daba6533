"""Tiered reallocation advice derived from ward forecasts."""

from __future__ import annotations

from typing import Optional, Sequence

from wardflow.domain.constraints import AdvisoryConfig, validate_advisory_config
from wardflow.domain.models import Suggestion, SuggestionTier, WardForecast
from wardflow.services.forecast_service import ForecastService
from wardflow.utils.config import Settings, get_settings
from wardflow.utils.logger import format_fields, get_logger


logger = get_logger(__name__)


def advisory_config_from_settings(settings: Settings) -> AdvisoryConfig:
    return AdvisoryConfig(
        critical_threshold=settings.advisory_critical_threshold,
        warning_threshold=settings.advisory_warning_threshold,
        low_threshold=settings.advisory_low_threshold,
    )


def _by_pressure(forecasts: Sequence[WardForecast]) -> list[WardForecast]:
    return sorted(forecasts, key=lambda item: (-item.projected_rate, item.ward_id))


def _relief_rationale(
    tier: SuggestionTier,
    target: WardForecast,
    source: Optional[WardForecast],
) -> str:
    headline = f"{target.ward_id} projected at {target.projected_rate:.1f}% occupancy ({tier.value})"
    if source is None:
        return f"{headline}; no low-occupancy ward is available to relieve it"
    return (
        f"{headline}; move capacity from {source.ward_id} "
        f"(projected {source.projected_rate:.1f}%)"
    )


def generate_suggestions(
    forecasts: Sequence[WardForecast],
    config: AdvisoryConfig,
    ward_filter: Optional[str] = None,
) -> list[Suggestion]:
    """Classify forecasts into tiers and pair pressured wards with a low source.

    Critical wards always get a suggestion, warning wards only when a low
    ward can serve as source. Every low ward gets one opportunity suggestion
    listing the pressured wards by descending projection.
    """
    validate_advisory_config(config)
    critical = _by_pressure(
        [item for item in forecasts if item.projected_rate > config.critical_threshold]
    )
    warning = _by_pressure(
        [
            item
            for item in forecasts
            if config.warning_threshold < item.projected_rate <= config.critical_threshold
        ]
    )
    low = sorted(
        [item for item in forecasts if item.projected_rate < config.low_threshold],
        key=lambda item: (item.projected_rate, item.ward_id),
    )
    source = low[0] if low else None

    suggestions: list[Suggestion] = []
    for target in critical:
        suggestions.append(
            Suggestion(
                tier=SuggestionTier.CRITICAL,
                rationale=_relief_rationale(SuggestionTier.CRITICAL, target, source),
                target_ward=target.ward_id,
                source_ward=source.ward_id if source else None,
            )
        )
    if source is not None:
        for target in warning:
            suggestions.append(
                Suggestion(
                    tier=SuggestionTier.WARNING,
                    rationale=_relief_rationale(SuggestionTier.WARNING, target, source),
                    target_ward=target.ward_id,
                    source_ward=source.ward_id,
                )
            )

    destinations = tuple(item.ward_id for item in _by_pressure(critical + warning))
    for candidate in low:
        if destinations:
            rationale = (
                f"{candidate.ward_id} projected at {candidate.projected_rate:.1f}% occupancy; "
                f"spare capacity could support {', '.join(destinations)}"
            )
        else:
            rationale = (
                f"{candidate.ward_id} projected at {candidate.projected_rate:.1f}% occupancy; "
                "spare capacity available"
            )
        suggestions.append(
            Suggestion(
                tier=SuggestionTier.OPPORTUNITY,
                rationale=rationale,
                source_ward=candidate.ward_id,
                destination_wards=destinations,
            )
        )

    if ward_filter is None:
        return suggestions

    scoped = [item for item in suggestions if item.references(ward_filter)]
    if scoped:
        return scoped
    return [
        Suggestion(
            tier=SuggestionTier.INFO,
            rationale=f"No urgent action needed for {ward_filter}",
            target_ward=ward_filter,
        )
    ]


class AdvisoryService:
    def __init__(
        self,
        forecast_service: ForecastService,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._forecast_service = forecast_service
        self._config = advisory_config_from_settings(self._settings)
        validate_advisory_config(self._config)

    def suggestions(self, ward_filter: Optional[str] = None) -> list[Suggestion]:
        forecasts = self._forecast_service.forecast()
        suggestions = generate_suggestions(forecasts, self._config, ward_filter)
        logger.info(
            "Suggestions generated | %s",
            format_fields(
                ward_filter=ward_filter,
                forecasts=len(forecasts),
                suggestions=len(suggestions),
            ),
        )
        return suggestions
