"""Threshold crossing detection and recording.

Each configured multiplier is tracked twice, once against the entry price
and once against the entry market cap. A crossing is recorded at most once
per (signal, multiplier, basis); the unique key in ``threshold_events`` is
the only arbiter.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from token_signal_tracker.alerter.models import ThresholdCrossedNotification
from token_signal_tracker.metrics.models import Baseline, PriceObservation, seconds
from token_signal_tracker.storage.models import ThresholdBasis
from token_signal_tracker.storage.repos import (
    TIME_TO_MULTIPLE_COLUMNS,
    MetricsRepository,
    PriceSampleRepository,
    SignalDTO,
    ThresholdEventDTO,
    ThresholdEventRepository,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from token_signal_tracker.alerter.dispatcher import Notifier
    from token_signal_tracker.metrics.hit_cache import ThresholdHitCache

logger = logging.getLogger(__name__)

DEFAULT_MULTIPLIERS = (2.0, 3.0, 4.0, 5.0, 10.0, 15.0, 20.0, 30.0, 50.0, 100.0)


class ThresholdRecorder:
    """Records first crossings of the configured multipliers.

    For every multiplier at or below the current multiple that has no event
    yet, the earliest sample that reached it supplies the hit price, market
    cap, time and provider. Without such a sample the current observation
    is used.
    """

    def __init__(
        self,
        *,
        multipliers: tuple[float, ...] = DEFAULT_MULTIPLIERS,
        notifier: Notifier | None = None,
        hit_cache: ThresholdHitCache | None = None,
    ) -> None:
        self.multipliers = tuple(sorted({float(m) for m in multipliers}))
        self._notifier = notifier
        self._hit_cache = hit_cache

    async def record(
        self,
        session: AsyncSession,
        *,
        signal: SignalDTO,
        baseline: Baseline,
        observation: PriceObservation,
    ) -> list[ThresholdEventDTO]:
        """Record any new crossings for ``observation``.

        Returns:
            Events created by this call (empty if every crossing was already
            recorded).
        """
        if signal.id is None:
            raise ValueError("signal must be persisted before recording thresholds")

        market_cap = observation.market_cap
        if market_cap is None:
            market_cap = baseline.market_cap_at(observation.price)

        entry = {
            ThresholdBasis.PRICE: baseline.price,
            ThresholdBasis.MARKET_CAP: baseline.market_cap,
        }
        current = {
            ThresholdBasis.PRICE: baseline.price_multiple(observation.price),
            ThresholdBasis.MARKET_CAP: baseline.market_cap_multiple(market_cap),
        }
        if all(v is None or v < self.multipliers[0] for v in current.values()):
            return []

        recorded = await self._recorded(session, signal.id)
        samples = PriceSampleRepository(session)
        events = ThresholdEventRepository(session)
        metrics = MetricsRepository(session)
        created: list[ThresholdEventDTO] = []

        for basis, multiple in current.items():
            reference = entry[basis]
            if multiple is None or not reference:
                continue
            for multiplier in self.multipliers:
                if multiplier > multiple:
                    break
                if (multiplier, basis.value) in recorded:
                    continue

                target = reference * multiplier
                if basis is ThresholdBasis.PRICE:
                    sample = await samples.first_sample_reaching(signal.id, price_at_least=target)
                else:
                    sample = await samples.first_sample_reaching(signal.id, market_cap_at_least=target)

                if sample is not None:
                    hit_price, hit_market_cap = sample.price, sample.market_cap
                    hit_at, provider = sample.sampled_at, sample.provider
                else:
                    hit_price, hit_market_cap = observation.price, market_cap
                    hit_at, provider = observation.observed_at, observation.provider

                event = ThresholdEventDTO(
                    signal_id=signal.id,
                    multiplier=multiplier,
                    basis=basis.value,
                    hit_price=hit_price,
                    hit_market_cap=hit_market_cap,
                    hit_at=hit_at,
                    time_to_hit_seconds=seconds(hit_at - signal.detected_at),
                    provider=provider,
                )
                if not await events.insert_if_absent(event):
                    continue

                created.append(event)
                recorded.add((multiplier, basis.value))
                logger.info(
                    "Signal %d (%s) crossed %gx on %s at %s",
                    signal.id,
                    signal.mint,
                    multiplier,
                    basis.value,
                    hit_at.isoformat(),
                )

                if self._hit_cache is not None:
                    await self._hit_cache.add(signal.id, multiplier, basis.value)
                if basis is ThresholdBasis.PRICE and multiplier.is_integer():
                    if int(multiplier) in TIME_TO_MULTIPLE_COLUMNS:
                        await metrics.set_time_to_multiple(
                            signal.id, int(multiplier), seconds(hit_at - baseline.entry_at)
                        )

        for event in created:
            await self._notify(signal, event)
        return created

    async def _recorded(self, session: AsyncSession, signal_id: int) -> set[tuple[float, str]]:
        if self._hit_cache is not None:
            cached = await self._hit_cache.get_recorded(signal_id)
            if cached is not None:
                return set(cached)

        recorded = await ThresholdEventRepository(session).recorded_keys(signal_id)
        if self._hit_cache is not None:
            await self._hit_cache.warm(signal_id, set(recorded))
        return recorded

    async def _notify(self, signal: SignalDTO, event: ThresholdEventDTO) -> None:
        if self._notifier is None:
            return
        notification = ThresholdCrossedNotification(
            signal_id=event.signal_id,
            mint=signal.mint,
            symbol=signal.symbol,
            multiplier=event.multiplier,
            basis=event.basis,
            hit_price=event.hit_price,
            hit_market_cap=event.hit_market_cap,
            hit_at=event.hit_at,
            time_to_hit_seconds=event.time_to_hit_seconds,
        )
        try:
            await self._notifier.publish(notification)
        except Exception as e:
            logger.warning(
                "Failed to publish threshold %gx for signal %d: %s",
                event.multiplier,
                event.signal_id,
                e,
            )
