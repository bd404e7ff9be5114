"""
Customer Journey, Attribution and Funnel Analysis

Works on the clickstream of a trailing window:

- Conversion paths: each user's ordered event types joined into a path,
  aggregated over users sharing the same path
- Touch attribution: first and last traffic source per user, plus the value
  of orders placed shortly after a purchase event
- Funnel: users progressing through a fixed sequence of stages
"""

from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional, Tuple

import polars as pl

from analytics_engine.data import EntityType, SnapshotProvider
from analytics_engine.engine import Frame, WindowFunction, WindowSpec, apply_window, stats
from analytics_engine.engine.periods import Window, trailing_days
from .base import Analyzer, percentage, ratio, round_or_none

PATH_SEPARATOR = " > "
PURCHASE_EVENT = "purchase"


@dataclass(frozen=True)
class FunnelStageSpec:
    label: str
    event_type: str


FUNNEL_STAGES: Tuple[FunnelStageSpec, ...] = (
    FunnelStageSpec("Product Views", "product_view"),
    FunnelStageSpec("Add to Cart", "add_to_cart"),
    FunnelStageSpec("Checkout Started", "checkout_start"),
    FunnelStageSpec("Purchase Completed", PURCHASE_EVENT),
)


@dataclass(frozen=True)
class ConversionPath:
    event_path: str
    path_count: int
    avg_journey_minutes: float
    conversions: int
    conversion_rate: float
    common_first_sources: Tuple[str, ...]
    common_last_sources: Tuple[str, ...]
    total_revenue: float
    avg_order_value: Optional[float]


@dataclass(frozen=True)
class TouchAttribution:
    user_id: int
    first_touch_source: Optional[str]
    last_touch_source: Optional[str]
    converted: bool
    conversion_value: float


@dataclass(frozen=True)
class FunnelStage:
    funnel_stage: str
    event_type: str
    users: int
    events: int
    pct_previous: Optional[float]
    conversion_rate: Optional[float]


@dataclass
class _Journey:
    user_id: int
    event_types: List[str]
    first_at: datetime
    last_at: datetime
    first_source: Optional[str]
    last_source: Optional[str]
    value: float = 0.0

    @property
    def path(self) -> str:
        return PATH_SEPARATOR.join(self.event_types)

    @property
    def converted(self) -> bool:
        return PURCHASE_EVENT in self.event_types

    @property
    def minutes(self) -> float:
        return (self.last_at - self.first_at).total_seconds() / 60.0


def funnel_progress(event_types: List[str]) -> int:
    """Number of funnel stages reached in order by one user's event sequence"""
    reached = 0
    for event_type in event_types:
        if reached < len(FUNNEL_STAGES) and event_type == FUNNEL_STAGES[reached].event_type:
            reached += 1
    return reached


class JourneyAnalyzer(Analyzer):
    """
    Journey analysis over ``journey_window_days``.

    Attribution matches orders to purchase events by time proximity: an
    order of the same user placed within ``attribution_window_minutes``
    after a purchase event counts as that conversion. When several orders
    match, the largest total is used.
    """

    name = "customer_journey"

    def _window(self, as_of: date) -> Window:
        return trailing_days(as_of, self.config.journey_window_days)

    def _user_events(self, snapshot: SnapshotProvider, start: datetime, end: datetime) -> pl.DataFrame:
        events = (
            snapshot.records_in_range(EntityType.EVENT, start, end)
            .filter(pl.col("user_id").is_not_null())
            .sort(["user_id", "event_at", "event_id"])
        )
        touch = WindowSpec(
            partition_by=("user_id",),
            order_by=("event_at", "event_id"),
            frame=Frame.entire_partition(),
        )
        events = apply_window(events, touch, WindowFunction.FIRST_VALUE, "traffic_source", "first_touch_source")
        return apply_window(events, touch, WindowFunction.LAST_VALUE, "traffic_source", "last_touch_source")

    def _conversion_values(
        self,
        snapshot: SnapshotProvider,
        events: pl.DataFrame,
        start: datetime,
        end: datetime,
    ) -> Dict[int, float]:
        proximity = timedelta(minutes=self.config.attribution_window_minutes)
        purchases = events.filter(pl.col("event_type") == PURCHASE_EVENT).select(["user_id", "event_at"])
        orders = snapshot.records_in_range(EntityType.ORDER, start, end + proximity).select(
            ["user_id", "order_at", "total_amount"]
        )
        matched = (
            purchases.join(orders, on="user_id", how="inner")
            .filter(
                (pl.col("order_at") >= pl.col("event_at"))
                & (pl.col("order_at") <= pl.col("event_at") + proximity)
            )
            .group_by("user_id")
            .agg(pl.col("total_amount").max())
        )
        return dict(matched.iter_rows())

    def _journeys(self, snapshot: SnapshotProvider, as_of: date) -> List[_Journey]:
        start, end = self._window(as_of)
        events = self._user_events(snapshot, start, end)
        if events.is_empty():
            return []

        values = self._conversion_values(snapshot, events, start, end)
        journeys: Dict[int, _Journey] = {}
        for event in events.iter_rows(named=True):
            journey = journeys.get(event["user_id"])
            if journey is None:
                journey = journeys[event["user_id"]] = _Journey(
                    user_id=event["user_id"],
                    event_types=[],
                    first_at=event["event_at"],
                    last_at=event["event_at"],
                    first_source=event["first_touch_source"],
                    last_source=event["last_touch_source"],
                    value=values.get(event["user_id"], 0.0),
                )
            journey.event_types.append(event["event_type"])
            journey.last_at = event["event_at"]
        return list(journeys.values())

    def conversion_paths(self, snapshot: SnapshotProvider, as_of: date) -> List[ConversionPath]:
        """Most common multi-event paths, by number of journeys"""
        start, end = self._window(as_of)
        journeys = [j for j in self._journeys(snapshot, as_of) if len(j.event_types) >= 2]
        if not journeys:
            self._log_empty(start, end)
            return []

        by_path: Dict[str, List[_Journey]] = defaultdict(list)
        for journey in journeys:
            by_path[journey.path].append(journey)

        rows = []
        for path, group in by_path.items():
            if len(group) < self.config.journey_min_path_count:
                continue
            conversions = sum(1 for j in group if j.converted)
            revenue = sum(j.value for j in group)
            rows.append(ConversionPath(
                event_path=path,
                path_count=len(group),
                avg_journey_minutes=round_or_none(stats.mean([j.minutes for j in group])),
                conversions=conversions,
                conversion_rate=percentage(conversions, len(group)),
                common_first_sources=tuple(sorted({j.first_source for j in group if j.first_source})),
                common_last_sources=tuple(sorted({j.last_source for j in group if j.last_source})),
                total_revenue=round(revenue, 2),
                avg_order_value=round_or_none(ratio(revenue, conversions)),
            ))

        rows.sort(key=lambda p: (-p.path_count, p.event_path))
        rows = rows[: self.config.journey_top_n]
        self._log_done(len(rows), start, end)
        return rows

    def attribution(self, snapshot: SnapshotProvider, as_of: date) -> List[TouchAttribution]:
        """First/last touch source and conversion value per user"""
        start, end = self._window(as_of)
        journeys = self._journeys(snapshot, as_of)
        if not journeys:
            self._log_empty(start, end)
            return []

        rows = [
            TouchAttribution(
                user_id=j.user_id,
                first_touch_source=j.first_source,
                last_touch_source=j.last_source,
                converted=j.converted,
                conversion_value=round(j.value, 2),
            )
            for j in sorted(journeys, key=lambda j: j.user_id)
        ]
        self._log_done(len(rows), start, end)
        return rows

    def funnel(self, snapshot: SnapshotProvider, as_of: date) -> List[FunnelStage]:
        """
        Fixed-stage funnel.

        ``users`` counts users who reached the stage after reaching every
        earlier stage, so it never grows from one stage to the next.
        ``events`` counts all events of the stage type, anonymous ones
        included. The first stage's ``pct_previous`` is 100.
        """
        start, end = self._window(as_of)
        events = snapshot.records_in_range(EntityType.EVENT, start, end)
        if events.is_empty():
            self._log_empty(start, end)
            return []

        event_counts = dict(events.group_by("event_type").agg(pl.len()).iter_rows())
        emitting_users = dict(
            events.filter(pl.col("user_id").is_not_null())
            .group_by("event_type")
            .agg(pl.col("user_id").n_unique())
            .iter_rows()
        )

        progress = [funnel_progress(j.event_types) for j in self._journeys(snapshot, as_of)]

        rows = []
        previous: Optional[int] = None
        for position, stage in enumerate(FUNNEL_STAGES):
            users = sum(1 for reached in progress if reached > position)
            stage_events = event_counts.get(stage.event_type, 0)
            rows.append(FunnelStage(
                funnel_stage=stage.label,
                event_type=stage.event_type,
                users=users,
                events=stage_events,
                pct_previous=100.0 if previous is None else percentage(users, previous),
                conversion_rate=round_or_none(ratio(stage_events, emitting_users.get(stage.event_type))),
            ))
            previous = users

        self._log_done(len(rows), start, end)
        return rows
