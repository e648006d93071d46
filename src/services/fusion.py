"""
Fuse extracted intel news into identity-stable map state.

The engine keeps a bounded, newest-first news history and re-derives display layers
from it after every refresh. Unit moves are planned from the fresh batch only and
animated one task per unit; background geocode verification patches coordinates
afterwards. Every async step re-checks its token and stops mutating state once a
newer refresh has started.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Iterable, Optional, Protocol, Sequence

import httpx

from src.services.hotspots import derive_hotspots_from_news
from src.services.intel_extraction import FetchIntelNewsOptions, IntelConfigurationError
from src.services.models import (
    AFFILIATIONS,
    BATTLE_TYPES,
    INFRA_STATUSES,
    INFRA_TYPES,
    PATH_HISTORY_LIMIT,
    UNIT_TYPES,
    Arrow,
    BattleResult,
    Coordinates,
    Event,
    Hotspot,
    Infrastructure,
    IntelLocation,
    IntelNewsItem,
    IntelSignal,
    SourceRef,
    Unit,
    clamp01,
    merge_sources,
)
from src.services.place_mentions import FALLBACK_COORDINATES
from src.services.rss_client import parse_date_ms
from src.services.tokens import CancellationToken, TokenSource

LOGGER = logging.getLogger(__name__)

MAX_NEWS_ITEMS = 100
MAX_VERIFICATIONS = 15
FROM_CONFIDENCE_WEIGHT = 0.8
ARROW_COLOR = "#06b6d4"
DEFAULT_ANIMATION_STEPS = 30
DEFAULT_FRAME_DELAY = 0.05
PATH_HISTORY_EVERY = 2
MARKER_KINDS = ("event", "movement", "unit")
MOVING_KINDS = ("movement", "unit")
REFRESH_ERRORS = (IntelConfigurationError, httpx.HTTPError, ValueError)
VERIFY_ERRORS = (httpx.HTTPError, ValueError, TypeError, KeyError)

FetchNews = Callable[[Optional[FetchIntelNewsOptions]], Awaitable[list[IntelNewsItem]]]


class LocationVerifier(Protocol):
    async def verify_intel_location(self, location: IntelLocation) -> Any: ...


@dataclass
class IntelLayers:
    events: list[Event] = field(default_factory=list)
    infrastructure: list[Infrastructure] = field(default_factory=list)
    battle_results: list[BattleResult] = field(default_factory=list)


@dataclass
class MoveStep:
    unit_id: str
    start: Coordinates
    end: Coordinates
    news_id: str
    source: SourceRef
    confidence: float
    verified: Optional[bool] = None
    label: str = ""


@dataclass
class MovePlan:
    units: list[Unit]
    moves_by_unit: dict[str, list[MoveStep]]
    arrows: list[Arrow]


@dataclass
class _VerifyCandidate:
    key: str
    location: IntelLocation
    confidence: float


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def slugify(value: str | None) -> str:
    text = (value or "").lower().strip()
    return re.sub(r"[^a-z0-9]+", "-", text).strip("-")


def as_unit_type(value: Any) -> str:
    return value if value in UNIT_TYPES else "military"


def as_affiliation(value: Any) -> str:
    return value if value in AFFILIATIONS else "other"


def as_infra_type(value: Any) -> str:
    return value if value in INFRA_TYPES else "military_base"


def as_battle_type(value: Any) -> str:
    return value if value in BATTLE_TYPES else "strike"


def guess_infra_type(title: str | None) -> str:
    text = (title or "").lower()
    if any(word in text for word in ("oil", "pipeline", "refinery")):
        return "oil"
    if any(word in text for word in ("nuclear", "uranium", "enrichment")):
        return "nuclear"
    if any(word in text for word in ("airport", "port", "terminal")):
        return "civilian"
    return "military_base"


def guess_infra_status(title: str | None, severity: str | None) -> str:
    text = (title or "").lower()
    if any(word in text for word in ("destroy", "flatten", "obliterate")):
        return "destroyed"
    if any(word in text for word in ("damage", "hit", "strike")):
        return "damaged"
    if severity == "high":
        return "damaged"
    return "intact"


def build_source_ref(item: IntelNewsItem) -> SourceRef:
    return SourceRef(
        name=item.source or "Unknown source",
        url=item.url,
        timestamp=item.timestamp or _utc_now_iso(),
    )


def signal_coordinates(signal: IntelSignal) -> Coordinates:
    if signal.movement is not None:
        return signal.movement.to.coordinates
    return signal.location.coordinates


def arrow_id_for(news_id: str, signal_id: str) -> str:
    return f"intel-arrow:{news_id}:{signal_id}"


def derive_intel_layers(news: Iterable[IntelNewsItem]) -> IntelLayers:
    """Per-signal markers for every retained news item."""
    layers = IntelLayers()
    for item in news:
        source = build_source_ref(item)
        date = item.timestamp or _utc_now_iso()
        for signal in item.signals:
            coords = signal_coordinates(signal)
            provenance = {
                "sources": [source],
                "news_id": item.id,
                "confidence": clamp01(signal.confidence),
                "verified": signal.verified,
                "location_reliability": signal.location_reliability,
            }
            if signal.kind in MARKER_KINDS:
                layers.events.append(
                    Event(
                        id=f"intel-event:{item.id}:{signal.id}",
                        title=signal.title,
                        date=date,
                        description=signal.description,
                        severity=signal.severity,
                        coordinates=coords,
                        **provenance,
                    )
                )
            elif signal.kind == "infrastructure":
                infra = signal.infra
                infra_type = as_infra_type(infra.type) if infra and infra.type else guess_infra_type(signal.title)
                if infra and infra.status in INFRA_STATUSES:
                    status = infra.status
                else:
                    status = guess_infra_status(signal.title, signal.severity)
                layers.infrastructure.append(
                    Infrastructure(
                        id=f"intel-infra:{item.id}:{signal.id}",
                        name=(infra.name if infra and infra.name else None) or signal.title or "Infrastructure",
                        type=infra_type,
                        country=signal.location.country or "Unknown",
                        status=status,
                        description=signal.description,
                        coordinates=coords,
                        **provenance,
                    )
                )
            elif signal.kind == "battle":
                layers.battle_results.append(
                    BattleResult(
                        id=f"intel-battle:{item.id}:{signal.id}",
                        title=signal.title,
                        type=as_battle_type(signal.battle.type if signal.battle else None),
                        date=date,
                        description=signal.description,
                        coordinates=coords,
                        **provenance,
                    )
                )
    return layers


def _build_arrow(
    item: IntelNewsItem,
    signal: IntelSignal,
    start: Coordinates,
    end: Coordinates,
    source: SourceRef,
) -> Arrow:
    return Arrow(
        id=arrow_id_for(item.id, signal.id),
        start=start,
        end=end,
        color=ARROW_COLOR,
        label=signal.title,
        sources=[source],
        news_id=item.id,
        confidence=clamp01(signal.confidence),
        verified=signal.verified,
        location_reliability=signal.location_reliability,
    )


def _ordered_moving_signals(news: Sequence[IntelNewsItem]) -> list[tuple[IntelNewsItem, IntelSignal]]:
    flat: list[tuple[int, int, IntelNewsItem, IntelSignal]] = []
    order = 0
    for item in news:
        at = parse_date_ms(item.timestamp) or order
        for signal in item.signals:
            if signal.kind not in MOVING_KINDS:
                continue
            flat.append((at, order, item, signal))
            order += 1
    flat.sort(key=lambda entry: (entry[0], entry[1]))
    return [(item, signal) for _, _, item, signal in flat]


def plan_unit_moves(units: Sequence[Unit], fresh: Sequence[IntelNewsItem]) -> MovePlan:
    """
    Resolve unit identities and build per-unit move queues for one news batch.

    Units are matched by explicit id, then by case-insensitive name; unknown units
    are minted with an ``intel-<slug>`` id. Movement signals without any unit
    identity only produce a direction arrow.
    """
    planned: list[Unit] = list(units)
    by_id = {unit.id: unit for unit in planned}
    by_name = {unit.name.lower(): unit for unit in planned}
    positions: dict[str, Coordinates] = {unit.id: unit.coordinates for unit in planned}
    moves: dict[str, list[MoveStep]] = {}
    arrows: list[Arrow] = []

    def ensure_unit(signal: IntelSignal, item: IntelNewsItem, start: Coordinates) -> Unit:
        described = signal.unit
        explicit_id = (described.id or "").strip() if described else ""
        name = ((described.name if described else None) or signal.title or item.title or "Unknown Unit").strip()
        name = name or "Unknown Unit"
        key = name.lower()

        unit = by_id.get(explicit_id) if explicit_id else None
        if unit is None:
            unit = by_name.get(key)
        if unit is not None:
            return unit

        base_id = explicit_id or f"intel-{slugify(name) or 'unit'}"
        new_id = base_id
        suffix = 2
        while new_id in by_id:
            new_id = f"{base_id}-{suffix}"
            suffix += 1
        unit = Unit(
            id=new_id,
            name=name,
            type=as_unit_type(described.type if described else None),
            affiliation=as_affiliation(described.affiliation if described else None),
            coordinates=start,
            description=signal.description,
        )
        planned.append(unit)
        by_id[unit.id] = unit
        by_name[key] = unit
        positions[unit.id] = start
        return unit

    for item, signal in _ordered_moving_signals(fresh):
        source = build_source_ref(item)
        destination = signal.movement.to if signal.movement else signal.location
        end = destination.coordinates if destination else FALLBACK_COORDINATES
        origin = signal.movement.from_ if signal.movement else None

        anonymous = signal.unit is None or not (signal.unit.id or signal.unit.name)
        if anonymous and signal.kind == "movement":
            if origin is not None and origin.coordinates != end:
                arrows.append(_build_arrow(item, signal, origin.coordinates, end, source))
            continue

        unit = ensure_unit(signal, item, origin.coordinates if origin else end)
        start = origin.coordinates if origin else positions.get(unit.id, unit.coordinates)
        moves.setdefault(unit.id, []).append(
            MoveStep(
                unit_id=unit.id,
                start=start,
                end=end,
                news_id=item.id,
                source=source,
                confidence=clamp01(signal.confidence),
                verified=signal.verified,
                label=signal.title,
            )
        )
        positions[unit.id] = end
        if start != end:
            arrows.append(_build_arrow(item, signal, start, end, source))

    return MovePlan(units=planned, moves_by_unit=moves, arrows=arrows)


def _verify_dedup_key(location: IntelLocation) -> str:
    coords = ",".join(str(value) for value in location.coordinates)
    return f"{(location.name or '').lower()}|{(location.country or '').lower()}|{coords}"


def collect_verification_candidates(fresh: Sequence[IntelNewsItem]) -> list[list[_VerifyCandidate]]:
    """Group location/from/to candidates by identical place, most confident first."""
    flat: list[_VerifyCandidate] = []
    for item in fresh:
        for signal in item.signals:
            base = f"{item.id}::{signal.id}"
            confidence = clamp01(signal.confidence)
            flat.append(_VerifyCandidate(f"{base}::location", signal.location, confidence))
            if signal.movement is not None:
                if signal.movement.from_ is not None:
                    flat.append(
                        _VerifyCandidate(
                            f"{base}::from",
                            signal.movement.from_,
                            confidence * FROM_CONFIDENCE_WEIGHT,
                        )
                    )
                flat.append(_VerifyCandidate(f"{base}::to", signal.movement.to, confidence))
    flat.sort(key=lambda candidate: -candidate.confidence)

    groups: dict[str, list[_VerifyCandidate]] = {}
    for candidate in flat:
        groups.setdefault(_verify_dedup_key(candidate.location), []).append(candidate)
    return list(groups.values())[:MAX_VERIFICATIONS]


def _patched_location(location: IntelLocation, result: Any) -> IntelLocation:
    return replace(
        location,
        country=location.country or result.location.country,
        coordinates=result.location.coordinates,
    )


def apply_verification(item: IntelNewsItem, results: dict[str, Any]) -> IntelNewsItem:
    signals: list[IntelSignal] = []
    for signal in item.signals:
        base = f"{item.id}::{signal.id}"
        v_loc = results.get(f"{base}::location")
        v_from = results.get(f"{base}::from")
        v_to = results.get(f"{base}::to")
        if not (v_loc or v_from or v_to):
            signals.append(signal)
            continue

        patched = signal
        if v_loc is not None:
            patched = replace(
                patched,
                location=_patched_location(signal.location, v_loc),
                verified=v_loc.verified,
                location_reliability="verified" if v_loc.verified else signal.location_reliability,
            )
        if signal.movement is not None and (v_from or v_to):
            movement = signal.movement
            if movement.from_ is not None and v_from is not None:
                movement = replace(movement, from_=_patched_location(movement.from_, v_from))
            if v_to is not None:
                movement = replace(movement, to=_patched_location(movement.to, v_to))
            patched = replace(patched, movement=movement)
            if v_loc is None and not isinstance(patched.verified, bool):
                fallback = v_to if v_to is not None else v_from
                patched = replace(patched, verified=bool(fallback.verified))
        signals.append(patched)
    return replace(item, signals=signals)


class FusionEngine:
    """Stateful fusion of intel refreshes into map entities."""

    def __init__(
        self,
        fetch_news: FetchNews,
        verifier: LocationVerifier,
        initial_units: Iterable[Unit] = (),
        frame_delay: float = DEFAULT_FRAME_DELAY,
        animation_steps: int = DEFAULT_ANIMATION_STEPS,
    ) -> None:
        self.fetch_news = fetch_news
        self.verifier = verifier
        self.frame_delay = frame_delay
        self.animation_steps = max(1, int(animation_steps))

        self.units: list[Unit] = list(initial_units)
        self.news: list[IntelNewsItem] = []
        self.events: list[Event] = []
        self.infrastructure: list[Infrastructure] = []
        self.battle_results: list[BattleResult] = []
        self.arrows: list[Arrow] = []
        self.latest_batch_size = 0
        self.error: Optional[str] = None
        self.loading = False

        self._refresh_tokens = TokenSource()
        self._movement_tokens = TokenSource()
        self._background: set[asyncio.Task] = set()

    async def refresh(self, options: FetchIntelNewsOptions | None = None) -> list[IntelNewsItem]:
        token = self._refresh_tokens.issue()
        self.loading = True
        self.error = None
        try:
            fetched = await self.fetch_news(options)
        except REFRESH_ERRORS as exc:
            if token.is_stale:
                return []
            self.error = str(exc) or "Refresh failed"
            LOGGER.warning("Intel refresh failed: %s", self.error)
            raise
        finally:
            if token.is_current():
                self.loading = False

        if token.is_stale:
            LOGGER.debug("Discarding stale refresh result (%s items)", len(fetched))
            return []

        fresh = self._tag_batch(fetched)
        self.news = (fresh + self.news)[:MAX_NEWS_ITEMS]
        self.latest_batch_size = len(fresh)
        self._apply_layers(derive_intel_layers(self.news))

        plan = plan_unit_moves(self.units, fresh)
        self.units = plan.units
        kept_news_ids = {item.id for item in self.news}
        self.arrows = plan.arrows + [arrow for arrow in self.arrows if arrow.news_id in kept_news_ids]

        movement_token = self._movement_tokens.issue()
        if plan.moves_by_unit:
            self._spawn(self._animate(plan.moves_by_unit, movement_token))
        if fresh:
            self._spawn(self._verify_batch(fresh, token))

        LOGGER.info(
            "Refresh complete: %s fresh items, %s retained, %s units, %s arrows",
            len(fresh),
            len(self.news),
            len(self.units),
            len(self.arrows),
        )
        return fresh

    @staticmethod
    def _tag_batch(fetched: Sequence[IntelNewsItem]) -> list[IntelNewsItem]:
        batch_ms = int(time.time() * 1000)
        seen: set[str] = set()
        fresh: list[IntelNewsItem] = []
        for item in fetched:
            url = (item.url or "").strip()
            if not url or url in seen:
                continue
            seen.add(url)
            fresh.append(replace(item, id=f"{item.id}:b:{batch_ms}:{len(fresh)}"))
        return fresh

    def _apply_layers(self, layers: IntelLayers) -> None:
        self.events = layers.events
        self.infrastructure = layers.infrastructure
        self.battle_results = layers.battle_results

    def _spawn(self, coro: Awaitable[None]) -> None:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def wait_idle(self) -> None:
        """Wait until animation and verification work has finished."""
        while self._background:
            await asyncio.gather(*list(self._background))

    async def _animate(self, moves_by_unit: dict[str, list[MoveStep]], token: CancellationToken) -> None:
        async with asyncio.TaskGroup() as group:
            for unit_id, queue in moves_by_unit.items():
                group.create_task(self._run_unit_queue(unit_id, queue, token))

    async def _run_unit_queue(self, unit_id: str, queue: Sequence[MoveStep], token: CancellationToken) -> None:
        for step in queue:
            if token.is_stale:
                return
            await self._animate_step(unit_id, step, token)

    def _update_unit(self, unit_id: str, update: Callable[[Unit], Unit]) -> None:
        self.units = [update(unit) if unit.id == unit_id else unit for unit in self.units]

    async def _animate_step(self, unit_id: str, step: MoveStep, token: CancellationToken) -> None:
        def provenance(unit: Unit, coordinates: Coordinates) -> Unit:
            return replace(
                unit,
                coordinates=coordinates,
                news_id=step.news_id,
                sources=merge_sources(unit.sources, step.source),
                confidence=clamp01(step.confidence),
                verified=step.verified if isinstance(step.verified, bool) else unit.verified,
            )

        if step.start == step.end:
            self._update_unit(unit_id, lambda unit: provenance(unit, step.end))
            return

        (from_lon, from_lat), (to_lon, to_lat) = step.start, step.end
        for frame in range(1, self.animation_steps + 1):
            if token.is_stale:
                return
            fraction = frame / self.animation_steps
            point = (from_lon + (to_lon - from_lon) * fraction, from_lat + (to_lat - from_lat) * fraction)

            def advance(unit: Unit, point: Coordinates = point, frame: int = frame) -> Unit:
                moved = provenance(unit, point)
                if frame % PATH_HISTORY_EVERY == 0:
                    moved.path_history = (list(unit.path_history) + [point])[-PATH_HISTORY_LIMIT:]
                return moved

            self._update_unit(unit_id, advance)
            await asyncio.sleep(self.frame_delay)

    async def _verify_batch(self, fresh: Sequence[IntelNewsItem], token: CancellationToken) -> None:
        results: dict[str, Any] = {}
        for group in collect_verification_candidates(fresh):
            if token.is_stale:
                return
            try:
                result = await self.verifier.verify_intel_location(group[0].location)
            except VERIFY_ERRORS as exc:
                LOGGER.debug("Verification failed for %s: %s", group[0].location.name, exc)
                continue
            for candidate in group:
                results[candidate.key] = result

        if token.is_stale or not results:
            return

        verified_by_id = {item.id: apply_verification(item, results) for item in fresh}
        self.news = [verified_by_id.get(item.id, item) for item in self.news]
        self._apply_layers(derive_intel_layers(self.news))

        # Arrow starts stay put so direction keeps its meaning.
        new_ends: dict[str, Coordinates] = {}
        for item in verified_by_id.values():
            for signal in item.signals:
                if signal.kind in MOVING_KINDS:
                    new_ends[arrow_id_for(item.id, signal.id)] = signal_coordinates(signal)
        self.arrows = [
            replace(arrow, end=new_ends[arrow.id]) if arrow.id in new_ends else arrow for arrow in self.arrows
        ]
        LOGGER.info("Verified %s locations for %s fresh items", len(results), len(fresh))

    def hotspots(self, **kwargs: Any) -> list[Hotspot]:
        return derive_hotspots_from_news(self.news, **kwargs)

    def snapshot(self) -> dict[str, Any]:
        return {
            "units": [unit.to_serializable() for unit in self.units],
            "news": [item.to_serializable() for item in self.news],
            "events": [event.to_serializable() for event in self.events],
            "infrastructure": [infra.to_serializable() for infra in self.infrastructure],
            "battleResults": [battle.to_serializable() for battle in self.battle_results],
            "arrows": [arrow.to_serializable() for arrow in self.arrows],
            "latestBatchSize": self.latest_batch_size,
            "error": self.error,
            "loading": self.loading,
        }
