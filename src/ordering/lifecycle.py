"""
Order Lifecycle
State machine for one user's ordering session.

    welcome -> processing -> ordering <-> summary -> welcome
    welcome <-> history
    ordering / summary / history / processing -> welcome (go home)

transition() is pure: (AppSession, event) -> Transition(session, effects).
OrderLifecycle drives it, runs the declared effects (persistence, location,
extraction) and owns the single live AppSession.

Each accepted submission bumps ``generation``; results carrying an older
generation are dropped, so an abandoned extraction never lands in a newer
session.
"""
from __future__ import annotations

import json
import socket
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, List, Optional, Union

from menu_pipeline.errors import (
    AuthError, MenuPalError, NetworkError, TransitionError, ValidationError,
)
from menu_pipeline.image_normalizer import ImageNormalizer
from menu_pipeline.languages import TargetLanguage
from menu_pipeline.models import CartItem, GeoLocation, HistoryRecord, MenuData
from ordering import cart as cart_ops
from ordering.geolocation import LocationProvider, acquire_location
from ordering.history_store import HistoryStore
from ordering.settings import Settings
from utils.logger import get_logger

MENU_CACHE_KEY = 'current_menu_session'


class AppState(str, Enum):
    WELCOME = 'welcome'
    PROCESSING = 'processing'
    ORDERING = 'ordering'
    SUMMARY = 'summary'
    HISTORY = 'history'


@dataclass(frozen=True)
class AppSession:
    """Serializable application state threaded through transition()."""
    state: AppState = AppState.WELCOME
    menu: Optional[MenuData] = None
    cart: List[CartItem] = field(default_factory=list)
    location: Optional[GeoLocation] = None
    generation: int = 0
    error: Optional[str] = None
    error_kind: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            'state': self.state.value,
            'menu': self.menu.to_dict() if self.menu else None,
            'cart': [c.to_dict() for c in self.cart],
            'location': self.location.to_dict() if self.location else None,
            'generation': self.generation,
            'error': self.error,
            'errorKind': self.error_kind,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AppSession":
        return cls(
            state=AppState(data.get('state', AppState.WELCOME.value)),
            menu=MenuData.from_dict(data['menu']) if data.get('menu') else None,
            cart=[CartItem.from_dict(c) for c in data.get('cart') or []],
            location=GeoLocation.from_dict(data.get('location')),
            generation=int(data.get('generation', 0)),
            error=data.get('error'),
            error_kind=data.get('errorKind'),
        )


# ═══════════════════════════════════════════════════════
# EVENTS
# ═══════════════════════════════════════════════════════

@dataclass(frozen=True)
class SubmitImages:
    network_available: bool
    has_credential: bool
    entitled: bool = True


@dataclass(frozen=True)
class LocationAcquired:
    generation: int
    location: Optional[GeoLocation]


@dataclass(frozen=True)
class ExtractionSucceeded:
    generation: int
    menu: MenuData


@dataclass(frozen=True)
class ExtractionFailed:
    generation: int
    message: str
    kind: str = 'error'


@dataclass(frozen=True)
class UpdateCart:
    item_id: str
    delta: int


@dataclass(frozen=True)
class ViewSummary:
    pass


@dataclass(frozen=True)
class BackToOrdering:
    pass


@dataclass(frozen=True)
class GoHome:
    pass


@dataclass(frozen=True)
class ViewHistory:
    pass


@dataclass(frozen=True)
class Finish:
    record_id: str
    timestamp: int
    paid_by: str = ''
    tax_rate: float = 0.0
    service_rate: float = 0.0


@dataclass(frozen=True)
class DeleteHistory:
    record_id: str


@dataclass(frozen=True)
class Resume:
    menu: Optional[MenuData]


Event = Union[
    SubmitImages, LocationAcquired, ExtractionSucceeded, ExtractionFailed, UpdateCart,
    ViewSummary, BackToOrdering, GoHome, ViewHistory, Finish, DeleteHistory, Resume,
]


# ═══════════════════════════════════════════════════════
# EFFECTS
# ═══════════════════════════════════════════════════════

@dataclass(frozen=True)
class StartExtraction:
    generation: int


@dataclass(frozen=True)
class SaveMenuCache:
    menu: MenuData


@dataclass(frozen=True)
class ClearMenuCache:
    pass


@dataclass(frozen=True)
class AppendHistory:
    record: HistoryRecord


@dataclass(frozen=True)
class RemoveHistory:
    record_id: str


Effect = Union[StartExtraction, SaveMenuCache, ClearMenuCache, AppendHistory, RemoveHistory]


@dataclass(frozen=True)
class Transition:
    session: AppSession
    effects: List[Effect] = field(default_factory=list)
    accepted: bool = True


# ═══════════════════════════════════════════════════════
# PURE TRANSITION FUNCTION
# ═══════════════════════════════════════════════════════

def _refuse(session: AppSession, error: MenuPalError) -> Transition:
    """State unchanged, error surfaced."""
    return Transition(replace(session, error=error.message, error_kind=error.kind), accepted=False)


def _ignore(session: AppSession) -> Transition:
    return Transition(session, accepted=False)


def _move(session: AppSession, state: AppState, effects: List[Effect] = None, **changes) -> Transition:
    changes.setdefault('error', None)
    changes.setdefault('error_kind', None)
    return Transition(replace(session, state=state, **changes), effects or [])


def build_history_record(session: AppSession, event: Finish) -> HistoryRecord:
    return HistoryRecord(
        id=event.record_id,
        timestamp=event.timestamp,
        items=list(session.cart),
        total_original_price=cart_ops.cart_subtotal(session.cart),
        currency=session.menu.original_currency,
        restaurant_name=session.menu.restaurant_name,
        paid_by=event.paid_by or None,
        location=session.location,
        tax_rate=event.tax_rate,
        service_rate=event.service_rate,
    )


def transition(session: AppSession, event: Event) -> Transition:
    """
    Compute the next session and the effects to run. Never raises; a refused
    event returns the unchanged state with ``error`` set.
    """
    state = session.state

    if isinstance(event, SubmitImages):
        if state == AppState.PROCESSING:
            return _refuse(session, TransitionError("A menu is already being processed. Please wait."))
        if state != AppState.WELCOME:
            return _refuse(session, TransitionError(f"Cannot scan a menu from {state.value}"))
        if not event.network_available:
            return _refuse(session, NetworkError("Network Error: Please connect to the internet."))
        if not event.has_credential:
            return _refuse(session, AuthError("API key missing. Please add your Gemini API key in Settings."))
        if not event.entitled:
            return _refuse(session, AuthError("Please verify your email to unlock menu scanning."))
        generation = session.generation + 1
        return _move(session, AppState.PROCESSING, [StartExtraction(generation)],
                     generation=generation, location=None)

    if isinstance(event, (LocationAcquired, ExtractionSucceeded, ExtractionFailed)):
        if state != AppState.PROCESSING or event.generation != session.generation:
            return _ignore(session)
        if isinstance(event, LocationAcquired):
            return Transition(replace(session, location=event.location))
        if isinstance(event, ExtractionSucceeded):
            return _move(session, AppState.ORDERING, [SaveMenuCache(event.menu)], menu=event.menu, cart=[])
        return Transition(
            replace(session, state=AppState.WELCOME, error=event.message, error_kind=event.kind)
        )

    if isinstance(event, UpdateCart):
        if state not in (AppState.ORDERING, AppState.SUMMARY) or session.menu is None:
            return _refuse(session, TransitionError(f"Cannot change the cart from {state.value}"))
        item = session.menu.find_item(event.item_id)
        if item is None:
            return _refuse(session, ValidationError(f"Unknown menu item: {event.item_id}"))
        return Transition(replace(session, cart=cart_ops.update_cart(session.cart, item, event.delta)))

    if isinstance(event, ViewSummary):
        if state != AppState.ORDERING:
            return _refuse(session, TransitionError(f"Cannot open the summary from {state.value}"))
        return _move(session, AppState.SUMMARY)

    if isinstance(event, BackToOrdering):
        if state != AppState.SUMMARY:
            return _refuse(session, TransitionError(f"Cannot return to ordering from {state.value}"))
        return _move(session, AppState.ORDERING)

    if isinstance(event, GoHome):
        if state == AppState.PROCESSING:
            # Abandon: the in-flight result will carry a stale generation
            return _move(session, AppState.WELCOME, generation=session.generation + 1)
        return _move(session, AppState.WELCOME)

    if isinstance(event, ViewHistory):
        if state != AppState.WELCOME:
            return _refuse(session, TransitionError(f"Cannot open history from {state.value}"))
        return _move(session, AppState.HISTORY)

    if isinstance(event, DeleteHistory):
        if state != AppState.HISTORY:
            return _refuse(session, TransitionError("Orders can only be deleted from history"))
        return Transition(session, [RemoveHistory(event.record_id)])

    if isinstance(event, Finish):
        if state != AppState.SUMMARY or session.menu is None:
            return _refuse(session, TransitionError(f"Cannot finish an order from {state.value}"))
        record = build_history_record(session, event)
        return _move(session, AppState.WELCOME, [AppendHistory(record), ClearMenuCache()], cart=[])

    if isinstance(event, Resume):
        if state != AppState.WELCOME:
            return _refuse(session, TransitionError(f"Cannot resume a menu from {state.value}"))
        if event.menu is None:
            return _refuse(session, ValidationError("No saved menu to resume"))
        return _move(session, AppState.ORDERING, menu=event.menu, cart=[])

    return _refuse(session, TransitionError(f"Unknown event: {type(event).__name__}"))


# ═══════════════════════════════════════════════════════
# DRIVER
# ═══════════════════════════════════════════════════════

def network_available(host: str = '8.8.8.8', port: int = 53, timeout: float = 1.5) -> bool:
    try:
        with socket.create_connection((host, port), timeout=timeout):
            return True
    except OSError:
        return False


class OrderLifecycle:
    """Owns the live AppSession and executes transition effects."""

    def __init__(self, extraction_client, history_store: HistoryStore, settings: Settings,
                 normalizer: ImageNormalizer = None,
                 location_provider: Optional[LocationProvider] = None,
                 network_check: Callable[[], bool] = network_available,
                 clock: Callable[[], float] = time.time):
        self.extraction_client = extraction_client
        self.history_store = history_store
        self.settings = settings
        self.store = settings.store
        self.normalizer = normalizer or ImageNormalizer()
        self.location_provider = location_provider
        self.network_check = network_check
        self.clock = clock
        self.session = AppSession()
        self.logger = get_logger()

    @property
    def state(self) -> AppState:
        return self.session.state

    def dispatch(self, event: Event) -> Transition:
        """Apply one event and run its persistence effects synchronously."""
        previous = self.session.state
        result = transition(self.session, event)
        self.session = result.session

        for effect in result.effects:
            self._run_effect(effect)

        if result.session.error and not result.accepted:
            self.logger.warning(
                f"{type(event).__name__} refused in {previous.value}: {result.session.error}",
                component="Lifecycle"
            )
        elif previous != result.session.state:
            self.logger.info(f"{previous.value} -> {result.session.state.value}", component="Lifecycle")
        return result

    def _run_effect(self, effect: Effect) -> None:
        if isinstance(effect, SaveMenuCache):
            self.store.set(MENU_CACHE_KEY, json.dumps(effect.menu.to_dict(), ensure_ascii=False))
        elif isinstance(effect, ClearMenuCache):
            self.store.remove(MENU_CACHE_KEY)
        elif isinstance(effect, AppendHistory):
            self.history_store.append(effect.record)
        elif isinstance(effect, RemoveHistory):
            self.history_store.remove(effect.record_id)
        # StartExtraction is awaited by submit_images

    # ------------------------------------------------------------------
    # User actions
    # ------------------------------------------------------------------

    async def submit_images(self, raw_images, target_language: Union[str, TargetLanguage],
                            handwriting_mode: bool = False) -> AppSession:
        """
        Run one scan: location fix, normalization, extraction.

        Failures never raise; they land in ``session.error`` with the state
        back at welcome and the previous menu and cart untouched.
        """
        result = self.dispatch(SubmitImages(
            network_available=self.network_check(),
            has_credential=self.settings.has_valid_api_key,
            entitled=self.settings.is_pro,
        ))
        if not result.accepted:
            return self.session

        generation = self.session.generation
        location = await acquire_location(self.location_provider)
        self.dispatch(LocationAcquired(generation, location))
        if self.session.generation != generation:
            self.logger.info(f"Scan {generation} abandoned before extraction", component="Lifecycle")
            return self.session

        try:
            images = await self.normalizer.normalize_batch(raw_images)
            menu = await self.extraction_client.extract(
                self.settings.api_key, images, target_language,
                handwriting_mode=handwriting_mode, generation=generation,
            )
        except MenuPalError as e:
            self.logger.log_error("Extraction", e.kind, e.message)
            self.dispatch(ExtractionFailed(generation, e.message, e.kind))
        except ValueError as e:
            self.dispatch(ExtractionFailed(generation, str(e), ValidationError.kind))
        except Exception as e:
            self.logger.error(f"Unexpected extraction failure in scan {generation}: {e}",
                              component="Lifecycle", exc_info=True)
            self.dispatch(ExtractionFailed(generation, "Could not read the menu. Please try again.", MenuPalError.kind))
        else:
            if not self.dispatch(ExtractionSucceeded(generation, menu)).accepted:
                self.logger.info(f"Discarded stale result of scan {generation}", component="Lifecycle")
        return self.session

    def update_cart(self, item_id: str, delta: int) -> AppSession:
        self.dispatch(UpdateCart(item_id, delta))
        return self.session

    def view_summary(self) -> AppSession:
        self.dispatch(ViewSummary())
        return self.session

    def back_to_ordering(self) -> AppSession:
        self.dispatch(BackToOrdering())
        return self.session

    def go_home(self) -> AppSession:
        self.dispatch(GoHome())
        return self.session

    def view_history(self) -> AppSession:
        self.dispatch(ViewHistory())
        return self.session

    def history(self) -> List[HistoryRecord]:
        return self.history_store.load_all()

    def delete_history(self, record_id: str) -> AppSession:
        self.dispatch(DeleteHistory(record_id))
        return self.session

    def _next_record_id(self, now_ms: int) -> str:
        taken = {r.id for r in self.history_store.load_all()}
        candidate = now_ms
        while str(candidate) in taken:
            candidate += 1
        return str(candidate)

    def finish(self, paid_by: str = '') -> AppSession:
        now_ms = int(self.clock() * 1000)
        self.dispatch(Finish(
            record_id=self._next_record_id(now_ms),
            timestamp=now_ms,
            paid_by=paid_by,
            tax_rate=self.settings.tax_rate,
            service_rate=self.settings.service_rate,
        ))
        return self.session

    def load_cached_menu(self) -> Optional[MenuData]:
        raw = self.store.get(MENU_CACHE_KEY)
        if not raw:
            return None
        try:
            return MenuData.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError) as e:
            self.logger.warning(f"Saved menu is unreadable: {e}", component="Lifecycle")
            return None

    def resume(self) -> AppSession:
        self.dispatch(Resume(self.load_cached_menu()))
        return self.session

    def totals(self) -> cart_ops.CartTotals:
        rate = self.session.menu.exchange_rate if self.session.menu else 1.0
        return cart_ops.cart_totals(
            self.session.cart, self.settings.tax_rate, self.settings.service_rate, rate
        )
