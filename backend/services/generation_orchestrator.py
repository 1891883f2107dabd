"""
Generation orchestrator.

Drives one user's generation page: turns the raw form into a proxy request,
normalises the candidates that come back, swaps them into the displayed list,
and records the batch in the user's history.

Steps for a submission:
1. Coerce the form's numeric fields (browser Number() semantics, no range checks)
2. Call the generation proxy once and await its JSON
3. Decode the double-encoded molecule list
4. Drop empty structures and assign batch-scoped ids
5. Replace the displayed candidates
6. Persist a history record and refresh the history list (signed-in users only)
"""
import itertools
import json
import math
import re
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx
from loguru import logger

from config import settings
from models import (
    AuthContext, GeneratedCandidate, GenerationFormInput, GenerationPayload,
    GenerationRequest, GenerationSessionState, HistoryRecord, HistoryRequestParams
)
from .history_store import HistoryStore, HistoryStoreError


GENERATION_FAILED_ALERT = "Generation failed. Check server logs."
HISTORY_SAVE_WARNING = "Molecules were generated but could not be saved to your history."

_DECIMAL_NUMBER = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")
_PREFIXED_BASES = {"0x": 16, "0o": 8, "0b": 2}


class GenerationError(Exception):
    """Raised when a generation round trip fails or returns an unusable body"""


class HistoryEntryNotFound(LookupError):
    """Raised when selecting a history record the session does not hold"""


# ============= Form coercion =============

def coerce_number(raw: str):
    """
    Convert form text to a number the way a browser's Number() does.

    Blank input is 0, unparsable input is NaN, and integral results come back
    as int so they serialise without a trailing ".0".
    """
    text = (raw or "").strip()
    if text == "":
        return 0

    lowered = text.lower()
    if text in ("Infinity", "+Infinity"):
        value = math.inf
    elif text == "-Infinity":
        value = -math.inf
    elif lowered[:2] in _PREFIXED_BASES:
        try:
            value = float(int(text[2:], _PREFIXED_BASES[lowered[:2]]))
        except ValueError:
            return math.nan
    elif _DECIMAL_NUMBER.match(text):
        value = float(text)
    else:
        return math.nan

    if math.isfinite(value) and value.is_integer():
        return int(value)
    return value


def build_generation_request(form: GenerationFormInput) -> GenerationRequest:
    return GenerationRequest(
        seed_structure=form.smiles.strip(),
        num_candidates=coerce_number(form.num_molecules),
        min_similarity=coerce_number(form.min_similarity),
        particle_count=coerce_number(form.particles),
        iteration_count=coerce_number(form.iterations),
    )


def build_payload(request: GenerationRequest) -> GenerationPayload:
    """Proxy body for a request; the optimisation objective is fixed."""
    return GenerationPayload(
        algorithm=settings.generation_algorithm,
        num_molecules=request.num_candidates,
        property_name=settings.generation_property,
        minimize=settings.generation_minimize,
        min_similarity=request.min_similarity,
        particles=request.particle_count,
        iterations=request.iteration_count,
        smi=request.seed_structure,
    )


# ============= Response normalisation =============

def decode_generated_molecules(molecules: Any) -> List[Any]:
    """
    Decode the response's ``molecules`` field into a list of records.

    The service sends the list as a JSON string inside the JSON body. A native
    list is accepted as well.
    """
    if isinstance(molecules, str):
        try:
            molecules = json.loads(molecules)
        except ValueError as e:
            raise GenerationError(f"Malformed molecules payload: {e}") from e

    if not isinstance(molecules, list):
        raise GenerationError(f"Expected a list of molecules, got {type(molecules).__name__}")
    return molecules


def _score_of(record: Dict[str, Any]) -> Optional[float]:
    try:
        return float(record.get("score"))
    except (TypeError, ValueError, OverflowError):
        return None


def normalize_candidates(records: List[Any]) -> List[GeneratedCandidate]:
    """Trim structures, drop empty ones, and key the rest uniquely within the batch."""
    batch = uuid.uuid4().hex[:12]
    counter = itertools.count()
    candidates = []

    for record in records:
        if not isinstance(record, dict):
            continue
        sample = record.get("sample")
        structure = sample.strip() if isinstance(sample, str) else ""
        if not structure:
            continue

        candidates.append(GeneratedCandidate(
            id=f"mol-{batch}-{next(counter)}",
            structure=structure,
            score=_score_of(record),
        ))

    return candidates


def normalize_generation_response(data: Any) -> List[GeneratedCandidate]:
    if not isinstance(data, dict) or "molecules" not in data:
        raise GenerationError("Generation response has no molecules field")
    return normalize_candidates(decode_generated_molecules(data["molecules"]))


# ============= Sessions =============

@dataclass
class GenerationSession:
    """Displayed state for one caller plus the submission fence"""
    auth: Optional[AuthContext] = None
    state: GenerationSessionState = field(default_factory=GenerationSessionState)
    history_loaded: bool = False

    def is_latest(self, token: int) -> bool:
        return token == self.state.sequence


class GenerationOrchestrator:
    """Coordinates proxy calls, candidate display and history persistence"""

    def __init__(
        self,
        history_store: HistoryStore,
        client: Optional[httpx.AsyncClient] = None,
        proxy_url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_sessions: Optional[int] = None
    ):
        self.history_store = history_store
        self.client = client
        self.proxy_url = proxy_url or settings.proxy_url
        self.timeout = timeout or settings.request_timeout

        # Client sessions, keyed by session id, least recently used first
        self.sessions: "OrderedDict[str, GenerationSession]" = OrderedDict()
        self.max_sessions = max_sessions or settings.max_sessions

    def session_for(self, auth: Optional[AuthContext], session_id: Optional[str] = None) -> GenerationSession:
        """
        Return the displayed state for one client session.

        State is per browser session, not per user: two tabs of the same user
        each get their own. Callers without a session id get a throwaway one.
        """
        if not session_id:
            return GenerationSession(auth=auth)

        session = self.sessions.get(session_id)
        owner = auth.user_id if auth else None
        if session is None or (session.auth.user_id if session.auth else None) != owner:
            session = GenerationSession(auth=auth)
            self.sessions[session_id] = session

        self.sessions.move_to_end(session_id)
        while len(self.sessions) > self.max_sessions:
            evicted, _ = self.sessions.popitem(last=False)
            logger.debug(f"Evicted generation session {evicted}")
        return session

    def open_session(self, auth: Optional[AuthContext], session_id: Optional[str] = None) -> GenerationSession:
        """Session for the caller, with history loaded on first open."""
        session = self.session_for(auth, session_id)
        if session.auth is not None and not session.history_loaded:
            self.refresh_history(session)
        return session

    def refresh_history(self, session: GenerationSession) -> List[HistoryRecord]:
        if session.auth is None:
            return session.state.history

        try:
            session.state.history = self.history_store.list_by_user(session.auth.user_id)
            session.history_loaded = True
        except HistoryStoreError as e:
            logger.error(f"Could not load history for {session.auth.user_id}: {e}")
        return session.state.history

    def select_history_entry(self, session: GenerationSession, record_id: str) -> GenerationSessionState:
        """Show a stored batch in place of the current candidates."""
        for record in session.state.history:
            if record.id == record_id:
                session.state.molecules = list(record.generated_molecules)
                return session.state

        raise HistoryEntryNotFound(record_id)

    async def submit(self, session: GenerationSession, form: GenerationFormInput) -> GenerationSessionState:
        """Run one generation round trip for the session and return its state."""
        state = session.state
        state.sequence += 1
        token = state.sequence

        state.loading = True
        state.molecules = []
        state.alert = None
        state.warning = None

        request = build_generation_request(form)
        payload = build_payload(request)

        try:
            try:
                data = await self._call_proxy(payload)
                candidates = normalize_generation_response(data)
            except Exception as e:
                logger.error(f"Generation failed: {e}")
                if session.is_latest(token):
                    state.alert = GENERATION_FAILED_ALERT
                return state

            logger.info(f"Generated {len(candidates)} molecules from {request.seed_structure}")

            if session.is_latest(token):
                state.molecules = candidates
            else:
                logger.info(f"Submission {token} superseded by {state.sequence}, not displayed")

            if session.auth is not None:
                self._persist(session, form, request, candidates, token)

            return state

        finally:
            if session.is_latest(token):
                state.loading = False

    def _persist(
        self,
        session: GenerationSession,
        form: GenerationFormInput,
        request: GenerationRequest,
        candidates: List[GeneratedCandidate],
        token: int
    ):
        """Write the batch to history; a failure leaves the displayed candidates alone."""
        params = HistoryRequestParams(
            smiles=form.smiles,
            num_molecules=request.num_candidates,
            min_similarity=request.min_similarity,
            particles=request.particle_count,
            iterations=request.iteration_count,
        )
        user_id = session.auth.user_id

        try:
            self.history_store.create(params, candidates, user_id)
        except HistoryStoreError as e:
            logger.warning(f"Generation history not saved for {user_id}: {e}")
            if session.is_latest(token):
                session.state.warning = HISTORY_SAVE_WARNING
            return

        # The record is saved; a failed reload only leaves the list stale
        self.refresh_history(session)

    async def _call_proxy(self, payload: GenerationPayload) -> Any:
        body = payload.to_wire()

        if self.client is not None:
            response = await self.client.post(self.proxy_url, json=body)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.proxy_url, json=body)

        if not response.is_success:
            raise GenerationError(f"Proxy returned {response.status_code}: {response.text}")

        try:
            return response.json()
        except ValueError as e:
            raise GenerationError(f"Proxy returned malformed JSON: {e}") from e
