"""
Move suggestion service: abstract backend interface, failure classification, and the retrying client.

The rest of the code should not care which vendor or model proposes moves. A backend takes a
SuggestionRequest and returns raw text; SuggestionClient walks an ordered list of backends per round,
classifies failures and backs off between rounds. Each fetch ends in one tagged outcome:

- Success(move, backend)      a move string was extracted (legality is checked later, by the oracle)
- Retryable(kind, message)    every round failed with recoverable errors, or the time budget ran out
- Fatal(kind, message)        quota exhausted; retrying would only burn more quota
"""

from __future__ import annotations

import logging
import re
import threading
import time
from collections import Counter
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from typing import Callable, Optional, Protocol, Sequence, Union

from chesscore.config import SETTINGS
from chesscore.core.exceptions import AIServiceError
from chesscore.core.shared_types import AIErrorKind, Difficulty
from chesscore.game.oracle import STARTING_POSITION, UCI_RE

log = logging.getLogger(__name__)

SAN_RE = re.compile(r"^([KQRBN]?[a-h]?[1-8]?x?[a-h][1-8](?:=[QRBN])?[+#]?|O-O(?:-O)?[+#]?)")
_STRIP_RE = re.compile(r"[^a-zA-Z0-9+#=\-xO]")


@dataclass(frozen=True)
class ErrorInfo:
    message: str
    retryable: bool
    retry_after_s: int


ERROR_INFO: dict[AIErrorKind, ErrorInfo] = {
    AIErrorKind.QUOTA_EXCEEDED: ErrorInfo(
        "AI service quota exceeded. Please try again in a few minutes.", False, 300
    ),
    AIErrorKind.NETWORK_ERROR: ErrorInfo(
        "Network connection issue. Please check your internet connection.", True, 5
    ),
    AIErrorKind.SERVICE_UNAVAILABLE: ErrorInfo(
        "AI service is temporarily unavailable. Using fallback AI.", True, 10
    ),
    AIErrorKind.INVALID_RESPONSE: ErrorInfo(
        "AI service returned an invalid response. Using fallback AI.", True, 2
    ),
    AIErrorKind.UNKNOWN: ErrorInfo(
        "AI service encountered an unexpected error. Using fallback AI.", True, 5
    ),
}

_NETWORK_CODES = {"ENOTFOUND", "ECONNREFUSED", "ECONNRESET", "ETIMEDOUT"}


@dataclass(frozen=True)
class SuggestionRequest:
    position: str
    difficulty: Difficulty
    recent_moves: list[str] = field(default_factory=list)


class SuggestionService(Protocol):
    """One backend able to propose a move (a model, a vendor, a remote engine...)."""

    name: str

    def suggest(self, request: SuggestionRequest) -> str: ...


# --- TAGGED OUTCOMES ---
@dataclass(frozen=True)
class Success:
    move: str
    backend: str


@dataclass(frozen=True)
class Retryable:
    kind: AIErrorKind
    message: str


@dataclass(frozen=True)
class Fatal:
    kind: AIErrorKind
    message: str


SuggestionOutcome = Union[Success, Retryable, Fatal]


@dataclass
class FetchReport:
    outcome: SuggestionOutcome
    backend_attempts: Counter = field(default_factory=Counter)
    rounds: int = 0


@dataclass(frozen=True)
class ServiceStatus:
    status: str  # available | degraded | unavailable
    message: str
    can_retry: bool
    fallback_available: bool = True
    retry_after_s: Optional[int] = None


# --- CLASSIFICATION ---
def classify_error(error: BaseException) -> AIErrorKind:
    """Map any backend failure onto one of the AIErrorKind classes."""
    if isinstance(error, AIServiceError):
        return error.kind

    message = str(error).lower()
    status = getattr(error, "status", None) or getattr(error, "status_code", None)
    code = getattr(error, "code", None)

    if status == 429 or "quota" in message or "limit" in message:
        return AIErrorKind.QUOTA_EXCEEDED
    if (
        isinstance(error, (ConnectionError, TimeoutError))
        or (isinstance(code, str) and code.upper() in _NETWORK_CODES)
        or any(word in message for word in ("network", "timeout", "timed out", "connection", "fetch"))
    ):
        return AIErrorKind.NETWORK_ERROR
    if (isinstance(status, int) and status >= 500) or any(
        phrase in message for phrase in ("service unavailable", "internal server error")
    ):
        return AIErrorKind.SERVICE_UNAVAILABLE
    if any(word in message for word in ("invalid", "malformed", "parse")):
        return AIErrorKind.INVALID_RESPONSE
    return AIErrorKind.UNKNOWN


def _strip_code_fence(text: str) -> str:
    """Remove simple ``` fences if present."""
    text = text.strip()
    if text.startswith("```") and text.endswith("```"):
        inner = text.split("\n", 1)
        if len(inner) == 2:
            return inner[1].rsplit("\n", 1)[0].strip()
    return text


def extract_move(raw_text: str) -> str:
    """
    Pull a move token out of a free-text reply.
    Raises AIServiceError(INVALID_RESPONSE) when nothing usable is left.
    """
    text = _strip_code_fence(raw_text or "")
    tokens = text.replace("\n", " ").split()
    if not tokens:
        raise AIServiceError(AIErrorKind.INVALID_RESPONSE, "empty response")
    token = tokens[0].rstrip(".,;:!?")
    if UCI_RE.fullmatch(token):
        return token.lower()
    match = SAN_RE.match(token)
    if match:
        return match.group(1)
    cleaned = _STRIP_RE.sub("", token)
    if not cleaned:
        raise AIServiceError(AIErrorKind.INVALID_RESPONSE, f"no move in response {raw_text!r}")
    return cleaned


# --- CLIENT ---
class SuggestionClient:
    """Calls the backends in order, round after round, with exponential backoff between rounds."""

    def __init__(
        self,
        backends: Sequence[SuggestionService],
        max_rounds: int = SETTINGS.ai_max_attempts,
        backoff_base_s: float = SETTINGS.ai_backoff_base_s,
        backoff_cap_s: float = SETTINGS.ai_backoff_cap_s,
        probe_timeout_s: float = SETTINGS.ai_probe_timeout_s,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.backends = list(backends)
        self.max_rounds = max_rounds
        self.backoff_base_s = backoff_base_s
        self.backoff_cap_s = backoff_cap_s
        self.probe_timeout_s = probe_timeout_s
        self.sleep = sleep
        self.clock = clock
        self._workers = max(1, len(self.backends))
        self._executor = self._new_executor()
        # calls that outlived their timeout and still hold a worker
        self._stuck: set[Future] = set()
        self._lock = threading.Lock()

    def close(self) -> None:
        # running calls are left to finish on their own
        with self._lock:
            self._executor.shutdown(wait=False, cancel_futures=True)

    def backoff_delay(self, round_number: int) -> float:
        """Delay after the `round_number`-th failed round (1-based)."""
        return min(self.backoff_base_s * (2 ** (round_number - 1)), self.backoff_cap_s)

    def fetch(
        self,
        request: SuggestionRequest,
        deadline: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> FetchReport:
        """Ask the backends for a move until one answers, quota runs out, or the rounds/budget are used up."""
        report = FetchReport(
            outcome=Retryable(AIErrorKind.SERVICE_UNAVAILABLE, "no suggestion backends configured")
        )
        if not self.backends:
            return report

        last_kind = AIErrorKind.UNKNOWN
        last_message = ""
        for round_number in range(1, self.max_rounds + 1):
            report.rounds = round_number
            for backend in self.backends:
                if self._cancelled(cancel_event):
                    report.outcome = Retryable(AIErrorKind.UNKNOWN, "cancelled")
                    return report
                remaining = self._remaining(deadline)
                if remaining is not None and remaining <= 0:
                    report.outcome = Retryable(AIErrorKind.NETWORK_ERROR, "time budget exhausted")
                    return report

                report.backend_attempts[backend.name] += 1
                try:
                    move = self._call(backend, request, remaining)
                except Exception as exc:
                    last_kind = classify_error(exc)
                    last_message = str(exc)
                    log.warning(
                        "Backend %s failed (round %d): %s [%s]",
                        backend.name,
                        round_number,
                        exc,
                        last_kind,
                    )
                    if last_kind == AIErrorKind.QUOTA_EXCEEDED:
                        log.warning("Quota exceeded on %s, falling back immediately", backend.name)
                        report.outcome = Fatal(last_kind, last_message)
                        return report
                    continue

                report.outcome = Success(move=move, backend=backend.name)
                return report

            if round_number < self.max_rounds and ERROR_INFO[last_kind].retryable:
                delay = self.backoff_delay(round_number)
                remaining = self._remaining(deadline)
                if remaining is not None:
                    delay = min(delay, max(0.0, remaining))
                log.warning(
                    "All backends failed (round %d), retrying in %.1fs", round_number, delay
                )
                if self._wait(delay, cancel_event):
                    report.outcome = Retryable(AIErrorKind.UNKNOWN, "cancelled")
                    return report

        report.outcome = Retryable(last_kind, last_message)
        return report

    def probe(self) -> ServiceStatus:
        """Health check against the first backend with the starting position."""
        if not self.backends:
            return ServiceStatus(
                status="unavailable", message="AI service is not configured", can_retry=False
            )
        backend = self.backends[0]
        request = SuggestionRequest(position=STARTING_POSITION, difficulty=Difficulty.MEDIUM)
        try:
            raw = self._call_raw(backend, request, self.probe_timeout_s)
        except Exception as exc:
            kind = classify_error(exc)
            info = ERROR_INFO[kind]
            log.info("Probe of %s failed: %s [%s]", backend.name, exc, kind)
            return ServiceStatus(
                status="unavailable",
                message=info.message,
                can_retry=info.retryable,
                retry_after_s=info.retry_after_s,
            )
        if raw and raw.strip():
            return ServiceStatus(
                status="available", message="AI service is working normally", can_retry=True
            )
        return ServiceStatus(
            status="degraded",
            message="AI service is responding but may have issues",
            can_retry=True,
        )

    # -- PRIVATE HELPERS ---
    def _call(
        self, backend: SuggestionService, request: SuggestionRequest, timeout: Optional[float]
    ) -> str:
        return extract_move(self._call_raw(backend, request, timeout))

    def _call_raw(
        self, backend: SuggestionService, request: SuggestionRequest, timeout: Optional[float]
    ) -> str:
        future = self._submit(backend, request)
        try:
            return future.result(timeout=timeout)
        except FutureTimeoutError:
            if not future.cancel():
                with self._lock:
                    self._stuck.add(future)
            raise AIServiceError(
                AIErrorKind.NETWORK_ERROR, f"{backend.name} timed out after {timeout:.1f}s"
            )

    def _submit(self, backend: SuggestionService, request: SuggestionRequest) -> Future:
        """Run `backend.suggest` on a worker. A pool whose workers all hang on expired calls is replaced."""
        with self._lock:
            self._stuck = {future for future in self._stuck if not future.done()}
            if len(self._stuck) >= self._workers:
                log.warning(
                    "%d suggestion calls still running past their timeout, starting a new worker pool",
                    len(self._stuck),
                )
                self._executor.shutdown(wait=False)
                self._executor = self._new_executor()
                self._stuck.clear()
            return self._executor.submit(backend.suggest, request)

    def _new_executor(self) -> ThreadPoolExecutor:
        return ThreadPoolExecutor(max_workers=self._workers, thread_name_prefix="suggestion")

    def _remaining(self, deadline: Optional[float]) -> Optional[float]:
        return None if deadline is None else deadline - self.clock()

    def _cancelled(self, cancel_event: Optional[threading.Event]) -> bool:
        return bool(cancel_event and cancel_event.is_set())

    def _wait(self, delay: float, cancel_event: Optional[threading.Event]) -> bool:
        """Sleep for `delay`; returns True when cancelled meanwhile."""
        if cancel_event is not None:
            return cancel_event.wait(delay)
        self.sleep(delay)
        return False
