# models.py
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Tuple


class StrategyKind(Enum):
    CSS = "css"
    XPATH = "xpath"
    ID = "id"
    TEXT = "text"


@dataclass(frozen=True)
class Strategy:
    kind: StrategyKind
    expression: str

    def selector(self) -> str:
        """Playwright selector string for this strategy."""
        if self.kind is StrategyKind.CSS:
            return f"css={self.expression}"
        if self.kind is StrategyKind.XPATH:
            return f"xpath={self.expression}"
        if self.kind is StrategyKind.ID:
            return f'css=[id="{self.expression}"]'
        return f"text={self.expression}"


@dataclass(frozen=True)
class Locator:
    name: str
    strategies: Tuple[Strategy, ...]

    def __post_init__(self):
        if not self.strategies:
            raise ValueError(f"Locator '{self.name}' needs at least one strategy")


@dataclass
class ResolvedElement:
    handle: Any  # playwright ElementHandle
    locator: Locator
    scope: Any = None  # Page, ElementHandle or None for the page root


class FailureKind(Enum):
    NOT_FOUND = "NotFound"
    TIMEOUT = "Timeout"
    STALE_HANDLE = "StaleHandle"
    OBSTRUCTED_CLICK = "ObstructedClick"
    VERIFICATION_MISMATCH = "VerificationMismatch"
    AUTHENTICATION_REQUIRED = "AuthenticationRequired"
    OTP_TIMEOUT = "OtpTimeout"
    UNPARSABLE_PRICE = "UnparsablePrice"
    PRICE_OUT_OF_RANGE = "PriceOutOfRange"


@dataclass(frozen=True)
class InteractionResult:
    succeeded: bool
    diagnostic: str = ""
    failure: Optional[FailureKind] = None
    value: Any = None

    @classmethod
    def ok(cls, diagnostic: str = "", value: Any = None) -> "InteractionResult":
        return cls(True, diagnostic, None, value)

    @classmethod
    def fail(cls, failure: FailureKind, diagnostic: str, value: Any = None) -> "InteractionResult":
        return cls(False, diagnostic, failure, value)


class SessionState(Enum):
    ANONYMOUS = "Anonymous"
    ADDRESS_PROMPT_PENDING = "AddressPromptPending"
    LOGIN_REQUIRED = "LoginRequired"
    OTP_REQUIRED = "OtpRequired"
    READY = "Ready"


@dataclass(frozen=True)
class PriceRecord:
    value: float
    sponsored: bool = False

    def __post_init__(self):
        if self.value < 0:
            raise ValueError(f"Price cannot be negative: {self.value}")


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int
    interval_ms: int = 0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.interval_ms < 0:
            raise ValueError("interval_ms must be >= 0")

    @classmethod
    def within(cls, timeout_ms: int, interval_ms: int) -> "RetryPolicy":
        """Policy whose attempts fit inside timeout_ms."""
        if interval_ms <= 0:
            return cls(1, 0)
        return cls(max(0, timeout_ms) // interval_ms + 1, interval_ms)


@dataclass(frozen=True)
class Credentials:
    identifier: str = ""
    secret: str = ""

    @property
    def complete(self) -> bool:
        return bool(self.identifier) and bool(self.secret)

    def __repr__(self):
        return f"Credentials(identifier={self.identifier!r}, secret={'***' if self.secret else ''!r})"


@dataclass(frozen=True)
class TargetConfig:
    base_url: str
    postal_code: str
    region_markers: Tuple[str, ...] = field(default_factory=tuple)

    def reflected_by(self, location_text: str) -> bool:
        text = location_text or ""
        if self.postal_code and self.postal_code in text:
            return True
        return any(marker in text for marker in self.region_markers)
