"""Data models for the ToolForge client session.

Everything here lives in memory for one session only.  Nothing is persisted:
resetting the session discards the request, its payment progress and any
images already retrieved.
"""

import random
import string
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from toolforge.core.variants import VariantTag

_ID_ALPHABET = string.digits + string.ascii_lowercase


def new_request_id() -> str:
    """Opaque per-submission token, e.g. ``req_1760871234567_k3j9x0a2b``."""
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"req_{int(time.time() * 1000)}_{suffix}"


class PaymentPhase(str, Enum):
    """Steps of the approve-then-pay flow."""

    AWAITING_APPROVAL = "awaiting-approval"
    APPROVAL_PENDING = "approval-pending"
    AWAITING_PAYMENT = "awaiting-payment"
    PAYMENT_PENDING = "payment-pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


@dataclass
class GenerationRequest:
    """One prompt submission.  Created on submit, dropped on reset."""

    id: str
    prompt: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class GeneratedImageAsset:
    """One image returned by the generation endpoint."""

    variant: VariantTag
    base64: str
    url: str | None = None
    original_prompt: str | None = None
    style_template: str | None = None
    derived_prompt: str | None = None
    spec: dict | None = None

    @classmethod
    def from_response(cls, variant: VariantTag, image: dict) -> "GeneratedImageAsset":
        """Build from the ``image`` object of a generate-image response."""
        return cls(
            variant=variant,
            base64=image["base64"],
            url=image.get("url"),
            original_prompt=image.get("originalPrompt"),
            style_template=image.get("projectTemplate"),
            derived_prompt=image.get("optimizedPrompt"),
            spec=image.get("spec"),
        )


@dataclass
class PipelineProgress:
    """Progress snapshot emitted by the pipeline runner."""

    current: int
    total: int
    status: str


@dataclass
class SessionState:
    """Explicit state record owned by :class:`~toolforge.client.session.GenerationSession`.

    Attributes
    ----------
    request : GenerationRequest | None
        Current submission, if any
    payment_phase : PaymentPhase
        Mirror of the payment coordinator's phase
    payment_message : str | None
        Last user-facing payment message
    payment_tx_hash : str | None
        Hash of the confirmed payment transaction
    progress / total : int
        Variants retrieved so far, out of the variant count
    status : str
        Human-readable pipeline status
    images : dict[VariantTag, GeneratedImageAsset]
        Retrieved images keyed by variant, in generation order
    error : str | None
        Set when a generation run failed
    show_placeholders : bool
        Whether the result grid should show placeholders
    generating : bool
        True while the pipeline runs
    fulfilled_request_ids : set[str]
        Request ids that have already consumed their payment
    """

    request: GenerationRequest | None = None
    payment_phase: PaymentPhase = PaymentPhase.AWAITING_APPROVAL
    payment_message: str | None = None
    payment_tx_hash: str | None = None
    progress: int = 0
    total: int = 0
    status: str = ""
    images: dict[VariantTag, GeneratedImageAsset] = field(default_factory=dict)
    error: str | None = None
    show_placeholders: bool = False
    generating: bool = False
    fulfilled_request_ids: set[str] = field(default_factory=set)

    def __repr__(self) -> str:
        """String representation for debugging."""
        request_id = self.request.id if self.request else None
        return (
            f"SessionState(request={request_id}, "
            f"phase={self.payment_phase.value}, "
            f"progress={self.progress}/{self.total})"
        )
