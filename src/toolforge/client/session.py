"""Generation session controller.

:class:`GenerationSession` ties one prompt submission to one payment and one
pipeline run.  All mutable state lives in a single
:class:`~toolforge.client.models.SessionState` record that callers can render
after every change.

Lifecycle
---------
::

    session.submit("a sunset over mountains")   # validate, new request id
    await session.pay(cancel)                   # approve, pay, then generate
    session.reset()                             # back to an empty form

A request id can consume its payment once.  ``generate()`` refuses a request
that has already run, so a duplicate success notification or a second call
cannot start another run for the same payment.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from toolforge.client.models import (
    GeneratedImageAsset,
    GenerationRequest,
    PaymentPhase,
    PipelineProgress,
    SessionState,
    new_request_id,
)
from toolforge.client.payment import (
    CancellationToken,
    OnPaymentSuccess,
    PaymentCoordinator,
    PaymentError,
    PaymentOutcome,
)
from toolforge.client.pipeline import ImagePipelineRunner, PipelineError
from toolforge.client.validation import DEFAULT_MAX_PROMPT_LENGTH, validate_prompt

logger = logging.getLogger(__name__)

GENERATION_FAILED_ALERT = "Error generating images. Please try again."

CoordinatorFactory = Callable[[OnPaymentSuccess], PaymentCoordinator]

_IN_FLIGHT_PHASES = (PaymentPhase.APPROVAL_PENDING, PaymentPhase.PAYMENT_PENDING)


class SessionError(Exception):
    """Base class for session misuse."""


class SessionBusyError(SessionError):
    """A payment or generation run is in progress."""


class PaymentRequiredError(SessionError):
    """Generation was requested before the payment confirmed."""


class AlreadyFulfilledError(SessionError):
    """The request has already consumed its payment."""


class GenerationSession:
    """Owns the state of one user's prompt, payment and images.

    Args:
        runner: Pipeline runner used after payment.
        coordinator_factory: Builds a payment coordinator bound to the given
            success callback; called once per submitted request.
        max_prompt_length: Longest accepted prompt.
        alert: Receives user-facing alert text.
        on_change: Called with the state after every change.
    """

    def __init__(
        self,
        runner: ImagePipelineRunner,
        coordinator_factory: CoordinatorFactory,
        *,
        max_prompt_length: int = DEFAULT_MAX_PROMPT_LENGTH,
        alert: Callable[[str], None] | None = None,
        on_change: Callable[[SessionState], None] | None = None,
    ) -> None:
        self._runner = runner
        self._coordinator_factory = coordinator_factory
        self._max_prompt_length = max_prompt_length
        self._alert = alert
        self._on_change = on_change
        self._coordinator: PaymentCoordinator | None = None
        self._state = SessionState()

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def coordinator(self) -> PaymentCoordinator | None:
        return self._coordinator

    @property
    def busy(self) -> bool:
        if self._state.generating:
            return True
        return self._coordinator is not None and self._coordinator.phase in _IN_FLIGHT_PHASES

    def submit(self, prompt: str | None) -> GenerationRequest:
        """Validate ``prompt`` and start a new request awaiting payment.

        Raises:
            ValidationError: If the prompt is empty or too long.
            SessionBusyError: If a payment or run is in progress.
        """
        if self.busy:
            raise SessionBusyError("A request is already in progress")
        text = validate_prompt(prompt, self._max_prompt_length)

        request = GenerationRequest(id=new_request_id(), prompt=text)
        self._coordinator = self._coordinator_factory(self._on_payment_success)
        self._state.request = request
        self._state.payment_phase = self._coordinator.phase
        self._state.payment_message = None
        self._state.payment_tx_hash = None
        self._state.error = None
        logger.info(f"Submitted request {request.id} ({len(text)} chars)")
        self._changed()
        return request

    async def pay(self, cancel: CancellationToken | None = None) -> PaymentOutcome:
        """Run the remaining payment steps for the current request.

        Generation starts from the coordinator's success callback, so this
        returns after the images are retrieved or the run has failed.

        Raises:
            SessionError: If nothing has been submitted.
            PaymentError: If a payment step fails; the state mirrors it.

        The session state is synced with the coordinator on any failure.
        """
        if self._coordinator is None or self._state.request is None:
            raise SessionError("Submit a prompt before paying")
        try:
            return await self._coordinator.run(cancel)
        except Exception:
            self._sync_payment()
            raise

    async def generate(self) -> list[GeneratedImageAsset]:
        """Run the image pipeline for the current, paid request.

        A failed run is reported through ``state.error`` and the alert
        callback; the images retrieved before the failure are kept.

        Raises:
            PaymentRequiredError: If the payment has not confirmed.
            AlreadyFulfilledError: If the request already ran.
            SessionBusyError: If a run is in progress.
        """
        request = self._state.request
        if request is None or self._coordinator is None:
            raise PaymentRequiredError("No paid request to generate")
        if self._coordinator.phase is not PaymentPhase.CONFIRMED:
            raise PaymentRequiredError(f"Payment for {request.id} is not confirmed")
        if request.id in self._state.fulfilled_request_ids:
            raise AlreadyFulfilledError(f"Request {request.id} has already been generated")
        if self._state.generating:
            raise SessionBusyError("Generation already running")

        self._state.fulfilled_request_ids.add(request.id)
        self._state.generating = True
        self._state.show_placeholders = True
        self._state.images = {}
        self._state.error = None
        self._state.progress = 0
        self._state.total = len(self._runner.variants)
        self._state.status = "Starting image generation..."
        self._changed()

        try:
            images = await self._runner.run(request.prompt, on_progress=self._on_progress)
        except PipelineError as e:
            logger.error(f"Generation for {request.id} failed at {e.variant.value}: {e}")
            self._state.images = {image.variant: image for image in e.partial}
            self._state.progress = len(e.partial)
            self._state.error = str(e)
            self._state.status = ""
            self._state.show_placeholders = False
            if self._alert is not None:
                self._alert(GENERATION_FAILED_ALERT)
            return list(e.partial)
        finally:
            self._state.generating = False
            self._changed()

        self._state.images = {image.variant: image for image in images}
        self._state.show_placeholders = False
        self._changed()
        logger.info(f"Generated {len(images)} images for {request.id}")
        return images

    def reset(self) -> None:
        """Clear the form, payment and images.  Fulfilled ids are kept.

        Raises:
            SessionBusyError: If a payment or run is in progress.
        """
        if self.busy:
            raise SessionBusyError("Cannot reset while a request is in progress")
        if self._coordinator is not None:
            self._coordinator.reset()
        self._coordinator = None
        self._state = SessionState(fulfilled_request_ids=self._state.fulfilled_request_ids)
        self._changed()

    # -- Callbacks ----------------------------------------------------------

    async def _on_payment_success(self, outcome: PaymentOutcome) -> None:
        self._sync_payment()
        self._state.payment_tx_hash = outcome.payment.tx_hash
        await self.generate()

    def _on_progress(self, progress: PipelineProgress, images: list[GeneratedImageAsset]) -> None:
        self._state.progress = progress.current
        self._state.total = progress.total
        self._state.status = progress.status
        self._state.images = {image.variant: image for image in images}
        self._changed()

    def _sync_payment(self) -> None:
        if self._coordinator is None:
            return
        self._state.payment_phase = self._coordinator.phase
        self._state.payment_message = self._coordinator.message
        self._changed()

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change(self._state)
