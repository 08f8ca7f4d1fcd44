"""Two-step on-chain payment coordination.

Paying for a run takes two wallet transactions:

1. ``approve(spender, amount)`` on the USDC token, where the spender is the
   payment contract;
2. ``payForImages()`` on the payment contract, which pulls the approved
   amount.

:class:`PaymentCoordinator` drives both steps strictly in order, waits for
each receipt with :func:`wait_for_confirmation`, and calls the success
callback exactly once after the payment receipt confirms.

Phase Transitions
-----------------
::

    awaiting-approval --approve()--> approval-pending --confirmed--> awaiting-payment
    awaiting-payment  --pay()------> payment-pending  --confirmed--> confirmed

A rejected submission or a reverted receipt returns to the step before the
transaction so the user can try again.  A timeout, cancellation,
mismatched receipt or unexpected confirmation error while a transaction is
pending moves to ``failed``: the transaction may still land, so the step is
not offered again until :meth:`PaymentCoordinator.reset`.

The wallet itself is abstracted by :class:`WalletProvider`; see
:mod:`toolforge.client.wallet` for the JSON-RPC implementation.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Protocol

from toolforge.client.models import PaymentPhase

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Contract ABIs, only the functions used here.
# ---------------------------------------------------------------------------

ERC20_ABI: list[dict] = [
    {
        "inputs": [
            {"internalType": "address", "name": "spender", "type": "address"},
            {"internalType": "uint256", "name": "amount", "type": "uint256"},
        ],
        "name": "approve",
        "outputs": [{"internalType": "bool", "name": "", "type": "bool"}],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "inputs": [
            {"internalType": "address", "name": "owner", "type": "address"},
            {"internalType": "address", "name": "spender", "type": "address"},
        ],
        "name": "allowance",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
]

PAYMENT_ABI: list[dict] = [
    {
        "inputs": [],
        "name": "payForImages",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
]

APPROVAL_FAILED_MESSAGE = "Approval failed. Please try again."
NOT_CONNECTED_MESSAGE = "Please connect your wallet first"


# ---------------------------------------------------------------------------
# Errors.
# ---------------------------------------------------------------------------


class PaymentError(Exception):
    """Base class for payment failures.  ``phase`` is the phase afterwards."""

    def __init__(self, message: str, *, phase: PaymentPhase | None = None) -> None:
        super().__init__(message)
        self.phase = phase


class WalletNotConnectedError(PaymentError):
    pass


class InvalidPhaseError(PaymentError):
    pass


class TransactionRejectedError(PaymentError):
    """The wallet refused or failed to submit the transaction."""


class TransactionRevertedError(PaymentError):
    """The transaction was mined but reverted."""


class ReceiptMismatchError(PaymentError):
    """The wallet reported a receipt for a different transaction."""


class ConfirmationTimeoutError(PaymentError):
    pass


class PaymentCancelledError(PaymentError):
    pass


# ---------------------------------------------------------------------------
# Wallet abstraction.
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ContractCall:
    """A state-changing contract call for the wallet to submit."""

    address: str
    abi: list[dict]
    function_name: str
    args: tuple = ()


@dataclass(frozen=True)
class TransactionReceipt:
    """Observed outcome of a mined transaction."""

    tx_hash: str
    success: bool
    block_number: int | None = None


class WalletProvider(Protocol):
    """What the coordinator needs from a wallet connection."""

    @property
    def address(self) -> str | None: ...

    @property
    def is_connected(self) -> bool: ...

    async def write_contract(self, call: ContractCall) -> str:
        """Submit ``call`` and return the transaction hash.

        Raises:
            TransactionRejectedError: If the wallet refuses the transaction.
        """
        ...

    async def get_transaction_receipt(self, tx_hash: str) -> TransactionReceipt | None:
        """Return the receipt, or ``None`` while the transaction is pending."""
        ...


class CancellationToken:
    """Cooperative cancellation for confirmation waits."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


async def wait_for_confirmation(
    wallet: WalletProvider,
    tx_hash: str,
    *,
    timeout: float,
    poll_interval: float = 2.0,
    cancel: CancellationToken | None = None,
) -> TransactionReceipt:
    """Poll ``wallet`` until ``tx_hash`` has a receipt.

    Args:
        wallet: Wallet provider to poll.
        tx_hash: Transaction to wait for.
        timeout: Upper bound in seconds.
        poll_interval: Delay between polls in seconds.
        cancel: Optional token that aborts the wait.

    Returns:
        The receipt, successful or reverted.

    Raises:
        ConfirmationTimeoutError: If no receipt arrived within ``timeout``.
        PaymentCancelledError: If ``cancel`` fired first.
        ReceiptMismatchError: If the receipt belongs to another transaction.
    """
    if cancel is not None and cancel.cancelled:
        raise PaymentCancelledError(f"Cancelled while waiting for {tx_hash}")

    async def _poll() -> TransactionReceipt:
        while True:
            try:
                receipt = await wallet.get_transaction_receipt(tx_hash)
            except Exception as e:
                logger.warning(f"Receipt lookup for {tx_hash} failed, retrying: {e}")
                receipt = None
            if receipt is not None:
                return receipt
            await asyncio.sleep(poll_interval)

    poll_task = asyncio.ensure_future(_poll())
    waiters: set[asyncio.Future] = {poll_task}
    cancel_task: asyncio.Future | None = None
    if cancel is not None:
        cancel_task = asyncio.ensure_future(cancel.wait())
        waiters.add(cancel_task)

    try:
        done, _ = await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
    finally:
        pending = [task for task in waiters if not task.done()]
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

    if poll_task in done:
        receipt = poll_task.result()
        if receipt.tx_hash.lower() != tx_hash.lower():
            raise ReceiptMismatchError(
                f"Receipt for {receipt.tx_hash} returned while waiting for {tx_hash}"
            )
        return receipt
    if cancel_task is not None and cancel_task in done:
        raise PaymentCancelledError(f"Cancelled while waiting for {tx_hash}")
    raise ConfirmationTimeoutError(f"No confirmation for {tx_hash} after {timeout:.0f}s")


# ---------------------------------------------------------------------------
# Coordinator.
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PaymentOutcome:
    """Both confirmed receipts of a completed payment."""

    payer: str
    approval: TransactionReceipt
    payment: TransactionReceipt


OnPaymentSuccess = Callable[[PaymentOutcome], Awaitable[None] | None]


class PaymentCoordinator:
    """Runs approve-then-pay against a wallet provider.

    Args:
        wallet: Connected (or connectable) wallet provider.
        token_address: ERC-20 token (USDC) address.
        contract_address: Payment contract; also the approval spender.
        amount_units: Amount to approve, in token base units.
        on_success: Called exactly once after the payment confirms; may be
            a coroutine function.
        confirmation_timeout: Bound for each receipt wait, in seconds.
        poll_interval: Delay between receipt polls, in seconds.
    """

    def __init__(
        self,
        wallet: WalletProvider,
        *,
        token_address: str,
        contract_address: str,
        amount_units: int,
        on_success: OnPaymentSuccess | None = None,
        confirmation_timeout: float = 180.0,
        poll_interval: float = 2.0,
    ) -> None:
        self._wallet = wallet
        self._token_address = token_address
        self._contract_address = contract_address
        self._amount_units = amount_units
        self._on_success = on_success
        self._confirmation_timeout = confirmation_timeout
        self._poll_interval = poll_interval

        self._phase = PaymentPhase.AWAITING_APPROVAL
        self._approval: TransactionReceipt | None = None
        self._payment: TransactionReceipt | None = None
        self._callback_fired = False
        self.approve_hash: str | None = None
        self.payment_hash: str | None = None
        self.message: str | None = None

    @property
    def phase(self) -> PaymentPhase:
        return self._phase

    @property
    def amount_units(self) -> int:
        return self._amount_units

    # -- Public interface ---------------------------------------------------

    async def approve(self, cancel: CancellationToken | None = None) -> TransactionReceipt:
        """Submit the token approval and wait for it to confirm."""
        self._require_connected()
        self._require_phase(PaymentPhase.AWAITING_APPROVAL)
        self.message = None

        call = ContractCall(
            address=self._token_address,
            abi=ERC20_ABI,
            function_name="approve",
            args=(self._contract_address, self._amount_units),
        )
        logger.info(
            f"[Approval] sending approve tx (owner={self._wallet.address}, "
            f"spender={self._contract_address}, token={self._token_address}, "
            f"amount={self._amount_units})"
        )
        self.approve_hash = await self._submit(
            call,
            pending=PaymentPhase.APPROVAL_PENDING,
            ready=PaymentPhase.AWAITING_APPROVAL,
            failure_message=lambda e: APPROVAL_FAILED_MESSAGE,
        )
        logger.info(f"[Approval] approve tx sent: {self.approve_hash}")

        self._approval = await self._confirm(
            self.approve_hash,
            ready=PaymentPhase.AWAITING_APPROVAL,
            failure_message=APPROVAL_FAILED_MESSAGE,
            cancel=cancel,
        )
        self._phase = PaymentPhase.AWAITING_PAYMENT
        logger.info("[Approval] confirmed, moving to pay step")
        return self._approval

    async def pay(self, cancel: CancellationToken | None = None) -> PaymentOutcome:
        """Submit the payment call, wait for it, then fire the success callback."""
        self._require_connected()
        self._require_phase(PaymentPhase.AWAITING_PAYMENT)
        if self._approval is None or not self._approval.success:
            raise InvalidPhaseError("Approval has not been confirmed", phase=self._phase)
        self.message = None

        call = ContractCall(
            address=self._contract_address,
            abi=PAYMENT_ABI,
            function_name="payForImages",
        )
        logger.info(
            f"[Payment] sending payment tx (contract={self._contract_address}, "
            f"function=payForImages, user={self._wallet.address})"
        )
        self.payment_hash = await self._submit(
            call,
            pending=PaymentPhase.PAYMENT_PENDING,
            ready=PaymentPhase.AWAITING_PAYMENT,
            failure_message=lambda e: f"Payment failed: {e}",
        )
        logger.info(f"[Payment] payment tx sent: {self.payment_hash}")

        self._payment = await self._confirm(
            self.payment_hash,
            ready=PaymentPhase.AWAITING_PAYMENT,
            failure_message="Payment failed: transaction reverted",
            cancel=cancel,
        )
        self._phase = PaymentPhase.CONFIRMED
        logger.info("[Payment] confirmed, invoking success callback")

        outcome = PaymentOutcome(
            payer=self._wallet.address or "",
            approval=self._approval,
            payment=self._payment,
        )
        await self._notify_success(outcome)
        return outcome

    async def run(self, cancel: CancellationToken | None = None) -> PaymentOutcome:
        """Run whichever steps remain: approval (unless confirmed), then payment."""
        if self._phase is PaymentPhase.AWAITING_APPROVAL:
            await self.approve(cancel)
        return await self.pay(cancel)

    def reset(self) -> None:
        """Return to the first step, forgetting both transactions."""
        self._phase = PaymentPhase.AWAITING_APPROVAL
        self._approval = None
        self._payment = None
        self._callback_fired = False
        self.approve_hash = None
        self.payment_hash = None
        self.message = None

    # -- Internals ----------------------------------------------------------

    def _require_connected(self) -> None:
        if not self._wallet.is_connected or not self._wallet.address:
            self.message = NOT_CONNECTED_MESSAGE
            raise WalletNotConnectedError(NOT_CONNECTED_MESSAGE, phase=self._phase)

    def _require_phase(self, expected: PaymentPhase) -> None:
        if self._phase is not expected:
            raise InvalidPhaseError(
                f"Expected phase {expected.value}, currently {self._phase.value}",
                phase=self._phase,
            )

    async def _submit(
        self,
        call: ContractCall,
        *,
        pending: PaymentPhase,
        ready: PaymentPhase,
        failure_message: Callable[[Exception], str],
    ) -> str:
        self._phase = pending
        try:
            return await self._wallet.write_contract(call)
        except Exception as e:
            self._phase = ready
            self.message = failure_message(e)
            logger.error(f"{call.function_name} submission failed: {e}")
            if isinstance(e, PaymentError):
                e.phase = ready
                raise
            raise TransactionRejectedError(str(e), phase=ready) from e

    async def _confirm(
        self,
        tx_hash: str,
        *,
        ready: PaymentPhase,
        failure_message: str,
        cancel: CancellationToken | None,
    ) -> TransactionReceipt:
        try:
            receipt = await wait_for_confirmation(
                self._wallet,
                tx_hash,
                timeout=self._confirmation_timeout,
                poll_interval=self._poll_interval,
                cancel=cancel,
            )
        except (ConfirmationTimeoutError, PaymentCancelledError, ReceiptMismatchError) as e:
            self._phase = PaymentPhase.FAILED
            self.message = str(e)
            e.phase = PaymentPhase.FAILED
            logger.error(f"Confirmation of {tx_hash} failed: {e}")
            raise
        except Exception as e:
            self._phase = PaymentPhase.FAILED
            self.message = f"Could not confirm {tx_hash}: {e}"
            logger.error(self.message)
            raise PaymentError(self.message, phase=PaymentPhase.FAILED) from e

        if not receipt.success:
            self._phase = ready
            self.message = failure_message
            logger.warning(f"Transaction {tx_hash} reverted")
            raise TransactionRevertedError(failure_message, phase=ready)
        return receipt

    async def _notify_success(self, outcome: PaymentOutcome) -> None:
        if self._callback_fired or self._on_success is None:
            return
        self._callback_fired = True
        result = self._on_success(outcome)
        if inspect.isawaitable(result):
            await result


def build_coordinator(
    wallet: WalletProvider,
    cfg,
    on_success: OnPaymentSuccess | None = None,
) -> PaymentCoordinator:
    """Create a coordinator from a :class:`~toolforge.core.config.ToolforgeConfig`."""
    return PaymentCoordinator(
        wallet,
        token_address=cfg.token_address,
        contract_address=cfg.contract_address,
        amount_units=cfg.payment_amount_units,
        on_success=on_success,
        confirmation_timeout=cfg.confirmation_timeout_seconds,
        poll_interval=cfg.receipt_poll_interval_seconds,
    )
