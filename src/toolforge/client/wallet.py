"""JSON-RPC wallet provider backed by web3.py.

Transactions are sent with ``eth_sendTransaction`` from an account managed
by the node or wallet behind the RPC endpoint, which does the signing.  No
key material passes through this module.

Usage
-----
::

    wallet = Web3WalletProvider.from_rpc("http://127.0.0.1:8545")
    await wallet.connect()          # picks the first unlocked account
    tx_hash = await wallet.write_contract(call)
"""

from __future__ import annotations

import logging

from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.exceptions import TransactionNotFound, Web3Exception

from toolforge.client.payment import (
    ERC20_ABI,
    NOT_CONNECTED_MESSAGE,
    ContractCall,
    PaymentError,
    TransactionReceipt,
    TransactionRejectedError,
    WalletNotConnectedError,
)

logger = logging.getLogger(__name__)


class Web3WalletProvider:
    """:class:`~toolforge.client.payment.WalletProvider` over an AsyncWeb3 instance.

    Args:
        w3: AsyncWeb3 instance.
        account: Sending account; ``None`` until :meth:`connect` picks one.
    """

    def __init__(self, w3: AsyncWeb3, account: str | None = None) -> None:
        self._w3 = w3
        self._account = AsyncWeb3.to_checksum_address(account) if account else None

    @classmethod
    def from_rpc(cls, rpc_url: str, account: str | None = None) -> "Web3WalletProvider":
        return cls(AsyncWeb3(AsyncHTTPProvider(rpc_url)), account)

    @property
    def address(self) -> str | None:
        return self._account

    @property
    def is_connected(self) -> bool:
        return self._account is not None

    async def connect(self) -> str:
        """Resolve the sending account, defaulting to the node's first account.

        Raises:
            WalletNotConnectedError: If no account is available.
        """
        if self._account is None:
            accounts = await self._w3.eth.accounts
            if not accounts:
                raise WalletNotConnectedError(NOT_CONNECTED_MESSAGE)
            self._account = AsyncWeb3.to_checksum_address(accounts[0])
        logger.info(f"Wallet connected: {self._account}")
        return self._account

    async def write_contract(self, call: ContractCall) -> str:
        """Submit a contract call from the connected account.

        Raises:
            WalletNotConnectedError: If no account is connected.
            TransactionRejectedError: If the node refuses the transaction.
        """
        if self._account is None:
            raise WalletNotConnectedError(NOT_CONNECTED_MESSAGE)

        contract = self._w3.eth.contract(
            address=AsyncWeb3.to_checksum_address(call.address),
            abi=call.abi,
        )
        function = getattr(contract.functions, call.function_name)(*call.args)
        try:
            tx_hash = await function.transact({"from": self._account})
        except (Web3Exception, ValueError) as e:
            raise TransactionRejectedError(f"{call.function_name} rejected: {e}") from e
        return AsyncWeb3.to_hex(tx_hash)

    async def get_transaction_receipt(self, tx_hash: str) -> TransactionReceipt | None:
        try:
            receipt = await self._w3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            return None
        except Web3Exception as e:
            raise PaymentError(f"Receipt lookup for {tx_hash} failed: {e}") from e
        return TransactionReceipt(
            tx_hash=AsyncWeb3.to_hex(receipt["transactionHash"]),
            success=receipt["status"] == 1,
            block_number=receipt.get("blockNumber"),
        )

    async def allowance(self, token_address: str, spender: str) -> int:
        """Current ERC-20 allowance of the connected account for ``spender``."""
        if self._account is None:
            raise WalletNotConnectedError(NOT_CONNECTED_MESSAGE)
        token = self._w3.eth.contract(address=AsyncWeb3.to_checksum_address(token_address), abi=ERC20_ABI)
        return await token.functions.allowance(
            self._account, AsyncWeb3.to_checksum_address(spender)
        ).call()
