"""Asset transfer service boundary and an in-memory implementation."""

from collections import defaultdict
from typing import Callable, Dict, List, Optional, Protocol, Tuple

from .errors import TransferError, ZeroAmountError


class AssetTransferService(Protocol):
    """Token interface the ledger relies on. Every call is all-or-nothing."""

    def transfer(self, sender: str, recipient: str, amount: int) -> None:
        ...

    def transfer_from(self, spender: str, owner: str, recipient: str, amount: int) -> None:
        ...

    def balance_of(self, account: str) -> int:
        ...


class InMemoryToken:
    """
    Fungible token with balances and allowances.

    Used by the simulation runner and tests in place of a real asset.
    An optional hook runs after each successful transfer, which lets tests
    model a token that calls back into its recipient.
    """

    def __init__(self, symbol: str, on_transfer: Optional[Callable[[str, str, int], None]] = None):
        self.symbol = symbol
        self.on_transfer = on_transfer
        self._balances: Dict[str, int] = defaultdict(int)
        self._allowances: Dict[Tuple[str, str], int] = defaultdict(int)
        self.total_supply = 0
        self.transfers: List[Tuple[str, str, int]] = []

    def mint(self, account: str, amount: int) -> None:
        if amount <= 0:
            raise ZeroAmountError("mint amount")
        self._balances[account] += amount
        self.total_supply += amount

    def approve(self, owner: str, spender: str, amount: int) -> None:
        self._allowances[(owner, spender)] = amount

    def allowance(self, owner: str, spender: str) -> int:
        return self._allowances[(owner, spender)]

    def balance_of(self, account: str) -> int:
        return self._balances[account]

    def transfer(self, sender: str, recipient: str, amount: int) -> None:
        self._move(sender, recipient, amount)

    def transfer_from(self, spender: str, owner: str, recipient: str, amount: int) -> None:
        allowed = self._allowances[(owner, spender)]
        if allowed < amount:
            raise TransferError(
                f"{self.symbol}: allowance {allowed} from {owner} to {spender} is below {amount}",
                account=owner,
                amount=amount,
                available=allowed,
            )
        self._move(owner, recipient, amount)
        self._allowances[(owner, spender)] = allowed - amount

    def _check_balance(self, account: str, amount: int) -> None:
        available = self._balances[account]
        if available < amount:
            raise TransferError(
                f"{self.symbol}: balance {available} of {account} is below {amount}",
                account=account,
                amount=amount,
                available=available,
            )

    def _move(self, sender: str, recipient: str, amount: int) -> None:
        if amount < 0:
            raise ValueError(f"Negative transfer amount {amount}")
        self._check_balance(sender, amount)
        self._balances[sender] -= amount
        self._balances[recipient] += amount
        if self.on_transfer is not None:
            try:
                self.on_transfer(sender, recipient, amount)
            except Exception:
                # A failing recipient hook reverts the whole transfer
                self._balances[recipient] -= amount
                self._balances[sender] += amount
                raise
        self.transfers.append((sender, recipient, amount))
