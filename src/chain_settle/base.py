"""Account boundary interfaces consumed by the settlement engine."""

from abc import ABC, abstractmethod

from .constants import ChainKey
from .types import Address, TxCall


class TransactionSender(ABC):
    """Signing account able to submit transactions on every supported chain.

    Implementations serialise submissions per account and raise ``NonceConflict`` when the
    signer reports the sequence slot as already used.
    """

    @property
    def pays_gas(self) -> bool:
        """Whether submissions are paid from the account's own native balance."""
        return True

    @abstractmethod
    def address(self, chain: ChainKey) -> Address:
        pass

    @abstractmethod
    def send_transaction(self, chain: ChainKey, call: TxCall) -> str:
        pass


class ChainReader(ABC):
    """Read-only chain access used for balances, allowances and vault positions."""

    @abstractmethod
    def native_balance(self, chain: ChainKey, account: Address) -> int:
        pass

    @abstractmethod
    def call(
        self,
        chain: ChainKey,
        to: Address,
        function: tuple[str, tuple[str, ...]],
        args: tuple | list,
        output_types: tuple[str, ...] | list[str],
    ) -> tuple:
        pass
