"""
BlockLedger - Test Helpers
============================
Block building and independent state recomputation for tests.
"""

from typing import Dict, Iterable, Set, Tuple

from sqlalchemy import select

from block_ledger.domain.models import Block, Transaction, TxInput, TxOutput
from block_ledger.services.ledger_service import LedgerService
from block_ledger.storage.models_orm import OutputORM


def coinbase(tx_id: str, *outputs: Tuple[str, int]) -> Transaction:
    """Issuance transaction"""
    return Transaction(
        id=tx_id,
        inputs=[],
        outputs=[TxOutput(address, value) for address, value in outputs],
    )


def transfer(
    tx_id: str,
    inputs: Iterable[Tuple[str, int]],
    outputs: Iterable[Tuple[str, int]]
) -> Transaction:
    """Transaction spending (tx_id, index) references"""
    return Transaction(
        id=tx_id,
        inputs=[TxInput(source, index) for source, index in inputs],
        outputs=[TxOutput(address, value) for address, value in outputs],
    )


class ChainBuilder:
    """
    Drives a LedgerService block by block.

    Examples:
        >>> chain.submit(coinbase("cb1", ("addr1", 10)))
        1
    """

    def __init__(self, service: LedgerService):
        self.service = service
        self._counter = 0

    def next_block(self, *transactions: Transaction) -> Block:
        return Block.create(self.service.get_current_height() + 1, list(transactions))

    def submit(self, *transactions: Transaction) -> int:
        return self.service.submit_block(self.next_block(*transactions))

    def fund(self, address: str, value: int) -> str:
        """Submit a block issuing ``value`` to ``address``; returns the tx id"""
        self._counter += 1
        tx_id = f"fund-{address}-{self._counter}"
        self.submit(coinbase(tx_id, (address, value)))
        return tx_id

    def empty_blocks(self, count: int) -> None:
        for _ in range(count):
            self.submit()

    # Independent recomputation from the outputs table

    def unspent_set(self) -> Set[Tuple[str, int, str, int]]:
        with self.service.db.read_session() as session:
            rows = session.execute(
                select(OutputORM.tx_id, OutputORM.output_index, OutputORM.address, OutputORM.value)
                .where(OutputORM.is_spent.is_(False))
            )
            return {tuple(row) for row in rows}

    def recomputed_balances(self) -> Dict[str, int]:
        balances: Dict[str, int] = {}
        for _, _, address, value in self.unspent_set():
            balances[address] = balances.get(address, 0) + value
        return {address: total for address, total in balances.items() if total}

    def state(self):
        """(height, running balances, unspent set) fingerprint"""
        return (
            self.service.get_current_height(),
            self.service.store.get_all_balances(),
            self.unspent_set(),
        )

