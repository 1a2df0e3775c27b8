"""
Transaction Repository - data access layer for Transaction model.
Optimized with optional session parameter for transaction reuse.
"""

from typing import Optional, List
from datetime import datetime, timezone
from sqlmodel import Session, select

from db_engine import get_engine
from models import Transaction, TransactionCreate


class TransactionRepository:
    """Repository for Transaction CRUD operations."""

    @staticmethod
    def add(data: TransactionCreate, session: Optional[Session] = None) -> Transaction:
        """
        Add a new transaction to the database.

        Args:
            data: Validated transaction fields
            session: Optional existing session for transaction reuse

        Returns:
            Created Transaction object
        """
        def _create_transaction(sess: Session) -> Transaction:
            transaction = Transaction.model_validate(data)
            sess.add(transaction)
            sess.commit()
            sess.refresh(transaction)
            return transaction

        if session is not None:
            return _create_transaction(session)
        else:
            with Session(get_engine()) as session:
                return _create_transaction(session)

    @staticmethod
    def get_all(order: str = "asc", session: Optional[Session] = None) -> List[Transaction]:
        """
        Retrieve all transactions ordered by purchase time.

        Args:
            order: "asc" (oldest first) or "desc" (newest first)
            session: Optional existing session for transaction reuse

        Returns:
            List of all Transaction objects
        """
        if order not in ("asc", "desc"):
            raise ValueError(f"Unknown order: {order}")

        def _get_all(sess: Session) -> List[Transaction]:
            column = Transaction.purchased_at
            statement = select(Transaction).order_by(
                column.asc() if order == "asc" else column.desc(),
                Transaction.id
            )
            results = sess.exec(statement)
            return list(results.all())

        if session is not None:
            return _get_all(session)
        else:
            with Session(get_engine()) as session:
                return _get_all(session)

    @staticmethod
    def get_by_id(transaction_id: int, session: Optional[Session] = None) -> Optional[Transaction]:
        """Retrieve a transaction by its ID."""
        def _get_by_id(sess: Session) -> Optional[Transaction]:
            return sess.get(Transaction, transaction_id)

        if session is not None:
            return _get_by_id(session)
        else:
            with Session(get_engine()) as session:
                return _get_by_id(session)

    @staticmethod
    def get_by_ticker(ticker: str, session: Optional[Session] = None) -> List[Transaction]:
        """Retrieve all transactions for one ticker (case-insensitive), oldest first."""
        def _get_by_ticker(sess: Session) -> List[Transaction]:
            statement = select(Transaction).where(
                Transaction.ticker == ticker.strip().upper()
            ).order_by(Transaction.purchased_at.asc())
            results = sess.exec(statement)
            return list(results.all())

        if session is not None:
            return _get_by_ticker(session)
        else:
            with Session(get_engine()) as session:
                return _get_by_ticker(session)

    @staticmethod
    def update(
        transaction_id: int,
        data: TransactionCreate,
        session: Optional[Session] = None
    ) -> Optional[Transaction]:
        """
        Replace all user-editable fields of an existing transaction.

        Args:
            transaction_id: Transaction ID to update
            data: Validated replacement fields
            session: Optional existing session for transaction reuse

        Returns:
            Updated Transaction object or None if not found
        """
        def _update(sess: Session) -> Optional[Transaction]:
            transaction = sess.get(Transaction, transaction_id)
            if transaction:
                transaction.ticker = data.ticker
                transaction.quantity = data.quantity
                transaction.price = data.price
                transaction.purchased_at = data.purchased_at
                transaction.updated_at = datetime.now(timezone.utc)
                sess.add(transaction)
                sess.commit()
                sess.refresh(transaction)
                return transaction
            return None

        if session is not None:
            return _update(session)
        else:
            with Session(get_engine()) as session:
                return _update(session)

    @staticmethod
    def delete(transaction_id: int, session: Optional[Session] = None) -> bool:
        """
        Delete a transaction by its ID.

        Args:
            transaction_id: Transaction ID to delete
            session: Optional existing session for transaction reuse

        Returns:
            True if deleted, False if not found
        """
        def _delete(sess: Session) -> bool:
            try:
                transaction = sess.get(Transaction, transaction_id)
                if transaction:
                    sess.delete(transaction)
                    sess.commit()
                    return True
                return False
            except Exception:
                sess.rollback()
                raise

        if session is not None:
            return _delete(session)
        else:
            with Session(get_engine()) as session:
                return _delete(session)
