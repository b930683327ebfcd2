"""
SQL-backed action token store (SQLAlchemy Core).

Consumption is a single conditional UPDATE; the database serialises racing
updates so at most one of them matches the ``consumed = false`` predicate.
"""

import logging
from typing import Optional

from sqlalchemy import (
    Boolean, Column, Float, Integer, MetaData, String, Table,
    delete, insert, select, update,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..errors import StoreError
from .models import ActionKind, ActionToken
from .store import TokenStore

logger = logging.getLogger(__name__)

metadata = MetaData()

action_tokens = Table(
    'action_tokens',
    metadata,
    Column('token_id', String(64), primary_key=True),
    Column('principal_id', String(64), nullable=False, index=True),
    Column('kind', String(32), nullable=False),
    Column('issued_at', Float, nullable=False),
    Column('expires_at', Float, nullable=False),
    Column('consumed', Boolean, nullable=False, default=False),
    Column('version', Integer, nullable=False, default=0),
)


def _row_to_token(row) -> ActionToken:
    return ActionToken(
        token_id=row['token_id'],
        principal_id=row['principal_id'],
        kind=ActionKind(row['kind']),
        issued_at=row['issued_at'],
        expires_at=row['expires_at'],
        consumed=bool(row['consumed']),
        version=row['version'],
    )


class SqlTokenStore(TokenStore):
    """
    Token store on any SQLAlchemy engine.

    Args:
        engine: SQLAlchemy engine shared by all service instances
        create_schema: Create the ``action_tokens`` table if missing
    """

    def __init__(self, engine: Engine, create_schema: bool = True):
        self._engine = engine
        if create_schema:
            try:
                metadata.create_all(engine)
            except SQLAlchemyError as e:
                raise StoreError(f"Could not create token table: {e}") from e

    def add(self, token: ActionToken) -> None:
        stmt = insert(action_tokens).values(
            token_id=token.token_id,
            principal_id=token.principal_id,
            kind=token.kind.value,
            issued_at=token.issued_at,
            expires_at=token.expires_at,
            consumed=token.consumed,
            version=token.version,
        )
        try:
            with self._engine.begin() as conn:
                conn.execute(stmt)
        except IntegrityError as e:
            raise StoreError("Token id already exists") from e
        except SQLAlchemyError as e:
            raise StoreError(f"Token insert failed: {e}") from e

    def get(self, token_id: str) -> Optional[ActionToken]:
        stmt = select(action_tokens).where(action_tokens.c.token_id == token_id)
        try:
            with self._engine.connect() as conn:
                row = conn.execute(stmt).mappings().first()
        except SQLAlchemyError as e:
            raise StoreError(f"Token lookup failed: {e}") from e
        return _row_to_token(row) if row is not None else None

    def consume(self, token_id: str, now: float) -> bool:
        stmt = (
            update(action_tokens)
            .where(action_tokens.c.token_id == token_id)
            .where(action_tokens.c.consumed.is_(False))
            .where(action_tokens.c.expires_at > now)
            .values(consumed=True, version=action_tokens.c.version + 1)
        )
        try:
            with self._engine.begin() as conn:
                result = conn.execute(stmt)
        except SQLAlchemyError as e:
            raise StoreError(f"Token consume failed: {e}") from e
        return result.rowcount == 1

    def purge_expired(self, now: float) -> int:
        stmt = delete(action_tokens).where(action_tokens.c.expires_at <= now)
        try:
            with self._engine.begin() as conn:
                result = conn.execute(stmt)
        except SQLAlchemyError as e:
            raise StoreError(f"Token purge failed: {e}") from e
        logger.debug("Purged %d expired tokens", result.rowcount)
        return result.rowcount
