from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from tripledger.config import Settings, get_settings
from tripledger.db.repo import Database, TripLedgerRepository
from tripledger.logging import configure_logging, get_logger
from tripledger.services.ledger import TripLedgerService


@asynccontextmanager
async def ledger_session(settings: Optional[Settings] = None) -> AsyncIterator[TripLedgerService]:
    """Connect to the database and hand out a ready ledger service."""
    settings = settings or get_settings()
    configure_logging(settings.log_level)
    log = get_logger(__name__)

    db = Database(settings.database_url)
    await db.connect()
    log.info("ledger.start", currency=settings.currency, tz=settings.tz)
    try:
        yield TripLedgerService.from_settings(TripLedgerRepository(db), settings)
    finally:
        await db.close()
        log.info("ledger.stop")
