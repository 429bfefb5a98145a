"""Script to seed demo data into the database."""

from decimal import Decimal
import asyncio
import logging

from sqlalchemy import delete

from components.core.config import get_settings
from components.core.init_db import db_manager, get_db
from components.core.logging_config import configure_logging
from components.remittance.models import IncomingRemittance, OutgoingRemittance, Settlement
from components.remittance.repository import LedgerStore
from components.remittance import schemas as remittance_schemas
from components.settlement.executor import SettlementExecutor
from components.settlement.matcher import SettlementStrategy
from components.transaction.models import Payment, Transaction
from components.transaction.repository import TransactionRepository
from components.transaction import schemas as transaction_schemas

logger = logging.getLogger("seed_data")


async def seed_data():
    """Seed demo remittances, settlements and transactions."""
    await db_manager.create_tables()
    async for db in get_db():
        # Clear existing data. Bulk deletes skip the ORM listeners that keep
        # settlements append-only; only a reseed may do this.
        await db.execute(delete(Settlement))
        await db.execute(delete(OutgoingRemittance))
        await db.execute(delete(IncomingRemittance))
        await db.execute(delete(Payment))
        await db.execute(delete(Transaction))
        await db.commit()

        store = LedgerStore(db)
        outgoing = [
            remittance_schemas.OutgoingRemittanceCreate(
                sender_name="Reza Ahmadi",
                recipient_name="Maryam Ahmadi",
                recipient_bank="Bank Melli",
                amount_irr=Decimal("1000000"),
                buy_rate_cad=Decimal("30000"),
                fee_cad=Decimal("5"),
            ),
            remittance_schemas.OutgoingRemittanceCreate(
                sender_name="Sara Karimi",
                recipient_name="Ali Karimi",
                recipient_bank="Bank Mellat",
                amount_irr=Decimal("2500000"),
                buy_rate_cad=Decimal("30500"),
            ),
            remittance_schemas.OutgoingRemittanceCreate(
                sender_name="Nima Rostami",
                recipient_name="Leila Rostami",
                amount_irr=Decimal("750000"),
                buy_rate_cad=Decimal("29800"),
            ),
        ]
        for remittance in outgoing:
            await store.create_outgoing(remittance)

        incoming = await store.create_incoming(
            remittance_schemas.IncomingRemittanceCreate(
                sender_name="Hossein Tehrani",
                recipient_name="Parisa Tehrani",
                amount_irr=Decimal("1600000"),
                sell_rate_cad=Decimal("31000"),
                fee_cad=Decimal("3"),
            )
        )
        await store.create_incoming(
            remittance_schemas.IncomingRemittanceCreate(
                sender_name="Kaveh Jafari",
                recipient_name="Shirin Jafari",
                amount_irr=Decimal("900000"),
                sell_rate_cad=Decimal("31200"),
            )
        )

        result = await SettlementExecutor(db).auto_settle(incoming.id, strategy=SettlementStrategy.FIFO)
        logger.info(
            "seeded settlements",
            extra={"settled_count": result.settled_count, "total_profit_cad": result.total_profit},
        )

        transactions = TransactionRepository(db)
        clients = [
            ("Golden Imports", Decimal("1000.00"), "CAD"),
            ("Farhad Rahimi", Decimal("2500.00"), "CAD"),
            ("Tehran Textiles", Decimal("800.00"), "USD"),
        ]
        for client_name, total, currency in clients:
            transaction = await transactions.create(
                transaction_schemas.TransactionCreate(
                    client_name=client_name,
                    total_received=total,
                    received_currency=currency,
                )
            )
            await transactions.add_payment(
                transaction.id,
                transaction_schemas.PaymentCreate(amount=total / 4, payment_method="CASH"),
            )

if __name__ == "__main__":
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL, json_output=settings.LOG_JSON)
    asyncio.run(seed_data())
