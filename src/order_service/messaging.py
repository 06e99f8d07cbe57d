import asyncio
import logging
from aio_pika import connect_robust
from aio_pika.abc import AbstractRobustConnection, AbstractRobustChannel, AbstractQueue
from order_service.config import Settings

logger = logging.getLogger("orders.messaging")


class Broker:
    def __init__(self, settings: Settings):
        self.settings = settings
        self.connection: AbstractRobustConnection | None = None
        self.channel:    AbstractRobustChannel    | None = None

    async def init(self, retry_attempts: int = 5, retry_delay: int = 2) -> None:
        for attempt in range(1, retry_attempts + 1):
            try:
                logger.info(f"[Orders] Connecting to RabbitMQ (attempt {attempt}/{retry_attempts})")
                self.connection = await connect_robust(self.settings.rabbit_url)
                self.channel    = await self.connection.channel()
                await self.channel.set_qos(prefetch_count=self.settings.PAYMENT_STATUS_PREFETCH)
                await self.channel.declare_queue(self.settings.PAYMENT_STATUS_QUEUE, durable=True)

                logger.info("[Orders] RabbitMQ setup complete")
                return
            except Exception as e:
                logger.error(f"[Orders] RabbitMQ init failed: {e}")
                if attempt < retry_attempts:
                    await asyncio.sleep(retry_delay)
                else:
                    logger.critical("[Orders] Could not connect to RabbitMQ, giving up")
                    raise

    async def payment_status_queue(self) -> AbstractQueue:
        if self.channel is None:
            await self.init()
        return await self.channel.declare_queue(self.settings.PAYMENT_STATUS_QUEUE, durable=True)

    async def close(self) -> None:
        if self.connection:
            await self.connection.close()
            self.connection = None
            self.channel = None
            logger.info("[Orders] RabbitMQ connection closed")
