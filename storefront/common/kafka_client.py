import asyncio
import json
import logging
import time
from typing import Any, Dict, Optional

from aiokafka import AIOKafkaProducer

from .config import settings

_logger = logging.getLogger(__name__)

_producer: Optional[AIOKafkaProducer] = None
_producer_lock = asyncio.Lock()
# monotonic deadline before which publishing is skipped after a failure
_paused_until = 0.0


async def get_producer(attempts: int = 1, start_timeout: Optional[float] = None) -> AIOKafkaProducer:
    global _producer
    if _producer is None:
        async with _producer_lock:
            if _producer is None:
                backoff = 1.0
                last_exc: Optional[BaseException] = None
                for attempt in range(attempts):
                    producer = AIOKafkaProducer(bootstrap_servers=settings.KAFKA_BOOTSTRAP_SERVERS)
                    try:
                        await asyncio.wait_for(producer.start(), timeout=start_timeout)
                        _producer = producer
                        break
                    except Exception as e:
                        last_exc = e
                        await producer.stop()
                        if attempt + 1 < attempts:
                            await asyncio.sleep(backoff)
                            backoff = min(backoff * 2, 8.0)
                if _producer is None:
                    raise last_exc or RuntimeError("Kafka producer start failed")
    return _producer


async def close_producer() -> None:
    global _producer, _paused_until
    _paused_until = 0.0
    if _producer is not None:
        await _producer.stop()
        _producer = None


async def publish_event(topic: str, payload: Dict[str, Any], key: Optional[str] = None) -> bool:
    """Best-effort publish. Returns False (and logs) instead of raising.

    Runs in the request path, so the broker gets one bounded start attempt and
    one bounded send. After a failure publishing pauses for
    ``KAFKA_RETRY_COOLDOWN`` seconds.
    """
    global _paused_until
    if not settings.KAFKA_ENABLED:
        return False
    if time.monotonic() < _paused_until:
        return False
    try:
        producer = await get_producer(start_timeout=settings.KAFKA_START_TIMEOUT)
        await asyncio.wait_for(
            producer.send_and_wait(
                topic,
                json.dumps(payload).encode("utf-8"),
                key=key.encode("utf-8") if key else None,
            ),
            timeout=settings.KAFKA_SEND_TIMEOUT,
        )
        return True
    except Exception as e:
        _paused_until = time.monotonic() + settings.KAFKA_RETRY_COOLDOWN
        _logger.warning(
            "Event publish failed, pausing for %ss | topic=%s event=%s err=%r",
            settings.KAFKA_RETRY_COOLDOWN, topic, payload.get("event"), e,
        )
        return False
