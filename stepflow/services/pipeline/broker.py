"""
TaskIQ broker used to reach the remote executor.

Executor workers consume the ``stepflow.executor`` queue bound to the
``stepflow`` direct exchange. Stepflow itself only sends to it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from stepflow.settings import settings
from stepflow.utils.logger import logger

if TYPE_CHECKING:
    from taskiq import AsyncBroker

# Module-level broker reference, initialized lazily
_broker: AsyncBroker | None = None

SUBMIT_TASK = "stepflow.submit"
CANCEL_TASK = "stepflow.cancel"
RETRY_STEP_TASK = "stepflow.retry_step"


def extract_routing_key(queue_name: str) -> str:
    """Routing key of a queue: the suffix after the last dot.

    ``stepflow.executor`` binds to routing key ``executor``.
    """
    return queue_name.rsplit(".", maxsplit=1)[-1]


def create_broker(queue_name: str | None = None) -> AsyncBroker:
    """Create a TaskIQ broker bound to the executor queue.

    Args:
        queue_name: Queue to bind; defaults to ``settings.executor_queue``

    Returns:
        Configured AioPikaBroker instance.
    """
    from taskiq_aio_pika import AioPikaBroker

    from .middleware import ExecutorLoggingMiddleware

    queue_name = queue_name or settings.executor_queue
    routing_key = extract_routing_key(queue_name)

    broker_kwargs: dict[str, object] = {
        "url": settings.amqp_url,
        "exchange_name": settings.rabbitmq_exchange,
        "exchange_type": "direct",
        "queue_name": queue_name,
        "routing_key": routing_key,
        "declare_exchange": True,
        "declare_queues": True,
    }

    broker = AioPikaBroker(**broker_kwargs)  # type: ignore[arg-type]
    broker = broker.with_middlewares(ExecutorLoggingMiddleware())

    logger.debug(f"Created executor broker for queue '{queue_name}' (routing_key='{routing_key}')")
    return broker


def get_broker() -> AsyncBroker:
    """Get or create the executor broker singleton."""
    global _broker
    if _broker is None:
        _broker = create_broker()
    return _broker


def get_test_broker() -> AsyncBroker:
    """Create an InMemoryBroker for testing.

    Returns:
        InMemoryBroker with tasks executed in-place.
    """
    from taskiq import InMemoryBroker

    from .middleware import ExecutorLoggingMiddleware

    return InMemoryBroker().with_middlewares(ExecutorLoggingMiddleware())
