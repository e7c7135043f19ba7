"""
Storefront domain events (order.paid, order.delivered).

Events are fire-and-forget notifications for downstream consumers such as
analytics or fulfilment. The order tables stay the source of truth.
"""
import os
import json
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict

logger = logging.getLogger(__name__)

EXCHANGE = os.getenv("EVENT_EXCHANGE", "storefront.events")

_sqs_client = None


def envelope(event_type: str, payload: Dict[str, Any]) -> str:
    return json.dumps(
        {
            "type": event_type,
            "occurred_at": datetime.now(timezone.utc).isoformat(),
            "payload": payload,
        },
        default=str,
    )


def _to_rabbitmq(event_type: str, body: str) -> None:
    import pika

    url = os.getenv("RABBITMQ_URL")
    if not url:
        raise RuntimeError("RABBITMQ_URL is not set")

    params = pika.URLParameters(url)
    params.heartbeat = int(os.getenv("RABBITMQ_HEARTBEAT", "30"))
    params.blocked_connection_timeout = float(os.getenv("RABBITMQ_BLOCKED_TIMEOUT", "5"))

    conn = pika.BlockingConnection(params)
    try:
        channel = conn.channel()
        channel.exchange_declare(exchange=EXCHANGE, exchange_type="topic", durable=True)
        channel.basic_publish(
            exchange=EXCHANGE,
            routing_key=event_type,
            body=body.encode("utf-8"),
            properties=pika.BasicProperties(delivery_mode=2, content_type="application/json"),
        )
    finally:
        if conn.is_open:
            conn.close()


def _to_sqs(event_type: str, body: str) -> None:
    global _sqs_client
    import boto3

    queue_url = os.getenv("SQS_QUEUE_URL")
    if not queue_url:
        raise RuntimeError("SQS_QUEUE_URL is not set")

    if _sqs_client is None:
        _sqs_client = boto3.client("sqs")

    _sqs_client.send_message(
        QueueUrl=queue_url,
        MessageBody=body,
        MessageAttributes={"type": {"DataType": "String", "StringValue": event_type}},
    )


def _dropped(event_type: str, body: str) -> None:
    logger.debug("Event backend disabled, dropping %s", event_type)


BACKENDS: Dict[str, Callable[[str, str], None]] = {
    "rabbitmq": _to_rabbitmq,
    "sqs": _to_sqs,
    "none": _dropped,
}


def publish(event_type: str, payload: Dict[str, Any], *, safe: bool = False) -> None:
    """
    Send `payload` to the backend named by EVENT_BACKEND (rabbitmq | sqs | none).

    With safe=True a failure is logged and swallowed; callers use it once the
    order change the event describes is already committed.
    """
    name = os.getenv("EVENT_BACKEND", "rabbitmq").strip().lower()
    try:
        backend = BACKENDS.get(name)
        if backend is None:
            raise RuntimeError(f"Unsupported EVENT_BACKEND={name}")
        backend(event_type, envelope(event_type, payload))
    except Exception:
        if not safe:
            raise
        logger.exception("Event publish failed type=%s", event_type)
