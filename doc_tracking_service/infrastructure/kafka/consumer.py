# Kafka Consumer: one document-received event at a time through the tracking engine
import asyncio
import json
import logging
import time
from typing import Optional

import httpx
from confluent_kafka import Consumer, KafkaError, KafkaException, Message
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.trace import SpanKind
from opentelemetry.trace.status import Status, StatusCode
from pydantic import ValidationError

from doc_tracking_service.app.config import TrackingConfig, build_tracking_config, settings, validate_config
from doc_tracking_service.app.dependencies.crm import CrmCollaborators, build_crm_collaborators
from doc_tracking_service.app.observability import (
    extract_trace_context_from_kafka_headers,
    setup_opentelemetry,
    tracer,
    tracking_update_latency_histogram,
)
from doc_tracking_service.app.service.commands.handlers import handle_document_received
from doc_tracking_service.app.service.commands.models import TrackingUpdateResult
from doc_tracking_service.infrastructure.kafka.schemas import DocumentReceivedMessage

logger = logging.getLogger(__name__)

RETRY_BACKOFF_SECONDS = 2.0


async def dispatch_command(
    validated_message: DocumentReceivedMessage,
    collaborators: CrmCollaborators,
    tracking_config: TrackingConfig,
    max_attempts: int,
) -> Optional[TrackingUpdateResult]:
    """
    Runs the tracking engine for one message. Fatal errors are retried as a whole
    event; after `max_attempts` the failure is logged and None is returned.
    """
    command = validated_message.to_command()
    start_time = time.monotonic()

    for attempt in range(1, max_attempts + 1):
        try:
            result = await handle_document_received(
                command,
                borrower_store=collaborators.borrower_store,
                deal_store=collaborators.deal_store,
                notes_client=collaborators.notes_client,
                tasks_client=collaborators.tasks_client,
                tracking_config=tracking_config,
            )
        except Exception as e:
            logger.error(
                f"Tracking attempt {attempt}/{max_attempts} failed for command {command.command_id}: {e}",
                exc_info=True,
            )
            if attempt < max_attempts:
                await asyncio.sleep(RETRY_BACKOFF_SECONDS * attempt)
            continue

        latency = time.monotonic() - start_time
        tracking_update_latency_histogram.record(latency, attributes={"updated": str(result.updated).lower()})
        if result.updated:
            logger.info(f"Command {command.command_id} updated tracking. Latency: {latency:.4f}s")
        else:
            logger.info(f"Command {command.command_id} not applied: {result.reason}.")
        for error in result.errors:
            logger.warning(f"Command {command.command_id} side effect error: {error}")
        return result

    logger.error(f"Command {command.command_id} abandoned after {max_attempts} attempts.")
    return None


async def consume_document_events(
    collaborators: CrmCollaborators,
    tracking_config: TrackingConfig,
):
    logger.info("Initializing Kafka consumer...")
    conf = {
        'bootstrap.servers': settings.KAFKA_BOOTSTRAP_SERVERS,
        'group.id': settings.KAFKA_CONSUMER_GROUP_ID,
        'auto.offset.reset': 'earliest',
        'enable.auto.commit': False
    }
    consumer = Consumer(conf)

    try:
        consumer.subscribe([settings.KAFKA_DOCUMENT_TOPIC])
        logger.info(f"Kafka consumer subscribed to {settings.KAFKA_DOCUMENT_TOPIC} with group {settings.KAFKA_CONSUMER_GROUP_ID}. Waiting for messages...")

        while True:
            msg = consumer.poll(timeout=1.0)
            if msg is None:
                continue

            if msg.error():
                if msg.error().code() == KafkaError._PARTITION_EOF:
                    continue
                logger.error(f"Kafka error: {msg.error()}. Committing offset for msg at {msg.topic()}/{msg.partition()}/{msg.offset()} and skipping.")
                consumer.commit(message=msg, asynchronous=False)
                continue

            await process_message(msg, collaborators, tracking_config)
            consumer.commit(message=msg, asynchronous=False)
    except KeyboardInterrupt:
        logger.info("Kafka consumer process interrupted by user.")
    except KafkaException as ke:
        logger.critical(f"Critical KafkaException in consumer: {ke}", exc_info=True)
    finally:
        logger.info("Closing Kafka consumer...")
        consumer.close()
        logger.info("Kafka consumer closed.")


async def process_message(msg: Message, collaborators: CrmCollaborators, tracking_config: TrackingConfig) -> None:
    parent_context = extract_trace_context_from_kafka_headers(msg.headers())
    with tracer.start_as_current_span("kafka_message_received", kind=SpanKind.CONSUMER, context=parent_context) as consume_span:
        msg_topic = msg.topic()
        msg_partition = msg.partition()
        msg_offset = msg.offset()

        consume_span.set_attribute("messaging.system", "kafka")
        consume_span.set_attribute("messaging.destination.name", msg_topic)
        consume_span.set_attribute("messaging.kafka.partition", msg_partition)
        consume_span.set_attribute("messaging.kafka.message.offset", msg_offset)

        try:
            message_data = json.loads(msg.value().decode('utf-8'))
            validated_message = DocumentReceivedMessage.model_validate(message_data)
        except (json.JSONDecodeError, UnicodeDecodeError, ValidationError) as e:
            # Poison pill: cannot succeed on retry, so it is logged and committed
            logger.error(f"Invalid message at {msg_topic}/{msg_partition}/{msg_offset}: {type(e).__name__}")
            consume_span.record_exception(e)
            consume_span.set_status(Status(StatusCode.ERROR, description=f"Invalid message: {type(e).__name__}"))
            return

        consume_span.set_attribute("document.type", validated_message.document_type)
        logger.info(f"Consumed document event from {msg_topic}/{msg_partition}/{msg_offset}")

        result = await dispatch_command(
            validated_message,
            collaborators=collaborators,
            tracking_config=tracking_config,
            max_attempts=max(1, settings.TRACKING_MAX_ATTEMPTS),
        )
        if result is None:
            consume_span.set_status(Status(StatusCode.ERROR, description="Tracking update abandoned"))
        else:
            consume_span.set_status(Status(StatusCode.OK))


async def run_consumer():
    validate_config(settings)
    async with httpx.AsyncClient(timeout=settings.DEFAULT_HTTP_TIMEOUT) as http_client:
        HTTPXClientInstrumentor.instrument_client(http_client)
        collaborators = build_crm_collaborators(http_client, settings)
        await consume_document_events(collaborators, build_tracking_config(settings))


if __name__ == '__main__':
    setup_opentelemetry(service_name=settings.SERVICE_NAME_CONSUMER)
    logger.info("Starting document tracking consumer...")
    asyncio.run(run_consumer())
