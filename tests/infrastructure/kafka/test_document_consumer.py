# Unit Tests for the document event Kafka consumer
import json

import pytest
from unittest.mock import AsyncMock, MagicMock, patch
from confluent_kafka import KafkaError, Message

from doc_tracking_service.app.service.commands.models import DocumentReceivedCommand, TrackingUpdateResult
from doc_tracking_service.app.service.exceptions import CrmApiError, CrmRateLimitError
from doc_tracking_service.infrastructure.kafka import consumer as kafka_consumer_module
from doc_tracking_service.infrastructure.kafka.schemas import DocumentReceivedMessage


def kafka_message(value: bytes, offset: int = 100):
    msg = MagicMock(spec=Message)
    msg.value.return_value = value
    msg.error.return_value = None
    msg.topic.return_value = "document_received_events"
    msg.partition.return_value = 0
    msg.offset.return_value = offset
    msg.headers.return_value = [("traceparent", b"00-0af7651916cd43dd8448eb211c80319c-b7ad6b7169203331-01")]
    return msg


@pytest.fixture
def collaborators():
    return MagicMock()


@pytest.fixture
def validated_message():
    return DocumentReceivedMessage(contact_id="c1", document_type="t4", drive_file_id="file-1", source="gmail")


# --- consume loop ---

@pytest.mark.asyncio
@patch('doc_tracking_service.infrastructure.kafka.consumer.Consumer')
@patch('doc_tracking_service.infrastructure.kafka.consumer.process_message', new_callable=AsyncMock)
async def test_consume_loop_processes_and_commits(mock_process_message, mock_consumer_cls, collaborators, tracking_config):
    mock_consumer = MagicMock()
    mock_consumer_cls.return_value = mock_consumer
    msg = kafka_message(b"{}")
    mock_consumer.poll.side_effect = [None, msg, KeyboardInterrupt("Stop test loop")]

    await kafka_consumer_module.consume_document_events(collaborators, tracking_config)

    mock_consumer.subscribe.assert_called_once_with([kafka_consumer_module.settings.KAFKA_DOCUMENT_TOPIC])
    mock_process_message.assert_awaited_once_with(msg, collaborators, tracking_config)
    mock_consumer.commit.assert_called_once_with(message=msg, asynchronous=False)
    mock_consumer.close.assert_called_once()

@pytest.mark.asyncio
@patch('doc_tracking_service.infrastructure.kafka.consumer.Consumer')
@patch('doc_tracking_service.infrastructure.kafka.consumer.process_message', new_callable=AsyncMock)
async def test_consume_loop_skips_partition_eof_and_commits_broker_errors(mock_process_message, mock_consumer_cls, collaborators, tracking_config):
    mock_consumer = MagicMock()
    mock_consumer_cls.return_value = mock_consumer

    eof = kafka_message(b"")
    eof.error.return_value = KafkaError(KafkaError._PARTITION_EOF)
    broken = kafka_message(b"", offset=101)
    broken.error.return_value = KafkaError(KafkaError._MSG_TIMED_OUT)
    mock_consumer.poll.side_effect = [eof, broken, KeyboardInterrupt("Stop test loop")]

    await kafka_consumer_module.consume_document_events(collaborators, tracking_config)

    mock_process_message.assert_not_called()
    mock_consumer.commit.assert_called_once_with(message=broken, asynchronous=False)


# --- process_message ---

@pytest.mark.asyncio
@patch('doc_tracking_service.infrastructure.kafka.consumer.dispatch_command', new_callable=AsyncMock)
@patch('doc_tracking_service.infrastructure.kafka.consumer.tracer')
async def test_process_message_dispatches_validated_event(mock_tracer, mock_dispatch, collaborators, tracking_config):
    mock_span = MagicMock()
    mock_tracer.start_as_current_span.return_value.__enter__.return_value = mock_span
    mock_dispatch.return_value = TrackingUpdateResult(updated=True, contact_id="c1")
    payload = {"contactId": "c1", "documentType": "t4", "driveFileId": "file-1", "source": "gmail"}

    await kafka_consumer_module.process_message(kafka_message(json.dumps(payload).encode("utf-8")), collaborators, tracking_config)

    mock_dispatch.assert_awaited_once()
    dispatched = mock_dispatch.call_args.args[0]
    assert isinstance(dispatched, DocumentReceivedMessage)
    assert dispatched.contact_id == "c1"
    assert mock_dispatch.call_args.kwargs["tracking_config"] is tracking_config
    mock_span.set_attribute.assert_any_call("document.type", "t4")

@pytest.mark.asyncio
@pytest.mark.parametrize("value", [b"not json", b'{"documentType": "t4"}', b"\xff\xfe"])
@patch('doc_tracking_service.infrastructure.kafka.consumer.dispatch_command', new_callable=AsyncMock)
@patch('doc_tracking_service.infrastructure.kafka.consumer.tracer')
async def test_process_message_drops_invalid_payloads(mock_tracer, mock_dispatch, value, collaborators, tracking_config):
    mock_span = MagicMock()
    mock_tracer.start_as_current_span.return_value.__enter__.return_value = mock_span

    await kafka_consumer_module.process_message(kafka_message(value), collaborators, tracking_config)

    mock_dispatch.assert_not_called()
    mock_span.record_exception.assert_called_once()


# --- dispatch_command ---

@pytest.mark.asyncio
@patch('doc_tracking_service.infrastructure.kafka.consumer.asyncio.sleep', new_callable=AsyncMock)
@patch('doc_tracking_service.infrastructure.kafka.consumer.handle_document_received', new_callable=AsyncMock)
async def test_dispatch_retries_fatal_errors(mock_handler, mock_sleep, validated_message, collaborators, tracking_config):
    expected = TrackingUpdateResult(updated=True, contact_id="c1", errors=["Audit note failed: boom"])
    mock_handler.side_effect = [CrmRateLimitError("slow down"), expected]

    result = await kafka_consumer_module.dispatch_command(validated_message, collaborators, tracking_config, max_attempts=3)

    assert result is expected
    assert mock_handler.await_count == 2
    mock_sleep.assert_awaited_once()
    command = mock_handler.call_args.args[0]
    assert isinstance(command, DocumentReceivedCommand)
    assert command.document_type == "t4"
    assert mock_handler.call_args.kwargs["deal_store"] is collaborators.deal_store

@pytest.mark.asyncio
@patch('doc_tracking_service.infrastructure.kafka.consumer.asyncio.sleep', new_callable=AsyncMock)
@patch('doc_tracking_service.infrastructure.kafka.consumer.handle_document_received', new_callable=AsyncMock)
async def test_dispatch_gives_up_after_max_attempts(mock_handler, mock_sleep, validated_message, collaborators, tracking_config):
    mock_handler.side_effect = CrmApiError("CRM API error: 500 Internal Server Error", 500)

    result = await kafka_consumer_module.dispatch_command(validated_message, collaborators, tracking_config, max_attempts=3)

    assert result is None
    assert mock_handler.await_count == 3
    assert mock_sleep.await_count == 2

@pytest.mark.asyncio
@patch('doc_tracking_service.infrastructure.kafka.consumer.handle_document_received', new_callable=AsyncMock)
async def test_dispatch_does_not_retry_resolution_outcomes(mock_handler, validated_message, collaborators, tracking_config):
    mock_handler.return_value = TrackingUpdateResult(updated=False, reason="ambiguous-deal", contact_id="c1")

    result = await kafka_consumer_module.dispatch_command(validated_message, collaborators, tracking_config, max_attempts=3)

    assert result.reason == "ambiguous-deal"
    assert mock_handler.await_count == 1
