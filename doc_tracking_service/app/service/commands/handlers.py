# Command Handler: document received -> tracking state synchronization
#
# One event is reconciled against the borrower's checklist state:
#   resolve contact -> resolve targets (deals or borrower fallback) -> read and
#   match every target -> write each target -> one-shot side effects.
#
# All reads happen before the first write, so an upstream read failure aborts
# the event with nothing written. Side effects (stage advance, readiness task,
# audit note) are best-effort: failures are collected in `errors` and never
# undo the tracking writes.
#
# PII: log lines carry ids, type codes and status labels only.
import logging
from typing import List, Optional, Union

from opentelemetry import trace

from doc_tracking_service.app.config import TrackingConfig
from doc_tracking_service.app.observability import (
    side_effect_failures_counter,
    tracer,
    tracking_events_processed_counter,
)
from doc_tracking_service.app.service.commands.models import (
    DocumentReceivedCommand,
    SkipReason,
    TrackingTargetKind,
    TrackingUpdateResult,
)
from doc_tracking_service.app.service.exceptions import ConfigurationError
from doc_tracking_service.app.service.interfaces.crm_clients import (
    AbstractBorrowerStore,
    AbstractDealStore,
    AbstractNotesClient,
    AbstractTasksClient,
    AuditNoteInput,
    BorrowerRecord,
    Deal,
)
from doc_tracking_service.app.service.tracking.codec import (
    BorrowerRecordCodec,
    DealRecordCodec,
    MissingDocEntry,
    TrackingCodec,
    TrackingState,
)
from doc_tracking_service.app.service.tracking.matcher import find_matching_checklist_doc
from doc_tracking_service.app.service.tracking.resolver import resolve_contact_id, resolve_deal_scope
from doc_tracking_service.app.service.tracking.status import DocStatus, compute_doc_status

logger = logging.getLogger(__name__)


class TrackingTarget:
    """A record whose tracking fields an event updates, with the codec for its encoding."""

    def __init__(self, kind: TrackingTargetKind, record: Union[Deal, BorrowerRecord], codec: TrackingCodec):
        self.kind = kind
        self.record = record
        self.codec = codec

    @property
    def record_id(self) -> str:
        return self.record.id


class TargetUpdate:
    def __init__(self, target: TrackingTarget, entry: MissingDocEntry, before: TrackingState, after: TrackingState):
        self.target = target
        self.entry = entry
        self.before = before
        self.after = after

    @property
    def newly_pre_complete(self) -> bool:
        previous = compute_doc_status(
            self.before.pre_docs_total, self.before.pre_docs_received,
            self.before.full_docs_total, self.before.full_docs_received,
        )
        return self.after.doc_status == DocStatus.PRE_COMPLETE and previous != DocStatus.PRE_COMPLETE


class EventEffects:
    """One-shot side effects owed by a single event, however many targets it fanned out to."""

    def __init__(self):
        self.pre_readiness_due = False


def _error_message(prefix: str, error: Exception) -> str:
    return f"{prefix}: {error}"


def _skip(reason: SkipReason, span: trace.Span, contact_id: Optional[str] = None) -> TrackingUpdateResult:
    logger.info(f"Document tracking skipped: {reason}.")
    span.set_attribute("tracking.outcome", reason)
    tracking_events_processed_counter.add(1, {"outcome": reason})
    return TrackingUpdateResult(updated=False, reason=reason, contact_id=contact_id)


async def _load_targets(
    contact: BorrowerRecord,
    deals: List[Deal],
    deal_store: AbstractDealStore,
    tracking_config: TrackingConfig,
) -> List[TrackingTarget]:
    if not deals:
        return [TrackingTarget("contact", contact, BorrowerRecordCodec(tracking_config.borrower_field_ids))]

    deal_codec = DealRecordCodec(tracking_config.deal_field_ids)
    targets = []
    for deal in deals:
        # Search results can carry partial custom fields; always read the full record
        fresh = await deal_store.get(deal.id)
        targets.append(TrackingTarget("opportunity", fresh, deal_codec))
    return targets


def _plan_updates(document_type: str, targets: List[TrackingTarget]) -> List[TargetUpdate]:
    updates = []
    for target in targets:
        before = target.codec.decode(target.record)
        entry = find_matching_checklist_doc(document_type, before.missing_docs, before.received_docs)
        if entry is None:
            logger.info(f"No outstanding checklist entry for '{document_type}' on {target.kind} {target.record_id}.")
            continue
        updates.append(TargetUpdate(target, entry, before, before.mark_received(entry)))
    return updates


async def _write_update(
    update: TargetUpdate,
    contact: BorrowerRecord,
    command: DocumentReceivedCommand,
    borrower_store: AbstractBorrowerStore,
    deal_store: AbstractDealStore,
) -> None:
    target = update.target
    fields = target.codec.encode(update.after, received_on=command.received_at.date())
    if target.kind == "opportunity":
        await deal_store.update_fields(target.record_id, fields)
    else:
        await borrower_store.upsert(contact.email, contact.first_name, contact.last_name, fields)
    logger.info(
        f"Tracking updated on {target.kind} {target.record_id}: "
        f"'{update.entry.name}' [{update.entry.stage.value}] received, status {update.after.doc_status.value}."
    )


async def handle_document_received(
    command: DocumentReceivedCommand,
    borrower_store: AbstractBorrowerStore,
    deal_store: AbstractDealStore,
    notes_client: AbstractNotesClient,
    tasks_client: AbstractTasksClient,
    tracking_config: TrackingConfig,
) -> TrackingUpdateResult:
    with tracer.start_as_current_span("handle_document_received") as span:
        span.set_attribute("command.name", "DocumentReceivedCommand")
        span.set_attribute("command.id", command.command_id)
        span.set_attribute("document.type", command.document_type)
        span.set_attribute("document.source", command.source)
        logger.info(f"Handling DocumentReceivedCommand {command.command_id}: type '{command.document_type}' from {command.source}.")

        errors: List[str] = []

        # 1. Contact
        contact_id = await resolve_contact_id(command, borrower_store)
        if not contact_id:
            return _skip("no-contact", span)
        span.set_attribute("contact.id", contact_id)
        contact = await borrower_store.get(contact_id)

        # 2. Targets
        scope = await resolve_deal_scope(
            contact_id,
            command.document_type,
            command.finmo_application_id,
            deal_store,
            tracking_config.pipeline_id,
            tracking_config.application_field_id,
        )
        if scope.ambiguous:
            return _skip("ambiguous-deal", span, contact_id)
        targets = await _load_targets(contact, scope.deals, deal_store, tracking_config)
        span.add_event("TargetsResolved", {"targets.count": len(targets), "targets.kind": targets[0].kind})

        # 3. Match against every target's own checklist
        updates = _plan_updates(command.document_type, targets)
        if not updates:
            return _skip("no-match-in-checklist", span, contact_id)

        # 4. Write each target; a failed write does not stop the others
        written: List[TargetUpdate] = []
        write_failures: List[Exception] = []
        effects = EventEffects()
        for update in updates:
            try:
                await _write_update(update, contact, command, borrower_store, deal_store)
            except Exception as e:
                logger.error(f"Tracking write failed for {update.target.kind} {update.target.record_id}: {e}", exc_info=True)
                span.record_exception(e)
                errors.append(_error_message(f"Tracking update failed for {update.target.record_id}", e))
                write_failures.append(e)
                continue
            written.append(update)
            if update.newly_pre_complete:
                effects.pre_readiness_due = True

        if not written:
            # Nothing reached the CRM; surface the failure so the event can be retried whole
            raise write_failures[0]

        # 5. Stage advance, per deal that is now complete
        for update in written:
            if update.target.kind != "opportunity" or update.after.doc_status != DocStatus.ALL_COMPLETE:
                continue
            try:
                if not tracking_config.all_docs_received_stage_id:
                    raise ConfigurationError("All Docs Received stage ID not configured")
                await deal_store.update_stage(update.target.record_id, tracking_config.all_docs_received_stage_id)
                span.add_event("PipelineAdvanced", {"opportunity.id": update.target.record_id})
            except Exception as e:
                logger.warning(f"Pipeline advance failed for opportunity {update.target.record_id}: {e}")
                side_effect_failures_counter.add(1, {"effect": "pipeline_advance"})
                errors.append(_error_message("Pipeline advance failed", e))

        # 6. Readiness task, once per event
        if effects.pre_readiness_due:
            try:
                task_id = await tasks_client.create_readiness_task(contact_id, contact.full_name)
                span.add_event("PreReadinessTaskCreated", {"task.id": task_id})
            except Exception as e:
                logger.warning(f"PRE readiness task failed for contact {contact_id}: {e}")
                side_effect_failures_counter.add(1, {"effect": "readiness_task"})
                errors.append(_error_message("PRE readiness task failed", e))

        # 7. Audit note, once per event
        first = written[0]
        note_id: Optional[str] = None
        try:
            note_id = await notes_client.create_audit_note(
                contact_id,
                AuditNoteInput(
                    document_type=first.entry.name,
                    source=command.source,
                    drive_file_id=command.drive_file_id,
                ),
            )
        except Exception as e:
            logger.warning(f"Audit note failed for contact {contact_id}: {e}")
            side_effect_failures_counter.add(1, {"effect": "audit_note"})
            errors.append(_error_message("Audit note failed", e))

        # 8. Result
        deals_written = [update for update in written if update.target.kind == "opportunity"]
        result = TrackingUpdateResult(
            updated=True,
            contact_id=contact_id,
            opportunity_id=first.target.record_id if first.target.kind == "opportunity" else None,
            tracking_target=first.target.kind,
            cross_deal_updates=len(deals_written) if len(deals_written) > 1 else None,
            new_status=first.after.doc_status.value,
            note_id=note_id,
            errors=errors,
        )

        span.set_attribute("tracking.outcome", "updated")
        span.set_attribute("tracking.target", first.target.kind)
        span.set_attribute("tracking.targets_written", len(written))
        tracking_events_processed_counter.add(1, {"outcome": "updated", "target": first.target.kind})
        logger.info(
            f"DocumentReceivedCommand {command.command_id} applied to {len(written)} {first.target.kind} target(s); "
            f"status {result.new_status}; {len(errors)} non-fatal error(s)."
        )
        return result
