# Tracking state model and the two CRM encodings it is stored in
#
# Borrower (contact) records keep opaque values per field id; their missing and
# received lists are JSON arrays, with newline-delimited text accepted for
# records written by older releases. Deal (opportunity) records keep typed
# string/number values; missing docs are "Name [STAGE]" lines and received docs
# are plain name lines.
#
# Decoding never raises on malformed content.
import datetime
import json
import logging
import math
import re
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Iterable, List, Optional

from pydantic import BaseModel, Field

from doc_tracking_service.app.config import TrackingFieldIds
from doc_tracking_service.app.service.interfaces.crm_clients import (
    BorrowerRecord,
    CustomFieldUpdate,
    Deal,
)
from doc_tracking_service.app.service.tracking.status import DocStatus, compute_doc_status

logger = logging.getLogger(__name__)


class Stage(str, Enum):
    PRE = "PRE"
    FULL = "FULL"
    LATER = "LATER"
    CONDITIONAL = "CONDITIONAL"


class MissingDocEntry(BaseModel):
    name: str
    stage: Stage = Stage.PRE


class TrackingState(BaseModel):
    missing_docs: List[MissingDocEntry] = Field(default_factory=list)
    received_docs: List[str] = Field(default_factory=list)
    pre_docs_total: int = 0
    pre_docs_received: int = 0
    full_docs_total: int = 0
    full_docs_received: int = 0
    doc_status: DocStatus = DocStatus.ALL_COMPLETE

    def mark_received(self, entry: MissingDocEntry) -> "TrackingState":
        """
        Returns the state after `entry` has been received: the entry leaves the
        missing list, its name joins the received list and the PRE/FULL counter
        for its stage moves up. LATER and CONDITIONAL entries move lists only.
        """
        pre_received = self.pre_docs_received
        full_received = self.full_docs_received
        if entry.stage == Stage.PRE:
            pre_received = _bump(pre_received, self.pre_docs_total)
        elif entry.stage == Stage.FULL:
            full_received = _bump(full_received, self.full_docs_total)

        received = list(self.received_docs)
        if entry.name not in received:
            received.append(entry.name)

        return self.model_copy(update={
            "missing_docs": [doc for doc in self.missing_docs if doc.name != entry.name],
            "received_docs": received,
            "pre_docs_received": pre_received,
            "full_docs_received": full_received,
            "doc_status": compute_doc_status(
                self.pre_docs_total, pre_received, self.full_docs_total, full_received
            ),
        })


def _bump(received: int, total: int) -> int:
    # received never exceeds total and never decreases
    return max(received, min(received + 1, total))


_STAGE_SUFFIX = re.compile(r"^(?P<name>.*?)\s*\[(?P<stage>PRE|FULL|LATER|CONDITIONAL)\]\s*$", re.IGNORECASE)


def parse_missing_line(line: str) -> MissingDocEntry:
    match = _STAGE_SUFFIX.match(line)
    if match and match.group("name"):
        return MissingDocEntry(name=match.group("name"), stage=Stage(match.group("stage").upper()))
    return MissingDocEntry(name=line.strip(), stage=Stage.PRE)


def _load_json_list(raw: Any) -> Optional[list]:
    if isinstance(raw, list):
        return raw
    if not isinstance(raw, str):
        return None
    try:
        loaded = json.loads(raw)
    except ValueError:
        return None
    return loaded if isinstance(loaded, list) else None


def _split_lines(raw: Any) -> List[str]:
    if raw is None:
        return []
    return [line.strip() for line in str(raw).splitlines() if line.strip()]


def parse_missing_docs(raw: Any) -> List[MissingDocEntry]:
    """JSON array first (objects or strings), otherwise one entry per non-empty line."""
    items = _load_json_list(raw)
    entries: List[MissingDocEntry] = []
    if items is None:
        entries = [parse_missing_line(line) for line in _split_lines(raw)]
    else:
        for item in items:
            if isinstance(item, dict) and item.get("name"):
                stage = str(item.get("stage", "")).upper()
                entries.append(MissingDocEntry(
                    name=str(item["name"]).strip(),
                    stage=Stage(stage) if stage in Stage.__members__ else Stage.PRE,
                ))
            elif isinstance(item, str) and item.strip():
                entries.append(parse_missing_line(item))
            elif item is not None and not isinstance(item, (dict, str)):
                entries.append(MissingDocEntry(name=str(item)))

    unique: List[MissingDocEntry] = []
    seen = set()
    for entry in entries:
        if entry.name and entry.name not in seen:
            seen.add(entry.name)
            unique.append(entry)
    return unique


def parse_received_docs(raw: Any) -> List[str]:
    items = _load_json_list(raw)
    if items is None:
        names = _split_lines(raw)
    else:
        names = [str(item).strip() for item in items if item is not None and str(item).strip()]
    return list(dict.fromkeys(names))


def parse_count(raw: Any) -> int:
    """Numeric field value; missing, null, non-numeric and negative values read as 0."""
    if isinstance(raw, bool) or raw is None:
        return 0
    if isinstance(raw, (int, float)):
        value = raw
    else:
        try:
            value = float(str(raw).strip())
        except ValueError:
            return 0
    if not math.isfinite(value) or value < 0:
        return 0
    return int(value)


def format_missing_docs_text(entries: Iterable[MissingDocEntry]) -> str:
    return "\n".join(f"{entry.name} [{entry.stage.value}]" for entry in entries)


def format_received_docs_text(names: Iterable[str]) -> str:
    return "\n".join(names)


class TrackingCodec(ABC):
    """Reads and writes a TrackingState through one record kind's field encoding."""

    def __init__(self, field_ids: TrackingFieldIds):
        self.field_ids = field_ids

    @abstractmethod
    def read_value(self, record: Any, field_id: str) -> Any:
        pass

    @abstractmethod
    def format_missing(self, entries: List[MissingDocEntry]) -> str:
        pass

    @abstractmethod
    def format_received(self, names: List[str]) -> str:
        pass

    def decode(self, record: Any) -> TrackingState:
        ids = self.field_ids
        state = TrackingState(
            missing_docs=parse_missing_docs(self.read_value(record, ids.missing_docs)),
            received_docs=parse_received_docs(self.read_value(record, ids.received_docs)),
            pre_docs_total=parse_count(self.read_value(record, ids.pre_docs_total)),
            pre_docs_received=parse_count(self.read_value(record, ids.pre_docs_received)),
            full_docs_total=parse_count(self.read_value(record, ids.full_docs_total)),
            full_docs_received=parse_count(self.read_value(record, ids.full_docs_received)),
        )
        raw_status = self.read_value(record, ids.doc_status)
        try:
            state.doc_status = DocStatus(raw_status)
        except (ValueError, TypeError):
            state.doc_status = compute_doc_status(
                state.pre_docs_total, state.pre_docs_received,
                state.full_docs_total, state.full_docs_received,
            )
        return state

    def encode(self, state: TrackingState, received_on: Optional[datetime.date] = None) -> List[CustomFieldUpdate]:
        """Field updates for everything an event can change. Unconfigured field ids are skipped."""
        ids = self.field_ids
        values = [
            (ids.missing_docs, self.format_missing(state.missing_docs)),
            (ids.received_docs, self.format_received(state.received_docs)),
            (ids.pre_docs_received, state.pre_docs_received),
            (ids.full_docs_received, state.full_docs_received),
            (ids.doc_status, state.doc_status.value),
        ]
        if received_on is not None:
            values.append((ids.last_doc_received, received_on.isoformat()))
        updates = [CustomFieldUpdate(id=field_id, field_value=value) for field_id, value in values if field_id]
        if len(updates) < len(values):
            logger.debug(f"{type(self).__name__}: skipped {len(values) - len(updates)} unconfigured field(s) on encode.")
        return updates


class BorrowerRecordCodec(TrackingCodec):
    def read_value(self, record: BorrowerRecord, field_id: str) -> Any:
        return record.field_value(field_id) if field_id else None

    def format_missing(self, entries: List[MissingDocEntry]) -> str:
        return json.dumps(
            [{"name": entry.name, "stage": entry.stage.value} for entry in entries],
            separators=(",", ":"),
        )

    def format_received(self, names: List[str]) -> str:
        return json.dumps(list(names), separators=(",", ":"))


class DealRecordCodec(TrackingCodec):
    def read_value(self, record: Deal, field_id: str) -> Any:
        return record.field_value(field_id) if field_id else None

    def format_missing(self, entries: List[MissingDocEntry]) -> str:
        return format_missing_docs_text(entries)

    def format_received(self, names: List[str]) -> str:
        return format_received_docs_text(names)
