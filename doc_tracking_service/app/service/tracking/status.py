# Aggregate document collection status
from enum import Enum


class DocStatus(str, Enum):
    NOT_STARTED = "Not Started"
    IN_PROGRESS = "In Progress"
    PRE_COMPLETE = "PRE Complete"
    ALL_COMPLETE = "All Complete"


def compute_doc_status(pre_total: int, pre_received: int, full_total: int, full_received: int) -> DocStatus:
    """
    Turns the four tracking counters into the CRM picklist label.

    Precedence: everything received (including an empty checklist) wins over
    PRE satisfied, which wins over nothing received yet.
    """
    if pre_received >= pre_total and full_received >= full_total:
        return DocStatus.ALL_COMPLETE
    if pre_received >= pre_total:
        return DocStatus.PRE_COMPLETE
    if pre_received == 0 and full_received == 0:
        return DocStatus.NOT_STARTED
    return DocStatus.IN_PROGRESS
