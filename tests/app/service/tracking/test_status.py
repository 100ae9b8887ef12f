import pytest

from doc_tracking_service.app.service.tracking.status import DocStatus, compute_doc_status


@pytest.mark.parametrize(
    "pre_total, pre_received, full_total, full_received, expected",
    [
        (0, 0, 0, 0, DocStatus.ALL_COMPLETE), # empty checklist
        (3, 3, 2, 2, DocStatus.ALL_COMPLETE),
        (3, 3, 2, 0, DocStatus.PRE_COMPLETE),
        (0, 0, 2, 0, DocStatus.PRE_COMPLETE), # no PRE items means PRE is satisfied
        (3, 0, 2, 0, DocStatus.NOT_STARTED),
        (3, 1, 2, 0, DocStatus.IN_PROGRESS),
        (3, 0, 2, 1, DocStatus.IN_PROGRESS),
        (3, 2, 2, 2, DocStatus.IN_PROGRESS),
    ],
)
def test_compute_doc_status_precedence(pre_total, pre_received, full_total, full_received, expected):
    assert compute_doc_status(pre_total, pre_received, full_total, full_received) == expected


def test_doc_status_values_are_crm_picklist_labels():
    assert [s.value for s in DocStatus] == ["Not Started", "In Progress", "PRE Complete", "All Complete"]
