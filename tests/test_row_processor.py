"""Tests for per-row orchestration."""

import pytest

from conftest import FakeElement
from qhslab_claims import locators
from qhslab_claims.errors import SessionLost
from qhslab_claims.models import InputRow, PatientResult, PatientStatus, RunMode
from qhslab_claims.resolver import ElementResolver
from qhslab_claims.row_processor import RowProcessor
from qhslab_claims.session import SessionState

READY = SessionState(
    logged_in=True,
    listing_navigated=True,
    claims_opened=True,
    entity_source_filtered=True,
    assessment_filtered=True,
)

ROW = InputRow(row_number=4, mrn="1001", custom_id="C-1", raw_billing_classification="QHSLAB")


class ReadySession:
    def __init__(self, state=READY):
        self.state = state
        self.calls = 0

    def ensure_ready(self, state):
        self.calls += 1
        return self.state


class RecordingPatients:
    def __init__(self, lose_session_at=None):
        self.calls = []
        self.lose_session_at = lose_session_at

    def process(self, row, index, total):
        if index == self.lose_session_at:
            raise SessionLost("browser went away")
        self.calls.append((row.row_number, index, total))
        return PatientResult(
            row_number=row.row_number,
            patient_index=index + 1,
            total_patients=total,
            status=PatientStatus.BILLED,
            mrn=row.mrn,
        )


def _add_entries(driver, count):
    for i in range(count):
        driver.add(locators.LISTING_ROWS, FakeElement(f"entry{i}", text=f"1001 IntellyChart {i}"))


@pytest.fixture
def filters(driver):
    return {
        "custom_id": driver.add(locators.CUSTOM_ID_FILTER[0].locator, FakeElement("custom id", header="Custom ID")),
        "mrn": driver.add(locators.MRN_FILTER[0].locator, FakeElement("mrn", header="Patient MRN")),
    }


def _processor(driver, config, session=None, patients=None):
    return RowProcessor(
        config,
        resolver=ElementResolver(driver, 0),
        session=session or ReadySession(),
        patients=patients or RecordingPatients(),
    )


class TestDryRun:
    def test_no_driver_calls_and_dry_run_status(self, config):
        config.mode = RunMode.DRY_RUN
        processor = RowProcessor.build(config, None)

        results, state = processor.process(ROW, SessionState())

        assert len(results) == 1
        assert results[0].status is PatientStatus.DRY_RUN_SKIPPED
        assert results[0].notes == "Dry run mode - no automation executed"
        assert (results[0].patient_index, results[0].total_patients) == (0, 0)
        assert state == SessionState()


class TestRowProcessing:
    def test_no_matches_is_skipped(self, driver, config, filters):
        patients = RecordingPatients()
        results, _ = _processor(driver, config, patients=patients).process(ROW, READY)

        assert [r.status for r in results] == [PatientStatus.SKIPPED]
        assert results[0].error_message == "No matching entries for this MRN"
        assert patients.calls == []

    def test_each_match_processed_in_order(self, driver, config, filters):
        _add_entries(driver, 3)
        patients = RecordingPatients()

        results, _ = _processor(driver, config, patients=patients).process(ROW, READY)

        assert patients.calls == [(4, 0, 3), (4, 1, 3), (4, 2, 3)]
        assert len(results) == 3

    def test_filters_are_replaced_not_appended(self, driver, config, filters):
        filters["mrn"].value = "9999"
        _add_entries(driver, 1)

        _processor(driver, config).process(ROW, READY)

        assert filters["mrn"].value == "1001"
        assert filters["custom_id"].value == "C-1"

    def test_mrn_filter_failure_fails_row(self, driver, config):
        _add_entries(driver, 2)
        patients = RecordingPatients()

        results, _ = _processor(driver, config, patients=patients).process(ROW, READY)

        assert [r.status for r in results] == [PatientStatus.FAILED]
        assert "Failed to apply MRN filter" in results[0].error_message
        assert patients.calls == []

    def test_mrn_filter_must_sit_under_mrn_header(self, driver, config):
        driver.add(locators.MRN_FILTER[0].locator, FakeElement("wrong column", header="Custom ID"))
        _add_entries(driver, 1)

        results, _ = _processor(driver, config).process(ROW, READY)

        assert results[0].failed

    def test_custom_id_failure_is_tolerated(self, driver, config, filters):
        del driver.elements[locators.CUSTOM_ID_FILTER[0].locator]
        _add_entries(driver, 1)
        patients = RecordingPatients()

        results, _ = _processor(driver, config, patients=patients).process(ROW, READY)

        assert patients.calls == [(4, 0, 1)]
        assert results[0].status is PatientStatus.BILLED

    def test_custom_id_cleared_when_next_row_has_none(self, driver, config, filters):
        _add_entries(driver, 1)
        processor = _processor(driver, config)

        processor.process(ROW, READY)
        processor.process(InputRow(row_number=5, mrn="1002"), READY)

        assert filters["custom_id"].value == ""
        assert filters["mrn"].value == "1002"

    def test_session_not_ready_fails_row(self, driver, config, filters):
        session = ReadySession(SessionState(logged_in=True))

        results, _ = _processor(driver, config, session=session).process(ROW, READY)

        assert results[0].failed
        assert "listing_navigated" in results[0].error_message

    def test_session_lost_carries_partial_results(self, driver, config, filters):
        _add_entries(driver, 3)
        processor = _processor(driver, config, patients=RecordingPatients(lose_session_at=1))

        with pytest.raises(SessionLost) as excinfo:
            processor.process(ROW, READY)

        assert [r.patient_index for r in excinfo.value.partial_results] == [1]
