import threading
import time
from pathlib import Path

import pytest

from rollbatch.exceptions import DataPersistenceError
from rollbatch.models import HeaderInfo, Job, JobStatus, Record, UnitResult
from rollbatch.persistence import INTERRUPTED_MESSAGE, JSONJobStore
from rollbatch.processors import BatchScheduler, JobGuard, compute_progress
from rollbatch.processors.batch_scheduler import CANCELLED_MESSAGE, NO_UNITS_MESSAGE

from conftest import write_pdf

THREE_ROLLS = {
    "rolls/HIN-3.pdf": 1024,
    "rolls/HIN-1.pdf": 1024,
    "rolls/sub/HIN-2.pdf": 1024,
    "rolls/small-HIN-4.pdf": 100,
    "__MACOSX/rolls/._HIN-1.pdf": 1024,
    "rolls/.hidden/HIN-9.pdf": 1024,
    "rolls/readme.txt": 1024,
}


class FakeUnitProcessor:
    """
    Scripted unit processor.

    Each unit yields ``records_per_unit`` records; units named in
    ``raise_on`` raise, units in ``empty_on`` yield an empty result.
    """

    def __init__(self, records_per_unit=2, raise_on=(), empty_on=(), headers=None, delay=0.0, on_call=None):
        self.records_per_unit = records_per_unit
        self.raise_on = set(raise_on)
        self.empty_on = set(empty_on)
        self.headers = headers or {}
        self.delay = delay
        self.on_call = on_call
        self.calls = []
        self.shared_headers = []
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    def process_unit(self, unit_path, job_id, shared_header):
        name = Path(unit_path).name
        with self._lock:
            self.calls.append(name)
            self.shared_headers.append(shared_header.copy())
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.on_call:
                self.on_call(name)
            if self.delay:
                time.sleep(self.delay)
            if name in self.raise_on:
                raise RuntimeError(f"poison unit {name}")
            if name in self.empty_on:
                return UnitResult.empty()
            header = self.headers.get(name, HeaderInfo())
            records = [
                Record.from_raw({"epic": f"ABC{i:07d}", "name": name, "age": 30}, job_id, "", header)
                for i in range(self.records_per_unit)
            ]
            return UnitResult(records=records, pages_processed=1, header=header)
        finally:
            with self._lock:
                self.in_flight -= 1


@pytest.fixture
def guard():
    return JobGuard()


@pytest.fixture
def job(store):
    return store.create_job(Job(name="rolls.zip"))


def make_scheduler(config, store, processor, guard, **kwargs):
    return BatchScheduler(config, store, unit_processor=processor, guard=guard, **kwargs)


def test_compute_progress():
    assert compute_progress(0, 10) == 0
    assert compute_progress(3, 10) == 30
    assert compute_progress(10, 10) == 99
    assert compute_progress(1, 3) == 33
    assert compute_progress(0, 0) == 0


def test_complete_run(config, store, guard, job, make_zip):
    config.pipeline.doc_concurrency = 1
    processor = FakeUnitProcessor()
    archive = make_zip(THREE_ROLLS)

    final = make_scheduler(config, store, processor, guard).run_batch(job.id, archive)

    assert final.status == JobStatus.COMPLETED
    assert final.progress == 100
    assert final.total_units == 4
    assert final.skipped_units == 1
    assert final.processed_units == 3
    assert final.extracted_count == 6
    assert final.error_message is None
    assert final.average_unit_time_ms is not None
    assert processor.calls == ["HIN-1.pdf", "HIN-2.pdf", "HIN-3.pdf"]
    assert len(store.get_records_for_job(job.id)) == 6
    assert not guard.is_active(job.id)
    assert not config.get_job_work_dir(job.id).exists()


def test_single_pdf_input(config, store, guard, job, tmp_path):
    pdf = write_pdf(tmp_path / "HIN-7.pdf")
    processor = FakeUnitProcessor(records_per_unit=3)

    final = make_scheduler(config, store, processor, guard).run_batch(job.id, pdf)

    assert final.status == JobStatus.COMPLETED
    assert final.total_units == 1
    assert final.extracted_count == 3
    assert processor.calls == ["HIN-7.pdf"]


def test_poison_unit_does_not_fail_batch(config, store, guard, job, make_zip):
    processor = FakeUnitProcessor(raise_on={"HIN-2.pdf"})

    final = make_scheduler(config, store, processor, guard).run_batch(job.id, make_zip(THREE_ROLLS))

    assert final.status == JobStatus.COMPLETED
    assert final.processed_units == 3
    assert final.extracted_count == 4
    assert final.error_message == "Processed 2/3 PDFs. 1 failed. 1 empty files skipped."


def test_empty_unit_result_counts_as_failure(config, store, guard, job, make_zip):
    processor = FakeUnitProcessor(empty_on={"HIN-1.pdf", "HIN-3.pdf"})

    final = make_scheduler(config, store, processor, guard).run_batch(job.id, make_zip(THREE_ROLLS))

    assert final.status == JobStatus.COMPLETED
    assert final.extracted_count == 2
    assert final.error_message == "Processed 1/3 PDFs. 2 failed. 1 empty files skipped."


def test_outer_concurrency_is_bounded(config, store, guard, job, make_zip):
    members = {f"HIN-{n}.pdf": 1024 for n in range(1, 11)}
    processor = FakeUnitProcessor(records_per_unit=1, delay=0.05)

    final = make_scheduler(config, store, processor, guard).run_batch(job.id, make_zip(members))

    assert final.status == JobStatus.COMPLETED
    assert final.processed_units == 10
    assert sorted(processor.calls) == sorted(members)
    assert processor.max_in_flight <= 3


def test_progress_callback_and_persisted_progress(config, store, guard, job, make_zip):
    config.pipeline.doc_concurrency = 1
    seen = []
    scheduler = make_scheduler(
        config, store, FakeUnitProcessor(), guard,
        on_progress=lambda j: seen.append((j.status, j.processed_units, j.progress)),
    )

    scheduler.run_batch(job.id, make_zip(THREE_ROLLS))

    assert seen == [
        (JobStatus.PROCESSING, 1, 33),
        (JobStatus.PROCESSING, 2, 66),
        (JobStatus.PROCESSING, 3, 99),
        (JobStatus.COMPLETED, 3, 100),
    ]


def test_header_aggregated_first_non_empty_wins(config, store, guard, job, make_zip):
    config.pipeline.doc_concurrency = 1
    processor = FakeUnitProcessor(headers={
        "HIN-1.pdf": HeaderInfo(jilla="X"),
        "HIN-2.pdf": HeaderInfo(jilla="Y", gram="G"),
    })

    final = make_scheduler(config, store, processor, guard).run_batch(job.id, make_zip(THREE_ROLLS))

    assert final.header.jilla == "X"
    assert final.header.gram == "G"
    # later units see the aggregate collected so far
    assert processor.shared_headers[0].is_empty()
    assert processor.shared_headers[2].jilla == "X"


def test_header_first_non_empty_value_is_not_overwritten(config, store, guard, job, make_zip):
    config.pipeline.doc_concurrency = 1
    processor = FakeUnitProcessor(headers={
        "HIN-1.pdf": HeaderInfo(jilla=""),
        "HIN-2.pdf": HeaderInfo(jilla="X"),
        "HIN-3.pdf": HeaderInfo(jilla="Y"),
    })

    final = make_scheduler(config, store, processor, guard).run_batch(job.id, make_zip(THREE_ROLLS))

    assert final.header.jilla == "X"
    assert store.get_job(job.id).header.jilla == "X"
    assert processor.shared_headers[1].jilla == ""
    assert processor.shared_headers[2].jilla == "X"


def test_resume_skips_processed_units(config, store, guard, make_zip):
    job = store.create_job(Job(
        name="rolls.zip",
        status=JobStatus.FAILED,
        processed_units=2,
        extracted_count=4,
        started_at="2026-01-01T00:00:00+00:00",
    ))
    previous = [
        Record.from_raw({"epic": f"OLD{i:07d}", "name": "old"}, job.id, "", HeaderInfo())
        for i in range(4)
    ]
    store.insert_records_batch(previous)
    processor = FakeUnitProcessor()

    final = make_scheduler(config, store, processor, guard).run_batch(job.id, make_zip(THREE_ROLLS))

    assert processor.calls == ["HIN-3.pdf"]
    assert final.status == JobStatus.COMPLETED
    assert final.processed_units == 3
    assert final.extracted_count == 6
    assert final.started_at == "2026-01-01T00:00:00+00:00"
    assert len(store.get_records_for_job(job.id)) == 6


@pytest.mark.parametrize("processed", [0, 3, 5])
def test_fresh_start_clears_old_records(config, store, guard, make_zip, processed):
    job = store.create_job(Job(name="rolls.zip", status=JobStatus.COMPLETED, processed_units=processed, extracted_count=9))
    store.insert_records_batch([
        Record.from_raw({"epic": "OLD0000001", "name": "old"}, job.id, "", HeaderInfo())
    ])
    processor = FakeUnitProcessor()

    final = make_scheduler(config, store, processor, guard).run_batch(job.id, make_zip(THREE_ROLLS))

    assert len(processor.calls) == 3
    assert final.extracted_count == 6
    assert {r.epic_number for r in store.get_records_for_job(job.id)}.isdisjoint({"OLD0000001"})


def test_cancel_stops_before_next_unit(config, store, guard, job, make_zip):
    config.pipeline.doc_concurrency = 1
    processor = FakeUnitProcessor(on_call=lambda name: guard.cancel(job.id))

    final = make_scheduler(config, store, processor, guard).run_batch(job.id, make_zip(THREE_ROLLS))

    assert processor.calls == ["HIN-1.pdf"]
    assert final.status == JobStatus.FAILED
    assert final.error_message == CANCELLED_MESSAGE
    assert final.processed_units == 1
    assert final.extracted_count == 2
    assert final.is_resumable

    # running again picks up where the cancelled run stopped
    processor = FakeUnitProcessor()
    final = make_scheduler(config, store, processor, guard).run_batch(job.id, make_zip(THREE_ROLLS, name="again.zip"))

    assert processor.calls == ["HIN-2.pdf", "HIN-3.pdf"]
    assert final.status == JobStatus.COMPLETED
    assert final.extracted_count == 6


def test_rerun_refused_while_cancelled_run_is_in_flight(config, store, guard, job, make_zip):
    config.pipeline.doc_concurrency = 1
    archive = make_zip(THREE_ROLLS)
    rerun_processor = FakeUnitProcessor()
    rerun_results = []

    def cancel_and_rerun(name):
        guard.cancel(job.id)
        rerun = make_scheduler(config, store, rerun_processor, guard)
        rerun_results.append(rerun.run_batch(job.id, archive))
        rerun_results.append(config.get_job_work_dir(job.id).exists())

    processor = FakeUnitProcessor(on_call=cancel_and_rerun)
    final = make_scheduler(config, store, processor, guard).run_batch(job.id, archive)

    # the rerun neither ran units nor removed the in-flight run's work dir
    assert rerun_results == [None, True]
    assert rerun_processor.calls == []
    assert processor.calls == ["HIN-1.pdf"]
    assert final.status == JobStatus.FAILED
    assert final.error_message == CANCELLED_MESSAGE
    assert final.processed_units == 1
    assert not guard.is_active(job.id)

    processor = FakeUnitProcessor()
    final = make_scheduler(config, store, processor, guard).run_batch(job.id, make_zip(THREE_ROLLS, name="again.zip"))

    assert processor.calls == ["HIN-2.pdf", "HIN-3.pdf"]
    assert final.status == JobStatus.COMPLETED
    assert final.extracted_count == 6
    assert len(store.get_records_for_job(job.id)) == 6


def test_already_admitted_job_is_noop(config, store, guard, job, make_zip):
    guard.admit(job.id)
    processor = FakeUnitProcessor()

    result = make_scheduler(config, store, processor, guard).run_batch(job.id, make_zip(THREE_ROLLS))

    assert result is None
    assert processor.calls == []
    assert store.get_job(job.id).status == JobStatus.PENDING
    assert guard.is_active(job.id)


def test_corrupt_archive_fails_job(config, store, guard, job, tmp_path):
    archive = tmp_path / "broken.zip"
    archive.write_bytes(b"this is not a zip archive" * 50)
    processor = FakeUnitProcessor()

    final = make_scheduler(config, store, processor, guard).run_batch(job.id, archive)

    assert final.status == JobStatus.FAILED
    assert final.error_message.startswith("Archive extraction failed")
    assert processor.calls == []
    assert not guard.is_active(job.id)


def test_no_valid_units_fails_job(config, store, guard, job, make_zip):
    archive = make_zip({"tiny.pdf": 100, "notes.txt": 2048, "__MACOSX/._big.pdf": 4096})

    final = make_scheduler(config, store, FakeUnitProcessor(), guard).run_batch(job.id, archive)

    assert final.status == JobStatus.FAILED
    assert final.error_message == NO_UNITS_MESSAGE
    assert final.total_units == 1
    assert final.skipped_units == 1


class ExplodingStore(JSONJobStore):
    def delete_records_for_job(self, job_id):
        raise RuntimeError("disk on fire")


def test_unexpected_error_recorded_without_raw_message(config, guard, make_zip, tmp_path):
    store = ExplodingStore(tmp_path / "exploding")
    job = store.create_job(Job(name="rolls.zip"))

    final = make_scheduler(config, store, FakeUnitProcessor(), guard).run_batch(job.id, make_zip(THREE_ROLLS))

    assert final.status == JobStatus.FAILED
    assert final.error_message == "Processing failed: RuntimeError"
    assert not guard.is_active(job.id)
    assert not config.get_job_work_dir(job.id).exists()


class FlakyInsertStore(JSONJobStore):
    """Fails every other insert call."""

    def __init__(self, base_dir):
        super().__init__(base_dir)
        self.insert_calls = 0

    def insert_records_batch(self, records):
        self.insert_calls += 1
        if self.insert_calls % 2 == 0:
            raise DataPersistenceError("insert failed", operation="insert")
        return super().insert_records_batch(records)


def test_failed_insert_chunk_is_skipped(config, guard, make_zip, tmp_path):
    config.pipeline.doc_concurrency = 1
    config.pipeline.insert_chunk_size = 2
    store = FlakyInsertStore(tmp_path / "flaky")
    job = store.create_job(Job(name="rolls.zip"))
    processor = FakeUnitProcessor(records_per_unit=4)

    final = make_scheduler(config, store, processor, guard).run_batch(job.id, make_zip({"HIN-1.pdf": 1024}))

    assert final.status == JobStatus.COMPLETED
    assert store.insert_calls == 2
    assert final.extracted_count == 2
    assert len(store.get_records_for_job(job.id)) == 2


class FlakyProgressStore(JSONJobStore):
    """Fails the first per-unit progress write."""

    def __init__(self, base_dir):
        super().__init__(base_dir)
        self.progress_failures = 1

    def update_job(self, job_id, **fields):
        if "average_unit_time_ms" in fields and "status" not in fields and self.progress_failures:
            self.progress_failures -= 1
            raise DataPersistenceError("update failed", job_id=job_id, operation="update_job")
        return super().update_job(job_id, **fields)


def test_failed_progress_write_does_not_abort_batch(config, guard, make_zip, tmp_path):
    config.pipeline.doc_concurrency = 1
    store = FlakyProgressStore(tmp_path / "flaky-progress")
    job = store.create_job(Job(name="rolls.zip"))
    processor = FakeUnitProcessor()

    final = make_scheduler(config, store, processor, guard).run_batch(job.id, make_zip(THREE_ROLLS))

    assert store.progress_failures == 0
    assert processor.calls == ["HIN-1.pdf", "HIN-2.pdf", "HIN-3.pdf"]
    assert final.status == JobStatus.COMPLETED
    assert final.processed_units == 3
    assert final.extracted_count == 6
    assert final.error_message is None


def test_progress_callback_error_does_not_abort_batch(config, store, guard, job, make_zip):
    config.pipeline.doc_concurrency = 1
    seen = []

    def on_progress(current):
        seen.append(current.processed_units)
        if len(seen) == 1:
            raise RuntimeError("progress bar closed")

    processor = FakeUnitProcessor()
    scheduler = make_scheduler(config, store, processor, guard, on_progress=on_progress)

    final = scheduler.run_batch(job.id, make_zip(THREE_ROLLS))

    assert len(processor.calls) == 3
    assert seen == [1, 2, 3, 3]
    assert final.status == JobStatus.COMPLETED
    assert final.extracted_count == 6


def test_recover_interrupted_jobs(store):
    running = store.create_job(Job(name="a.zip", status=JobStatus.PROCESSING, total_units=5, processed_units=2))
    done = store.create_job(Job(name="b.zip", status=JobStatus.COMPLETED))

    recovered = store.recover_interrupted_jobs()

    assert recovered == [running.id]
    job = store.get_job(running.id)
    assert job.status == JobStatus.FAILED
    assert job.error_message == INTERRUPTED_MESSAGE
    assert job.processed_units == 2
    assert job.is_resumable
    assert store.get_job(done.id).status == JobStatus.COMPLETED


def test_missing_job_raises_and_releases(config, store, guard, make_zip):
    from rollbatch.exceptions import JobNotFoundError

    with pytest.raises(JobNotFoundError):
        make_scheduler(config, store, FakeUnitProcessor(), guard).run_batch("nope", make_zip(THREE_ROLLS))

    assert not guard.is_active("nope")
