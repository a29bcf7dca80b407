import threading
from pathlib import Path

import pytest

from rollbatch.exceptions import RasterizationError, TesseractNotFoundError
from rollbatch.models import HeaderInfo, PageResult
from rollbatch.processors import UnitProcessor
from rollbatch.utils.file_utils import page_number

from conftest import write_pdf


def voter(epic, name="Ram", age=40):
    return {"serial": 1, "epic": epic, "name": name, "age": age, "gender": "M", "house": "1"}


class FakeRasterizer:
    def __init__(self, pages=3, error=None):
        self.pages = pages
        self.error = error
        self.calls = []

    def rasterize(self, doc_path, dpi, out_dir):
        self.calls.append((Path(doc_path).name, dpi))
        if self.error:
            raise self.error
        paths = []
        for n in range(1, self.pages + 1):
            path = Path(out_dir) / f"page-{n:03d}.png"
            path.write_bytes(b"png")
            paths.append(path)
        return paths


class FakePageExtractor:
    """Returns scripted PageResults by page number and records what it saw."""

    def __init__(self, pages=None, fail_on=(), error=None):
        self.error = error or RuntimeError("page exploded")
        self.pages = pages or {}
        self.fail_on = set(fail_on)
        self.seen = []
        self.leftover_images = []
        self._lock = threading.Lock()

    def extract_page(self, image_path):
        number = page_number(image_path)
        with self._lock:
            self.seen.append(number)
            self.leftover_images.extend(
                sorted(p.name for p in Path(image_path).parent.glob("*.png") if page_number(p) < number)
            )
        if number in self.fail_on:
            raise self.error
        return self.pages.get(number, PageResult(page_number=number))


@pytest.fixture
def unit_pdf(tmp_path):
    return write_pdf(tmp_path / "2025-FinalRoll-HIN-117-WI.pdf")


def make_processor(config, rasterizer, extractor):
    return UnitProcessor(config, rasterizer=rasterizer, page_extractor=extractor)


def test_records_from_all_pages(config, unit_pdf):
    extractor = FakePageExtractor({
        1: PageResult(1, HeaderInfo(jilla="Lucknow"), [voter("ABC1234567")]),
        2: PageResult(2, None, [voter("ABC1234568"), voter("ABC1234569")]),
    })
    processor = make_processor(config, FakeRasterizer(pages=3), extractor)

    result = processor.process_unit(unit_pdf, "job1", HeaderInfo())

    assert not result.is_empty
    assert result.pages_processed == 3
    assert sorted(extractor.seen) == [1, 2, 3]
    assert [r.epic_number for r in result.records] == ["ABC1234567", "ABC1234568", "ABC1234569"]
    assert all(r.job_id == "job1" for r in result.records)
    assert all(r.jilla == "Lucknow" for r in result.records)


def test_header_frozen_from_first_header_pages(config, unit_pdf):
    extractor = FakePageExtractor({
        1: PageResult(1, None, []),
        2: PageResult(2, HeaderInfo(jilla="X", part_number="55"), []),
        3: PageResult(3, HeaderInfo(jilla="Y"), [voter("ABC1234567")]),
    })
    processor = make_processor(config, FakeRasterizer(pages=3), extractor)

    result = processor.process_unit(unit_pdf, "job1", HeaderInfo(jilla="Shared"))

    assert result.header.jilla == "X"
    assert result.records[0].jilla == "X"


def test_header_beyond_header_pages_is_ignored(config, unit_pdf):
    extractor = FakePageExtractor({
        3: PageResult(3, HeaderInfo(jilla="Y"), [voter("ABC1234567")]),
    })
    processor = make_processor(config, FakeRasterizer(pages=3), extractor)

    result = processor.process_unit(unit_pdf, "job1", HeaderInfo(jilla="Shared"))

    assert result.header.jilla == "Shared"


def test_default_state_applied(config, unit_pdf):
    processor = make_processor(config, FakeRasterizer(pages=1), FakePageExtractor())

    result = processor.process_unit(unit_pdf, "job1", None)

    assert result.header.state == "Uttar Pradesh"


def test_booth_from_filename_wins_over_header(config, unit_pdf):
    extractor = FakePageExtractor({
        1: PageResult(1, HeaderInfo(part_number="55"), [voter("ABC1234567")]),
    })
    processor = make_processor(config, FakeRasterizer(pages=1), extractor)

    result = processor.process_unit(unit_pdf, "job1", HeaderInfo())

    assert result.records[0].booth_number == "117"
    assert result.records[0].part_number == "117"


def test_booth_falls_back_to_header_part_number(config, tmp_path):
    pdf = write_pdf(tmp_path / "roll.pdf")
    extractor = FakePageExtractor({
        1: PageResult(1, HeaderInfo(part_number="55"), [voter("ABC1234567")]),
    })
    processor = make_processor(config, FakeRasterizer(pages=1), extractor)

    result = processor.process_unit(pdf, "job1", HeaderInfo())

    assert result.records[0].booth_number == "55"


def test_rasterization_failure_gives_empty_result(config, unit_pdf):
    rasterizer = FakeRasterizer(error=RasterizationError("corrupt", pdf_path=str(unit_pdf)))
    extractor = FakePageExtractor()
    processor = make_processor(config, rasterizer, extractor)

    result = processor.process_unit(unit_pdf, "job1", HeaderInfo())

    assert result.is_empty
    assert result.records == []
    assert extractor.seen == []


def test_zero_pages_gives_empty_result(config, unit_pdf):
    processor = make_processor(config, FakeRasterizer(pages=0), FakePageExtractor())

    assert processor.process_unit(unit_pdf, "job1", HeaderInfo()).is_empty


def test_failing_page_does_not_fail_unit(config, unit_pdf):
    extractor = FakePageExtractor({
        1: PageResult(1, None, [voter("ABC1234567")]),
        3: PageResult(3, None, [voter("ABC1234569")]),
    }, fail_on=[2])
    processor = make_processor(config, FakeRasterizer(pages=3), extractor)

    result = processor.process_unit(unit_pdf, "job1", HeaderInfo())

    assert result.pages_processed == 3
    assert [r.epic_number for r in result.records] == ["ABC1234567", "ABC1234569"]


def test_job_scoped_page_error_fails_unit(config, unit_pdf):
    extractor = FakePageExtractor(fail_on=[1], error=TesseractNotFoundError())
    processor = make_processor(config, FakeRasterizer(pages=2), extractor)

    with pytest.raises(TesseractNotFoundError):
        processor.process_unit(unit_pdf, "job1", HeaderInfo())
    assert not any(config.get_job_work_dir("job1").rglob("*.png"))


def test_page_images_deleted_as_they_finish(config, unit_pdf):
    config.pipeline.page_concurrency = 1
    extractor = FakePageExtractor(fail_on=[2])
    processor = make_processor(config, FakeRasterizer(pages=4), extractor)

    processor.process_unit(unit_pdf, "job1", HeaderInfo())

    assert extractor.seen == [1, 2, 3, 4]
    assert extractor.leftover_images == []
    assert not any(config.get_job_work_dir("job1").rglob("*.png"))


def test_records_classified(config, unit_pdf):
    extractor = FakePageExtractor({
        1: PageResult(1, None, [voter("ABC1234567"), voter("", name="Sita"), voter("", name="", age=None)]),
    })
    processor = make_processor(config, FakeRasterizer(pages=1), extractor)

    result = processor.process_unit(unit_pdf, "job1", HeaderInfo())

    assert [r.status for r in result.records] == ["verified", "flagged", "incomplete"]
