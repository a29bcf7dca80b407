import json
from pathlib import Path
from types import SimpleNamespace

import httpx
import openai
import pytest

from rollbatch.exceptions import ConfigurationError, RecognitionError
from rollbatch.models import HeaderInfo, RecognitionStats
from rollbatch.parsers import extract_json, parse_page_payload
from rollbatch.processors import PageExtractor, Recognition, VisionRecognizer, build_page_extractor
from rollbatch.processors.recognition import is_rate_limit_error, is_transient_error

VALID_PAYLOAD = json.dumps({
    "header": {"acNoName": "281-Lucknow West", "jilla": "Lucknow"},
    "voters": [
        {"serial": 1, "epic": "ABC1234567", "name": "Ram", "relationType": "Father",
         "relationName": "Shyam", "house": "12", "age": 40, "gender": "M"},
    ],
})


class FakeAPIError(Exception):
    def __init__(self, status_code):
        super().__init__(f"Error code: {status_code}")
        self.status_code = status_code


class FakeClient:
    """Mimics ``client.chat.completions.create``; replays scripted outcomes."""

    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self.create))

    def create(self, **kwargs):
        self.calls += 1
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content=outcome))],
            usage=SimpleNamespace(prompt_tokens=100, completion_tokens=50),
        )


@pytest.fixture
def page_image(tmp_path):
    path = tmp_path / "page-001.png"
    path.write_bytes(b"\x89PNG fake")
    return path


@pytest.fixture
def vision_config(config):
    config.ai.api_key = "test-key"
    config.ai.max_attempts = 3
    config.ai.retry_delay_sec = 1.0
    config.ai.retry_jitter_sec = 0.0
    return config


def make_recognizer(config, outcomes):
    sleeps = []
    client = FakeClient(outcomes)
    recognizer = VisionRecognizer(config, client=client, sleep=sleeps.append)
    return recognizer, client, sleeps


def test_extract_json_handles_fences_and_prose():
    assert extract_json('```json\n{"voters": []}\n```') == {"voters": []}
    assert extract_json('Here you go:\n{"voters": [1]} hope it helps') == {"voters": [1]}
    with pytest.raises(ValueError):
        extract_json("no json here")
    with pytest.raises(ValueError):
        extract_json("")


def test_parse_payload_maps_header_and_voters():
    header, records = parse_page_payload(VALID_PAYLOAD)

    assert header.ac_no_name == "281-Lucknow West"
    assert header.jilla == "Lucknow"
    assert records == [{
        "serial": 1, "epic": "ABC1234567", "name": "Ram", "relation_type": "Father",
        "relation_name": "Shyam", "house": "12", "age": 40, "gender": "M",
    }]


def test_parse_payload_salvages_truncated_voters():
    text = '{"voters":[{"serial":1,"epic":"ABC1234567","name":"Ram","age":40},{"serial":2,"epic":"XY'
    header, records = parse_page_payload(text)

    assert header is None
    assert len(records) == 1
    assert records[0]["epic"] == "ABC1234567"


def test_parse_payload_empty_page():
    header, records = parse_page_payload('{"voters": []}')
    assert header is None
    assert records == []


def test_transient_error_classification():
    assert is_transient_error(FakeAPIError(429))
    assert is_transient_error(FakeAPIError(503))
    assert is_transient_error(TimeoutError("Request timed out"))
    assert not is_transient_error(FakeAPIError(400))


@pytest.mark.parametrize("error", [
    openai.APITimeoutError(request=httpx.Request("POST", "https://api.example.com")),
    openai.APIConnectionError(request=httpx.Request("POST", "https://api.example.com")),
    ConnectionResetError("peer went away"),
    RuntimeError("Rate limit reached for model"),
    RuntimeError("upstream returned 503 Service Unavailable"),
])
def test_transient_errors_by_type_and_message(error):
    assert is_transient_error(error)


@pytest.mark.parametrize("message", [
    "could not generate a response",
    "output is not accurate",
    "prompt exceeds 1500 tokens",
    "invalid image format",
])
def test_non_transient_messages_are_not_matched_inside_words(message):
    assert not is_transient_error(ValueError(message))
    assert not is_rate_limit_error(ValueError(message))


def test_status_code_decides_classification():
    # a 400 whose body mentions a timeout setting is still a client error
    error = FakeAPIError(400)
    error.args = ("Error code: 400 - invalid timeout parameter",)

    assert not is_transient_error(error)
    assert is_rate_limit_error(FakeAPIError(429))
    assert not is_rate_limit_error(FakeAPIError(503))


def test_vision_success_first_try(vision_config, page_image):
    recognizer, client, sleeps = make_recognizer(vision_config, [VALID_PAYLOAD])

    recognition = recognizer.recognize(page_image)

    assert recognition.is_structured
    assert recognition.header.jilla == "Lucknow"
    assert len(recognition.records) == 1
    assert client.calls == 1
    assert sleeps == []
    assert recognizer.stats.calls == 1
    assert recognizer.stats.input_tokens == 100


def test_vision_transient_errors_back_off_exponentially(vision_config, page_image):
    recognizer, client, sleeps = make_recognizer(
        vision_config, [FakeAPIError(429), FakeAPIError(503), VALID_PAYLOAD]
    )

    recognition = recognizer.recognize(page_image)

    assert len(recognition.records) == 1
    assert client.calls == 3
    assert sleeps == [2.0, 4.0]
    assert recognizer.stats.retries == 2
    assert recognizer.stats.calls == 1


def test_vision_non_transient_error_flat_delay(vision_config, page_image):
    recognizer, client, sleeps = make_recognizer(
        vision_config, [FakeAPIError(400), FakeAPIError(400), VALID_PAYLOAD]
    )

    recognizer.recognize(page_image)

    assert sleeps == [2.0, 2.0]


def test_vision_gives_up_after_max_attempts(vision_config, page_image):
    recognizer, client, sleeps = make_recognizer(vision_config, [FakeAPIError(503)] * 3)

    with pytest.raises(RecognitionError):
        recognizer.recognize(page_image)

    assert client.calls == 3
    assert len(sleeps) == 2


def test_vision_unparseable_response_is_retried(vision_config, page_image):
    recognizer, client, sleeps = make_recognizer(vision_config, ["I cannot read this page", VALID_PAYLOAD])

    recognition = recognizer.recognize(page_image)

    assert len(recognition.records) == 1
    assert client.calls == 2
    assert sleeps == []


def test_vision_unparseable_every_time(vision_config, page_image):
    recognizer, client, _ = make_recognizer(vision_config, ["garbage"] * 3)

    with pytest.raises(RecognitionError) as excinfo:
        recognizer.recognize(page_image)

    assert excinfo.value.message == "Unparseable model response"


def test_vision_requires_api_key(config):
    config.ai.api_key = ""
    config.pipeline.strategy = "vision"
    with pytest.raises(ConfigurationError):
        build_page_extractor(config)


class ScriptedRecognizer:
    def __init__(self, result):
        self.result = result
        self.stats = RecognitionStats(provider="scripted")

    def recognize(self, image_path):
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


def test_page_extractor_structured(config):
    header = HeaderInfo(jilla="Lucknow")
    extractor = PageExtractor(ScriptedRecognizer(Recognition(header=header, records=[{"epic": "ABC1234567"}])), config)

    page = extractor.extract_page(Path("page-003.png"))

    assert page.page_number == 3
    assert page.header is header
    assert page.records == [{"epic": "ABC1234567"}]


def test_page_extractor_text_goes_through_parsers(config):
    text = "District : Lucknow\n1 ABC1234567\nName : Ram\nAge : 40 Gender : Male\n"
    extractor = PageExtractor(ScriptedRecognizer(Recognition(text=text)), config)

    page = extractor.extract_page(Path("page-001.png"))

    assert page.header.jilla == "Lucknow"
    assert len(page.records) == 1
    assert page.records[0]["epic"] == "ABC1234567"
    assert page.records[0]["name"] == "Ram"


def test_page_extractor_recognition_error_empties_page(config):
    extractor = PageExtractor(ScriptedRecognizer(RecognitionError("boom")), config)

    page = extractor.extract_page(Path("page-002.png"))

    assert page.page_number == 2
    assert page.header is None
    assert page.records == []
    assert extractor.stats.pages == 1
    assert extractor.stats.failed_pages == 1


def test_page_extractor_propagates_configuration_errors(config):
    extractor = PageExtractor(ScriptedRecognizer(ConfigurationError("no key")), config)

    with pytest.raises(ConfigurationError):
        extractor.extract_page(Path("page-001.png"))
