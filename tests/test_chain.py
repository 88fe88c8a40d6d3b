import pytest

from image_api.chain import AuthenticationStage, LoggingStage, authenticated, build_handler_chain, compose, logged
from image_api.errors import LoggingError, ProcessingError, UnauthorizedError
from image_api.models import LogEntry, OperationType, PipelineStep, RequestContext, RotateParams
from image_api.sinks import CompositeLogSink, FileLogSink, MemoryLogSink


class RecordingHandler:
    def __init__(self, fail=False):
        self.fail = fail
        self.calls = []

    async def handle(self, context, buffer):
        self.calls.append((context.identity, buffer))
        if self.fail:
            raise ProcessingError("pixel trouble")
        return buffer[::-1]


class FailingSink:
    def __init__(self):
        self.calls = 0

    async def append(self, entry):
        self.calls += 1
        raise OSError("disk full")


def make_context(token=None):
    return RequestContext(
        endpoint="/images/rotate",
        params=RotateParams(angle=90),
        token=token,
    )


@pytest.mark.asyncio
async def test_missing_token_fails_before_core_runs(verifier):
    core = RecordingHandler()
    with pytest.raises(UnauthorizedError) as exc_info:
        await AuthenticationStage(core, verifier).handle(make_context(), b"abc")
    assert str(exc_info.value) == "missing token"
    assert core.calls == []
    assert verifier.calls == []


@pytest.mark.asyncio
async def test_invalid_token_is_rejected(verifier):
    core = RecordingHandler()
    with pytest.raises(UnauthorizedError) as exc_info:
        await AuthenticationStage(core, verifier).handle(make_context("forged"), b"abc")
    assert str(exc_info.value) == "invalid token"
    assert core.calls == []


@pytest.mark.asyncio
async def test_valid_token_attaches_identity(verifier):
    core = RecordingHandler()
    context = make_context("good")
    result = await AuthenticationStage(core, verifier).handle(context, b"abc")
    assert result == b"cba"
    assert context.identity == verifier.identity
    assert core.calls == [(verifier.identity, b"abc")]


def test_identity_is_attached_once(verifier):
    context = make_context("good")
    context.attach_identity(verifier.identity)
    with pytest.raises(RuntimeError):
        context.attach_identity(verifier.identity)


@pytest.mark.asyncio
async def test_logging_records_success(memory_sink):
    stage = LoggingStage(RecordingHandler(), memory_sink)
    await stage.handle(make_context(), b"abc")

    assert len(memory_sink.entries) == 1
    entry = memory_sink.entries[0]
    assert entry.result == "success"
    assert entry.level == "info"
    assert entry.endpoint == "/images/rotate"
    assert entry.params == {"angle": 90}
    assert entry.duration_ms >= 0
    assert entry.message is None


@pytest.mark.asyncio
async def test_logging_records_error_and_reraises(memory_sink):
    stage = LoggingStage(RecordingHandler(fail=True), memory_sink)
    with pytest.raises(ProcessingError):
        await stage.handle(make_context(), b"abc")

    assert len(memory_sink.entries) == 1
    entry = memory_sink.entries[0]
    assert entry.result == "error"
    assert entry.level == "error"
    assert entry.message == "pixel trouble"


@pytest.mark.asyncio
async def test_canonical_chain_logs_unauthorized_once(verifier, memory_sink):
    core = RecordingHandler()
    chain = build_handler_chain(core, verifier, memory_sink)
    with pytest.raises(UnauthorizedError):
        await chain.handle(make_context(), b"abc")

    assert core.calls == []
    assert [entry.result for entry in memory_sink.entries] == ["error"]
    assert memory_sink.entries[0].message == "missing token"
    assert memory_sink.entries[0].user is None


@pytest.mark.asyncio
async def test_canonical_chain_logs_identity(verifier, memory_sink):
    chain = build_handler_chain(RecordingHandler(), verifier, memory_sink)
    await chain.handle(make_context("good"), b"abc")
    entry = memory_sink.entries[0]
    assert entry.user == "ana@example.com"
    assert entry.user_id == "user-1"


def test_compose_applies_stages_innermost_first(verifier, memory_sink):
    chain = compose(RecordingHandler(), authenticated(verifier), logged(memory_sink))
    assert isinstance(chain, LoggingStage)
    assert isinstance(chain.inner, AuthenticationStage)


@pytest.mark.asyncio
async def test_sink_failure_does_not_change_outcome():
    stage = LoggingStage(RecordingHandler(), FailingSink())
    assert await stage.handle(make_context(), b"abc") == b"cba"

    failing = LoggingStage(RecordingHandler(fail=True), FailingSink())
    with pytest.raises(ProcessingError):
        await failing.handle(make_context(), b"abc")


@pytest.mark.asyncio
async def test_composite_sink_awaits_every_branch(memory_sink):
    broken = FailingSink()
    other = MemoryLogSink()
    composite = CompositeLogSink([broken, memory_sink, other])

    stage = LoggingStage(RecordingHandler(), composite)
    await stage.handle(make_context(), b"abc")

    assert broken.calls == 1
    assert len(memory_sink.entries) == 1
    assert len(other.entries) == 1


@pytest.mark.asyncio
async def test_composite_sink_raises_logging_error(memory_sink):
    composite = CompositeLogSink([FailingSink(), memory_sink])
    entry = LogEntry(level="info", endpoint="/images/crop", duration_ms=1.5, result="success")

    with pytest.raises(LoggingError) as exc_info:
        await composite.append(entry)
    assert len(exc_info.value.failures) == 1
    assert memory_sink.entries == [entry]


@pytest.mark.asyncio
async def test_file_sink_writes_json_lines(tmp_path):
    path = tmp_path / "nested" / "app.log"
    context = RequestContext(
        endpoint="/images/pipeline",
        params=[PipelineStep(OperationType.ROTATE, RotateParams(angle=180))],
        token="good",
    )
    stage = LoggingStage(RecordingHandler(), FileLogSink(path))
    await stage.handle(context, b"abc")
    await stage.handle(context, b"def")

    lines = path.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 2
    assert '"endpoint":"/images/pipeline"' in lines[0]
    assert '"operations":[{"type":"rotate","params":{"angle":180}}]' in lines[0]
