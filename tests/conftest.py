import pytest


class RecordingSink:
    def __init__(self, fail: bool = False) -> None:
        self.calls: list[list[dict]] = []
        self.fail = fail

    def __call__(self, documents):
        self.calls.append(list(documents))
        if self.fail:
            raise RuntimeError("store unavailable")

    @property
    def last(self) -> list[dict]:
        return self.calls[-1]


class RecordingNotifier:
    def __init__(self) -> None:
        self.messages: list[tuple[str, str]] = []

    def __call__(self, message, level):
        self.messages.append((message, getattr(level, "value", level)))


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def notes() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def failing_sink() -> RecordingSink:
    return RecordingSink(fail=True)
