import json

import pytest
from google.cloud import videointelligence_v1p3beta1 as videointelligence

from errors import StreamEnded


class FakeStream:
    """Remplace AnnotationStream : enregistre les envois, rejoue des réponses."""

    def __init__(self, responses=(), end_error=None):
        self.sent = []
        self.responses = list(responses)
        self.end_error = end_error or StreamEnded("fin du flux")
        self.half_closed = False
        self.failure = None

    def send_config(self, request):
        self.sent.append(("config", request))

    def send_content(self, data):
        self.sent.append(("content", data))

    def close_send(self):
        self.half_closed = True

    def fail(self, error):
        self.failure = error

    def recv(self):
        if self.responses:
            return self.responses.pop(0)
        raise self.end_error


class FakeSource:
    """Source vidéo simulée : chaque élément est des octets, None, ou une exception à lever."""

    def __init__(self, reads):
        self.reads = list(reads)
        self.calls = 0
        self.closed = False

    def close(self):
        self.closed = True

    def readinto(self, buffer):
        self.calls += 1
        item = self.reads.pop(0)
        if isinstance(item, BaseException):
            raise item
        if item is None:
            return None
        buffer[:len(item)] = item
        return len(item)


@pytest.fixture
def make_stream():
    return FakeStream


@pytest.fixture
def make_source():
    return FakeSource


@pytest.fixture
def make_response():
    def _make(label: str, uri: str = ""):
        return videointelligence.StreamingAnnotateVideoResponse(
            annotation_results=videointelligence.StreamingVideoAnnotationResults(
                label_annotations=[
                    videointelligence.LabelAnnotation(
                        entity=videointelligence.Entity(description=label, language_code="en-US"),
                    )
                ]
            ),
            annotation_results_uri=uri,
        )
    return _make


@pytest.fixture
def creds_file(tmp_path):
    path = tmp_path / "service-account.json"
    path.write_text(json.dumps({"type": "service_account", "project_id": "demo"}))
    return path


@pytest.fixture
def video_file(tmp_path):
    path = tmp_path / "video.mp4"
    path.write_bytes(b"\x00\x00\x00\x18ftypmp42" + b"\x01" * 64)
    return path
