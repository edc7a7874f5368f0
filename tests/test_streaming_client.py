import io
import threading
import time

import pytest
from google.api_core import exceptions
from google.cloud import videointelligence_v1p3beta1 as videointelligence

import streaming_client
from config import EOF_CLOSE
from errors import AuthError, SourceReadError, StreamEnded, TransportError
from streaming_client import AnnotationStream, build_configuration, init_streaming, send_configuration
from uploader import VideoUploader

FEATURE = videointelligence.StreamingFeature.STREAMING_LABEL_DETECTION


class FakeCall:
    """Itérateur de réponses façon google-api-core, annulable."""

    def __init__(self, responses, error=None):
        self.responses = list(responses)
        self.error = error
        self.cancelled = False

    def __iter__(self):
        return self

    def __next__(self):
        if self.cancelled:
            raise exceptions.Cancelled("Locally cancelled")
        if self.responses:
            return self.responses.pop(0)
        if self.error is not None:
            raise self.error
        raise StopIteration

    def cancel(self):
        self.cancelled = True


class FakeClient:
    def __init__(self, call=None, open_error=None):
        self.call = call or FakeCall([])
        self.open_error = open_error
        self.requests = None
        self.kwargs = None

    def streaming_annotate_video(self, requests, **kwargs):
        if self.open_error is not None:
            raise self.open_error
        self.requests = requests
        self.kwargs = kwargs
        return self.call


def test_build_configuration_with_storage():
    request = build_configuration(FEATURE, "gs://bucket/results")
    config = request.video_config

    assert config.feature == FEATURE
    assert config.storage_config.enable_storage_annotation_result
    assert config.storage_config.annotation_result_storage_directory == "gs://bucket/results"


def test_build_configuration_without_storage():
    config = build_configuration(FEATURE).video_config
    assert not config.storage_config.enable_storage_annotation_result
    assert config.storage_config.annotation_result_storage_directory == ""


def test_configuration_is_the_first_request():
    stream = AnnotationStream(FakeClient(), max_pending=4)
    send_configuration(stream, FEATURE)
    stream.send_content(b"chunk-1")
    stream.send_content(b"chunk-2")
    stream.close_send()

    requests = list(stream._request_iterator())

    assert [videointelligence.StreamingAnnotateVideoRequest.pb(r).WhichOneof("streaming_request") for r in requests] == [
        "video_config", "input_content", "input_content"]
    assert requests[1].input_content == b"chunk-1"


def test_content_before_configuration_is_refused():
    stream = AnnotationStream(FakeClient())
    with pytest.raises(TransportError):
        stream.send_content(b"too early")


def test_configuration_is_sent_once():
    stream = AnnotationStream(FakeClient())
    send_configuration(stream, FEATURE)
    with pytest.raises(TransportError):
        send_configuration(stream, FEATURE)


def test_no_content_after_half_close():
    stream = AnnotationStream(FakeClient())
    send_configuration(stream, FEATURE)
    stream.close_send()
    with pytest.raises(TransportError):
        stream.send_content(b"late")


def test_recv_opens_call_without_retry(make_response):
    response = make_response("cat")
    client = FakeClient(FakeCall([response]))
    stream = AnnotationStream(client)

    assert stream.recv() == response
    assert client.kwargs == {"retry": None, "timeout": None}
    with pytest.raises(StreamEnded):
        stream.recv()


def test_recv_maps_api_errors_to_transport_error():
    error = exceptions.PermissionDenied("no access")
    stream = AnnotationStream(FakeClient(FakeCall([], error=error)))

    with pytest.raises(TransportError) as excinfo:
        stream.recv()
    assert excinfo.value.__cause__ is error


def test_open_failure_is_a_transport_error():
    stream = AnnotationStream(FakeClient(open_error=exceptions.ServiceUnavailable("down")))
    with pytest.raises(TransportError):
        stream.recv()


def test_fail_cancels_call_and_reader_sees_the_error(make_response):
    call = FakeCall([make_response("cat"), make_response("dog")])
    stream = AnnotationStream(FakeClient(call))
    stream.recv()

    failure = SourceReadError("lecture impossible")
    stream.fail(failure)

    assert call.cancelled
    with pytest.raises(SourceReadError):
        stream.recv()


def test_fail_before_open_aborts_request_iterator():
    stream = AnnotationStream(FakeClient())
    send_configuration(stream, FEATURE)
    failure = SourceReadError("lecture impossible")
    stream.fail(failure)

    with pytest.raises(SourceReadError):
        next(stream._request_iterator())


def test_init_streaming_with_invalid_key_file(tmp_path):
    bad = tmp_path / "key.json"
    bad.write_text("not json")
    with pytest.raises(AuthError):
        init_streaming(str(bad))


def test_init_streaming_with_incomplete_key_file(creds_file):
    with pytest.raises(AuthError):
        init_streaming(str(creds_file))


def test_init_streaming_passes_endpoint(monkeypatch):
    seen = {}

    def fake_from_file(path, client_options=None):
        seen["path"] = path
        seen["options"] = client_options
        return FakeClient()

    monkeypatch.setattr(streaming_client.videointelligence.StreamingVideoIntelligenceServiceClient,
                        "from_service_account_file", staticmethod(fake_from_file))

    stream = init_streaming("key.json", api_endpoint="localhost:8443")

    assert isinstance(stream, AnnotationStream)
    assert seen["path"] == "key.json"
    assert seen["options"].api_endpoint == "localhost:8443"


def test_request_queue_stays_bounded_during_upload():
    stream = AnnotationStream(FakeClient(), max_pending=2)
    send_configuration(stream, FEATURE)
    uploader = VideoUploader(stream, io.BytesIO(b"\x01" * 64 * 1024), chunk_size=1024, eof_policy=EOF_CLOSE)

    thread = uploader.start()
    time.sleep(0.3)

    # Personne ne consomme encore : l'envoi est bloqué, la file est pleine
    assert thread.is_alive()
    assert stream._requests.qsize() == 2
    assert uploader.chunks_sent <= 2

    largest = 0
    requests = []
    for request in stream._request_iterator():
        largest = max(largest, stream._requests.qsize())
        requests.append(request)
    thread.join(timeout=5)

    assert not thread.is_alive()
    assert largest <= 2
    assert len(requests) == 1 + 64
    assert requests[0].video_config.feature == FEATURE


def test_fail_unblocks_writer_waiting_on_full_queue():
    stream = AnnotationStream(FakeClient(), max_pending=1)
    send_configuration(stream, FEATURE)
    errors = []

    def write():
        try:
            stream.send_content(b"blocked")
        except TransportError as e:
            errors.append(e)

    writer = threading.Thread(target=write, daemon=True)
    writer.start()
    time.sleep(0.2)
    assert writer.is_alive()

    stream.fail(SourceReadError("lecture impossible"))
    writer.join(timeout=5)

    assert not writer.is_alive()
    assert len(errors) == 1


def test_end_of_stream_unblocks_writer():
    stream = AnnotationStream(FakeClient(FakeCall([])), max_pending=1)
    send_configuration(stream, FEATURE)

    with pytest.raises(StreamEnded):
        stream.recv()
    with pytest.raises(TransportError):
        stream.send_content(b"late")
