"""
Consommation des réponses du flux et écriture vers les sorties configurées.
"""
import sys
from typing import IO, List, Optional

from google.cloud import videointelligence_v1p3beta1 as videointelligence

from errors import ExportError, SinkError
from log_config import get_logger

logger = get_logger(__name__)


def serialize_response(response: videointelligence.StreamingAnnotateVideoResponse) -> str:
    """Sérialise une réponse en JSON sur une seule ligne (noms d'énumérations, champs en camelCase)."""
    return type(response).to_json(
        response,
        indent=None,
        use_integers_for_enums=False,
        # Les champs à leur valeur par défaut sont omis
        always_print_fields_with_no_presence=False,
    )


def parse_response(text: str) -> videointelligence.StreamingAnnotateVideoResponse:
    return videointelligence.StreamingAnnotateVideoResponse.from_json(text)


class StdoutSink:
    """Recopie chaque réponse sur la sortie standard."""

    def __init__(self, stream: Optional[IO[str]] = None):
        self.stream = stream

    def write(self, text: str) -> None:
        try:
            print(text, file=self.stream or sys.stdout, flush=True)
        except OSError as e:
            # BrokenPipeError : le lecteur du pipe (ex: | head) est parti
            raise SinkError(f"An error occured while writing to stdout : {e}") from e


class ExportFileSink:
    """Ajoute chaque réponse, une par ligne, au fichier d'export."""

    def __init__(self, handle: IO[str]):
        self.handle = handle

    def write(self, text: str) -> None:
        try:
            self.handle.write(text + "\n")
            self.handle.flush()
        except (OSError, ValueError) as e:
            # ValueError : écriture sur un fichier déjà fermé
            raise ExportError(f"An error occured while exporting : {e}") from e


class ResponseConsumer:
    """Boucle principale : reçoit, sérialise et distribue chaque réponse."""

    def __init__(self, stream, sinks: List):
        self.stream = stream
        self.sinks = sinks
        self.responses_received = 0

    def handle(self, response) -> None:
        if response.error.code:
            logger.warning("⚠️ Le service signale une erreur : %s (code %d)",
                           response.error.message, response.error.code)
        results = serialize_response(response)
        for sink in self.sinks:
            sink.write(results)

    def run(self) -> None:
        """Bloque sur le flux jusqu'à sa fin ; se termine toujours par une exception."""
        while True:
            response = self.stream.recv()
            self.responses_received += 1
            self.handle(response)


def build_sinks(stdout: bool, export: Optional[IO[str]] = None) -> List:
    # Ordre d'écriture : le fichier d'export d'abord, puis stdout
    sinks = []
    if export is not None:
        sinks.append(ExportFileSink(export))
    if stdout:
        sinks.append(StdoutSink())
    return sinks
