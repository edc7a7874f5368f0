"""
Connexion au service de streaming de Google Video Intelligence (v1p3beta1).

`AnnotationStream` est la poignée duplex partagée entre le thread d'envoi
(un seul écrivain) et le thread principal (un seul lecteur). Les requêtes
passent par une file bornée et thread-safe qui alimente l'itérateur de requêtes gRPC.
"""
import queue
import threading
from typing import Iterator, Optional

from google.api_core import client_options as client_options_lib
from google.api_core.exceptions import GoogleAPICallError
from google.auth.exceptions import GoogleAuthError
from google.cloud import videointelligence_v1p3beta1 as videointelligence

from config import MAX_PENDING_REQUESTS
from errors import AuthError, StreamEnded, TransportError
from log_config import get_logger

logger = get_logger(__name__)

# Marqueur de fin du flux montant (semi-fermeture)
_HALF_CLOSE = object()
# Intervalle de vérification des signaux d'arrêt pendant une attente sur la file
_POLL_INTERVAL = 0.1


class AnnotationStream:
    """
    Flux bidirectionnel StreamingAnnotateVideo.

    L'appel gRPC est émis au premier `recv()` : le wrapper de google-api-core
    attend la première réponse dès l'ouverture, il faut donc que la
    configuration soit en file et que l'envoi de la vidéo ait démarré.

    La file de requêtes est bornée : `send_content` bloque tant que gRPC n'a
    pas consommé les morceaux précédents.
    """

    def __init__(self, client: videointelligence.StreamingVideoIntelligenceServiceClient,
                 max_pending: int = MAX_PENDING_REQUESTS):
        self._client = client
        self._requests: "queue.Queue" = queue.Queue(maxsize=max_pending)
        self._responses: Optional[Iterator] = None
        self._lock = threading.Lock()
        self._configured = False
        self._half_closed = False
        self._failure: Optional[BaseException] = None
        # Posé dès que le flux est terminé ou interrompu : débloque l'écrivain
        self._done = threading.Event()

    # --- Côté écrivain ---

    def send_config(self, request: videointelligence.StreamingAnnotateVideoRequest) -> None:
        if self._configured:
            raise TransportError("La configuration a déjà été envoyée sur ce flux.")
        self._configured = True
        self._put(request)

    def send_content(self, data: bytes) -> None:
        if not self._configured:
            raise TransportError("Le premier message du flux doit être la configuration.")
        self._put(videointelligence.StreamingAnnotateVideoRequest(input_content=data))

    def close_send(self) -> None:
        """Signale au service que plus aucun contenu ne sera envoyé."""
        if not self._half_closed:
            self._put(_HALF_CLOSE)
            self._half_closed = True

    def fail(self, error: BaseException) -> None:
        """Interrompt le flux depuis le thread d'envoi ; le lecteur reçoit `error`."""
        self._failure = error
        self._done.set()
        with self._lock:
            responses = self._responses
        cancel = getattr(responses, "cancel", None)
        if cancel is not None:
            cancel()

    def _put(self, request) -> None:
        if self._half_closed:
            raise TransportError("Le flux montant est déjà fermé.")
        while True:
            if self._failure is not None:
                raise TransportError("Le flux a été interrompu.") from self._failure
            if self._done.is_set():
                raise TransportError("Le flux est terminé.")
            try:
                self._requests.put(request, timeout=_POLL_INTERVAL)
                return
            except queue.Full:
                continue

    def _request_iterator(self):
        while True:
            if self._failure is not None:
                # Une exception dans l'itérateur de requêtes annule l'appel gRPC
                raise self._failure
            try:
                request = self._requests.get(timeout=_POLL_INTERVAL)
            except queue.Empty:
                if self._done.is_set():
                    return
                continue
            if request is _HALF_CLOSE:
                return
            yield request

    # --- Côté lecteur ---

    def open(self) -> None:
        with self._lock:
            if self._responses is not None:
                return
        logger.info("Ouverture du flux StreamingAnnotateVideo...")
        try:
            # Pas de retry ni de délai : l'itérateur de requêtes ne peut être rejoué
            responses = self._client.streaming_annotate_video(
                requests=self._request_iterator(), retry=None, timeout=None)
        except GoogleAPICallError as e:
            self._raise_transport(e)
        with self._lock:
            self._responses = responses

    def recv(self) -> videointelligence.StreamingAnnotateVideoResponse:
        """Bloque jusqu'à la prochaine réponse du service."""
        self.open()
        try:
            return next(self._responses)
        except StopIteration:
            self._done.set()
            if self._failure is not None:
                raise self._failure
            raise StreamEnded("Le service a fermé le flux.") from None
        except GoogleAPICallError as e:
            self._raise_transport(e)

    def _raise_transport(self, error: GoogleAPICallError):
        self._done.set()
        if self._failure is not None:
            raise self._failure from error
        raise TransportError(f"An error occured : {error}") from error


def init_streaming(creds_path: str, api_endpoint: Optional[str] = None) -> AnnotationStream:
    """Authentifie le client avec le fichier de clé et prépare le flux bidirectionnel."""
    logger.info("Connecting to Video Intelligence API...")

    options = None
    if api_endpoint:
        options = client_options_lib.ClientOptions(api_endpoint=api_endpoint)

    try:
        client = videointelligence.StreamingVideoIntelligenceServiceClient.from_service_account_file(
            creds_path, client_options=options)
    except (GoogleAuthError, ValueError, OSError) as e:
        raise AuthError(f"Impossible de charger le fichier de clé '{creds_path}' : {e}") from e

    logger.info("✅ Successfully connected!")
    return AnnotationStream(client)


def build_configuration(feature: videointelligence.StreamingFeature,
                        gcs_uri: Optional[str] = None) -> videointelligence.StreamingAnnotateVideoRequest:
    return videointelligence.StreamingAnnotateVideoRequest(
        video_config=videointelligence.StreamingVideoConfig(
            feature=feature,
            storage_config=videointelligence.StreamingStorageConfig(
                enable_storage_annotation_result=bool(gcs_uri),
                annotation_result_storage_directory=gcs_uri or "",
            ),
        )
    )


def send_configuration(stream: AnnotationStream,
                       feature: videointelligence.StreamingFeature,
                       gcs_uri: Optional[str] = None) -> None:
    """Envoie l'unique message de configuration, avant tout morceau de vidéo."""
    logger.info("Sending configuration...")
    stream.send_config(build_configuration(feature, gcs_uri))
    logger.info("Configuration sent!")
