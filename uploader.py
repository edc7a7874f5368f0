import sys
import threading
from typing import BinaryIO, Optional

from config import CHUNK_SIZE, EOF_CLOSE, EOF_RETRY
from errors import SourceReadError
from log_config import get_logger

logger = get_logger(__name__)


class VideoUploader:
    """
    Lit la source vidéo morceau par morceau et envoie chaque morceau sur le flux.

    Tourne dans un thread d'arrière-plan pendant toute la durée du flux.
    La source est choisie une seule fois : le fichier s'il est fourni, sinon stdin.

    Politique de fin de source :
      - EOF_RETRY : une lecture vide est relue immédiatement (comportement historique,
        le thread tourne à vide une fois la source épuisée)
      - EOF_CLOSE : une lecture vide ferme le flux montant et arrête le thread
    """

    def __init__(self, stream, source: Optional[BinaryIO] = None,
                 chunk_size: int = CHUNK_SIZE, eof_policy: str = EOF_RETRY):
        if eof_policy not in (EOF_RETRY, EOF_CLOSE):
            raise ValueError(f"Politique de fin de source inconnue : {eof_policy}")
        self.stream = stream
        self.source = source if source is not None else sys.stdin.buffer
        self.eof_policy = eof_policy
        self.chunk_size = chunk_size
        self.chunks_sent = 0
        self._buffer = bytearray(chunk_size)
        # readinto1 rend la main dès que des octets sont disponibles (pipe)
        self._readinto = getattr(self.source, "readinto1", None) or self.source.readinto
        self._thread: Optional[threading.Thread] = None

    def read_chunk(self) -> Optional[memoryview]:
        """
        Remplit le tampon et retourne la portion lue.
        None : aucune donnée disponible pour l'instant (source non bloquante).
        Vue vide : fin de la source.
        """
        try:
            n = self._readinto(self._buffer)
        except OSError as e:
            raise SourceReadError(f"Erreur de lecture de la source vidéo : {e}") from e
        if n is None:
            return None
        return memoryview(self._buffer)[:n]

    def run(self) -> None:
        logger.info("Sending data...")
        while True:
            chunk = self.read_chunk()
            if chunk is None:
                continue
            if not chunk:
                if self.eof_policy == EOF_CLOSE:
                    logger.info("📤 Fin de la source après %d morceaux, fermeture du flux montant.",
                                self.chunks_sent)
                    self.stream.close_send()
                    return
                continue
            # Copie : le tampon est réutilisé à la lecture suivante
            self.stream.send_content(bytes(chunk))
            self.chunks_sent += 1
            logger.debug("Morceau %d envoyé (%d octets)", self.chunks_sent, len(chunk))

    def _run_guarded(self) -> None:
        try:
            self.run()
        except Exception as e:
            logger.debug("Arrêt du thread d'envoi : %s", e)
            self.stream.fail(e)

    def start(self) -> threading.Thread:
        """Démarre l'envoi en arrière-plan (fire-and-forget)."""
        self._thread = threading.Thread(target=self._run_guarded, name="video-uploader", daemon=True)
        self._thread.start()
        return self._thread
