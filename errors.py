"""
Hiérarchie d'erreurs du client de streaming.

Aucune fonction utilitaire ne termine le processus : elles lèvent une de ces
exceptions et seul `main.main` décide du code de sortie.
"""


class StreamingError(Exception):
    """Erreur de base pour toute la session de streaming."""
    exit_code = 1


class ConfigurationError(StreamingError):
    """Drapeaux manquants ou invalides, fichiers illisibles."""

    def __init__(self, message: str, show_usage: bool = False):
        super().__init__(message)
        self.show_usage = show_usage


class AuthError(StreamingError):
    """Le fichier de clé du compte de service n'a pas pu être chargé."""


class TransportError(StreamingError):
    """Échec d'envoi ou de réception sur le flux gRPC."""


class SourceReadError(TransportError):
    """Erreur de lecture de la source vidéo (fichier ou stdin)."""


class SinkError(StreamingError):
    """Impossible d'écrire une réponse vers une sortie (stdout, fichier)."""


class ExportError(SinkError):
    """Impossible d'écrire dans le fichier d'export."""


class StreamEnded(StreamingError):
    """Le service a fermé le flux proprement : fin normale de l'analyse."""
    exit_code = 0
