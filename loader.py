"""
Chargement et validation de la configuration d'une session de streaming.

Toutes les vérifications sont faites avant toute connexion à l'API : drapeaux
obligatoires, feature connue, au moins une sortie, puis ouverture des fichiers.
"""
import argparse
import os
from contextlib import ExitStack
from typing import IO, List, Optional, Tuple

from google.cloud import videointelligence_v1p3beta1 as videointelligence

from config import GCS_URI_PREFIX, StreamingSettings, __version__, settings as default_settings
from errors import ConfigurationError
from log_config import get_logger
from schemas import StreamOptions

logger = get_logger(__name__)


class _FlagParser(argparse.ArgumentParser):
    """ArgumentParser qui lève une ConfigurationError au lieu de quitter."""

    def error(self, message):
        raise ConfigurationError(message, show_usage=True)


def build_parser() -> argparse.ArgumentParser:
    parser = _FlagParser(
        prog="vi-streaming",
        description="Envoie une vidéo en streaming à l'API Cloud Video Intelligence.",
        allow_abbrev=False,
    )
    parser.add_argument("-creds", "--creds", default="",
                        help="Service account JSON key file path")
    parser.add_argument("-source", "--source", default="",
                        help="Using a file as a source instead of a pipe (not mandatory)")
    parser.add_argument("-feature", "--feature", default="",
                        help="API Cloud Video Intelligence streaming feature")
    parser.add_argument("-gcs", "--gcs", default="",
                        help="GCS URI to store all annotation results (not mandatory)")
    parser.add_argument("-stdout", "--stdout", action="store_true",
                        help="Print in stdout results from the API (not mandatory)")
    parser.add_argument("-export", "--export", default="",
                        help="Export the annotation results from the API to a file (not mandatory)")
    parser.add_argument("-close-on-eof", "--close-on-eof", action="store_true", default=None,
                        help="Half-close the upload once the source is exhausted instead of re-reading it")
    parser.add_argument("-version", "--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def parse_feature(name: str) -> videointelligence.StreamingFeature:
    """Convertit un nom de feature en énumérateur, en refusant l'inconnu et UNSPECIFIED."""
    try:
        feature = videointelligence.StreamingFeature[name]
    except KeyError:
        raise ConfigurationError("Invalid feature!") from None
    if feature == videointelligence.StreamingFeature.STREAMING_FEATURE_UNSPECIFIED:
        raise ConfigurationError("Invalid feature!")
    return feature


def load_options(argv: Optional[List[str]] = None,
                 settings: StreamingSettings = default_settings) -> StreamOptions:
    """Lit les drapeaux et applique les validations qui ne touchent pas au disque."""
    args = build_parser().parse_args(argv)

    if not args.creds:
        raise ConfigurationError("Le drapeau -creds est obligatoire.", show_usage=True)
    if not args.feature:
        raise ConfigurationError("Le drapeau -feature est obligatoire.", show_usage=True)
    if not args.stdout and not args.export and not args.gcs:
        raise ConfigurationError("Nothing to do!")
    parse_feature(args.feature)

    if args.gcs and not args.gcs.startswith(GCS_URI_PREFIX):
        # Le service reste seul juge de la validité de la destination
        logger.warning("⚠️ La destination GCS '%s' ne commence pas par %s", args.gcs, GCS_URI_PREFIX)

    close_on_eof = settings.close_on_eof if args.close_on_eof is None else args.close_on_eof

    return StreamOptions(
        creds_path=args.creds,
        feature=args.feature,
        source_path=args.source or None,
        gcs_uri=args.gcs or None,
        stdout=args.stdout,
        export_path=args.export or None,
        close_on_eof=close_on_eof,
        chunk_size=settings.chunk_size,
    )


def _open_checked(path: str, mode: str, what: str, **kwargs) -> IO:
    try:
        return open(path, mode, **kwargs)
    except FileNotFoundError:
        raise ConfigurationError(f"Error while opening your {what} : file '{path}' does not exist") from None
    except PermissionError as e:
        raise ConfigurationError(
            f"Error while opening your {what} : insufficient permissions to open file '{path}' : {e}") from None
    except OSError as e:
        raise ConfigurationError(f"Error while opening your {what} '{path}' : {e}") from None


def _private_opener(path, flags):
    return os.open(path, flags, 0o600)


def check_credentials_file(path: str) -> None:
    """Vérifie que le fichier de clé existe et est lisible, sans le garder ouvert."""
    _open_checked(path, "rb", "service account JSON key file").close()


class SessionFiles:
    """Fichiers ouverts pour une session : source vidéo et fichier d'export, chacun optionnel."""

    def __init__(self, source: Optional[IO[bytes]] = None, export: Optional[IO[str]] = None):
        self.source = source
        self.export = export

    def close(self):
        for handle in (self.source, self.export):
            if handle is not None and not handle.closed:
                handle.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()


def open_session_files(options: StreamOptions) -> SessionFiles:
    """
    Vérifie les identifiants puis ouvre la source et l'export.
    En cas d'échec, les fichiers déjà ouverts sont refermés.
    """
    check_credentials_file(options.creds_path)

    with ExitStack() as stack:
        source = None
        export = None
        if options.source_path:
            source = stack.enter_context(_open_checked(options.source_path, "rb", "video file"))
        if options.export_path:
            export = stack.enter_context(_open_checked(
                options.export_path, "a", "export file", encoding="utf-8", opener=_private_opener))
        # Tout est ouvert : on rend la main sans fermer
        stack.pop_all()
    return SessionFiles(source=source, export=export)


def load_session(argv: Optional[List[str]] = None,
                 settings: StreamingSettings = default_settings) -> Tuple[StreamOptions, SessionFiles]:
    options = load_options(argv, settings)
    return options, open_session_files(options)
