import sys
from typing import List, Optional

from config import BUILD_TIME, StreamingSettings, __version__, settings as default_settings
from consumer import ResponseConsumer, build_sinks
from errors import ConfigurationError, StreamEnded, StreamingError
from loader import build_parser, load_session, parse_feature
from log_config import get_logger, setup_logging
from streaming_client import init_streaming, send_configuration
from uploader import VideoUploader

logger = get_logger("main")


def main(argv: Optional[List[str]] = None, settings: StreamingSettings = default_settings) -> int:
    """
    Point d'entrée principal.
    Enchaîne chargement -> connexion -> configuration -> envoi en arrière-plan -> réception,
    et traduit chaque erreur typée en code de sortie.
    """
    setup_logging(settings.log_level)
    files = None

    try:
        options, files = load_session(argv, settings)

        if options.storage_enabled:
            logger.info("Data will be exported to : %s", options.gcs_uri)
        logger.info("🚀 Starting Cloud Video Intelligence API Streaming %s build on %s", __version__, BUILD_TIME)

        stream = init_streaming(options.creds_path, settings.api_endpoint)
        send_configuration(stream, parse_feature(options.feature), options.gcs_uri)

        uploader = VideoUploader(stream, files.source, chunk_size=options.chunk_size,
                                 eof_policy=options.eof_policy)
        uploader.start()

        consumer = ResponseConsumer(stream, build_sinks(options.stdout, files.export))
        consumer.run()

    except ConfigurationError as e:
        if e.show_usage:
            build_parser().print_help(sys.stderr)
        logger.error("❌ %s", e)
        return e.exit_code
    except StreamEnded:
        logger.info("✅ Analyse terminée : le service a fermé le flux.")
        return StreamEnded.exit_code
    except StreamingError as e:
        logger.error("❌ %s", e)
        return e.exit_code
    except KeyboardInterrupt:
        logger.warning("Interrompu par l'utilisateur.")
        return 130
    except SystemExit as e:
        # -version / -h : argparse a déjà affiché ce qu'il fallait
        return e.code or 0
    finally:
        if files is not None:
            files.close()

    return 0


def run():
    sys.exit(main())


if __name__ == '__main__':
    run()
