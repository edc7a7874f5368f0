import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import field_validator
from pydantic_settings import BaseSettings

# Charger les variables d'environnement depuis .env à la racine du projet
project_root = os.path.dirname(os.path.abspath(__file__))
load_dotenv(os.path.join(project_root, '.env'))

# --- Constantes de l'application ---
__version__ = "1.0.0"
BUILD_TIME = os.getenv("VI_STREAMING_BUILD_TIME", "unknown").strip('\'"')
CHUNK_SIZE = 1 * 1024 * 1024          # Taille du tampon de lecture (1 Mio)
MAX_PENDING_REQUESTS = 2              # Requêtes en attente d'envoi gRPC au maximum
LOG_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
GCS_URI_PREFIX = "gs://"

EOF_RETRY = "retry"   # Comportement historique : on relit immédiatement
EOF_CLOSE = "close"   # Semi-fermeture du flux montant à la fin de la source


class StreamingSettings(BaseSettings):
    """Réglages d'environnement, surchargés par les drapeaux de la ligne de commande."""
    log_level: str = "INFO"
    chunk_size: int = CHUNK_SIZE
    api_endpoint: Optional[str] = None  # ex: videointelligence.googleapis.com:443
    close_on_eof: bool = False

    class Config:
        env_prefix = 'VI_STREAMING_'

    @field_validator("chunk_size")
    @classmethod
    def _positive_chunk_size(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("chunk_size doit être strictement positif")
        return value

    @field_validator("log_level")
    @classmethod
    def _upper_log_level(cls, value: str) -> str:
        return value.strip('\'"').upper()


# Instance globale unique de la configuration
settings = StreamingSettings()
