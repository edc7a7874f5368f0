from pydantic import BaseModel, ConfigDict
from typing import Optional

from config import EOF_CLOSE, EOF_RETRY


class StreamOptions(BaseModel):
    """Drapeaux validés d'une session de streaming. Immuable une fois construit."""
    model_config = ConfigDict(frozen=True)

    creds_path: str
    feature: str
    source_path: Optional[str] = None   # Absent => lecture sur stdin
    gcs_uri: Optional[str] = None       # Présent => stockage GCS côté service
    stdout: bool = False
    export_path: Optional[str] = None
    close_on_eof: bool = False
    chunk_size: int

    @property
    def storage_enabled(self) -> bool:
        return bool(self.gcs_uri)

    @property
    def has_sink(self) -> bool:
        return self.stdout or bool(self.export_path) or self.storage_enabled

    @property
    def eof_policy(self) -> str:
        return EOF_CLOSE if self.close_on_eof else EOF_RETRY
