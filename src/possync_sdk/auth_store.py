from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path

from platformdirs import user_data_dir
from pydantic import ValidationError as PydanticValidationError

from .models import SessionData

logger = logging.getLogger(__name__)


@dataclass
class AuthStore:
    """Keeps the operator's access token beside the pending queue.

    A terminal restarted while offline must still be able to drain its queue
    once the network returns, so the token outlives the process. A session the
    backend refused stays on disk flagged ``expired`` until someone signs in.
    """

    base_dir: Path | None = None
    filename: str = "session.json"

    @property
    def path(self) -> Path:
        base = Path(self.base_dir) if self.base_dir else Path(user_data_dir("possync", "possync"))
        return base / self.filename

    def save(self, session: SessionData) -> None:
        path = self.path
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=".session.", dir=path.parent)
        try:
            os.chmod(tmp_name, 0o600)
            with os.fdopen(fd, "w", encoding="utf-8") as fp:
                fp.write(session.model_dump_json(indent=2))
            os.replace(tmp_name, path)
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def load(self) -> SessionData | None:
        path = self.path
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        try:
            return SessionData.model_validate_json(raw)
        except PydanticValidationError:
            logger.warning("Discarding unreadable session file %s", path)
            self.clear()
            return None

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)
