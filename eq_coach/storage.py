"""Client-local persisted state: the most recent analysis result, single slot."""

import json
import logging
from pathlib import Path
from typing import Optional, Union

from eq_coach.config import Config
from eq_coach.models import AnalysisResult

logger = logging.getLogger(__name__)

RESULT_KEY = "analysisResult"


class ResultStore:
    """JSON file holding `{"analysisResult": {...}}`; each save overwrites the previous one."""

    def __init__(self, path: Union[str, Path, None] = None):
        self.path = Path(path or Config.RESULT_STORE_PATH)

    def save(self, result: AnalysisResult) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {RESULT_KEY: result.to_dict()}
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
        tmp.replace(self.path)
        logger.info(f"Saved analysis result to {self.path}")

    def load(self) -> Optional[AnalysisResult]:
        """Stored result, or None when nothing (readable) is stored."""
        if not self.path.exists():
            return None
        try:
            with self.path.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
            return AnalysisResult.from_dict(data[RESULT_KEY])
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning(f"Ignoring unreadable stored result at {self.path}: {e!r}")
            return None

    def clear(self) -> None:
        if self.path.exists():
            self.path.unlink()
