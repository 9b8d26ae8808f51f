"""
Game Models - Pydantic models for the local save-game.

NO DICTIONARIES - All data structures are strongly typed.
"""

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from structlog import get_logger

logger = get_logger(__name__)


class GameData(BaseModel):
    """Counters and flags unlocked by in-app purchases."""

    model_config = ConfigDict(validate_assignment=True)

    extra_lives: int = Field(default=0, ge=0)
    super_powers: int = Field(default=0, ge=0)
    did_unlock_all_maps: bool = False


class GameDataStore:
    """
    Save-store for GameData, persisted as JSON.

    Mutations are made on `game_data` and written with a single `update()`.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self.game_data = self._load()

    def _load(self) -> GameData:
        if not self.path.exists():
            return GameData()
        try:
            return GameData.model_validate_json(self.path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as exc:
            logger.warning("game_data_load_failed", path=str(self.path), error=str(exc))
            return GameData()

    def update(self) -> bool:
        """Persist the current game data. Returns False if the write failed."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(self.game_data.model_dump_json(indent=2), encoding="utf-8")
        except OSError as exc:
            logger.error("game_data_update_failed", path=str(self.path), error=str(exc))
            return False

        logger.debug(
            "game_data_updated",
            extra_lives=self.game_data.extra_lives,
            super_powers=self.game_data.super_powers,
            did_unlock_all_maps=self.game_data.did_unlock_all_maps,
        )
        return True
