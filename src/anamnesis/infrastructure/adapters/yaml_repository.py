"""
YAML Deck Repository: infrastructure adapter for on-disk decks.

Implements DeckRepository with one YAML document per deck:

    <data_dir>/<deck_id>.yaml
        deck:  {id, name, cardIds, settings, stats, ...}
        cards: [{id, learning, reviewHistory, ...}, ...]
"""

import logging
import os
import tempfile
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from anamnesis.domain.errors import DeckNotFound, PersistenceFailure
from anamnesis.domain.models import Card, Deck
from anamnesis.infrastructure.serialization import dump_deck_document, load_deck_document

from .base import BaseDeckRepository

logger = logging.getLogger(__name__)

DECK_SUFFIX = ".yaml"


class YamlDeckRepository(BaseDeckRepository):
    """
    Stores each deck and its cards in a single YAML file.

    Writes go to a temporary file that replaces the target, so a crash never
    leaves a truncated deck behind.
    """

    def __init__(self, data_dir: Path):
        self.data_dir = Path(data_dir)

    def _path(self, deck_id: str) -> Path:
        if not deck_id or "/" in deck_id or "\\" in deck_id or deck_id.startswith("."):
            raise DeckNotFound(deck_id)
        return self.data_dir / f"{deck_id}{DECK_SUFFIX}"

    async def load_deck(self, deck_id: str) -> tuple[Deck, list[Card]]:
        path = self._path(deck_id)
        if not path.exists():
            raise DeckNotFound(deck_id)
        return self._read(path)

    async def save_deck(self, deck: Deck, cards: list[Card]) -> None:
        self._write(self._path(deck.id), dump_deck_document(deck, cards))
        logger.debug(f"Saved deck {deck.id} ({len(cards)} cards)")

    async def persist_card(self, deck_id: str, card: Card) -> None:
        deck, cards = await self.load_deck(deck_id)
        if card.id not in deck.card_ids:
            raise PersistenceFailure(f"Card {card.id} does not belong to deck {deck_id}")

        cards_by_id = {c.id: c for c in cards}
        cards_by_id[card.id] = card
        ordered = [cards_by_id[card_id] for card_id in deck.card_ids if card_id in cards_by_id]
        self._write(self._path(deck_id), dump_deck_document(deck, ordered))

    async def delete_deck(self, deck_id: str) -> None:
        path = self._path(deck_id)
        if not path.exists():
            raise DeckNotFound(deck_id)
        try:
            path.unlink()
        except OSError as e:
            raise PersistenceFailure(f"Could not delete {path}: {e}") from e
        logger.info(f"Deleted {path}")

    async def list_decks(self) -> list[Deck]:
        if not self.data_dir.is_dir():
            return []

        decks: list[Deck] = []
        for path in sorted(self.data_dir.glob(f"*{DECK_SUFFIX}")):
            try:
                deck, _ = self._read(path)
            except PersistenceFailure as e:
                logger.warning(f"Skipping unreadable deck file {path.name}: {e}")
                continue
            decks.append(deck)
        return sorted(decks, key=lambda d: (d.created_at, d.id))

    # ------------------------------------------------------------------

    def _read(self, path: Path) -> tuple[Deck, list[Card]]:
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as e:
            raise PersistenceFailure(f"Could not read {path}: {e}") from e

        if not isinstance(data, dict) or "deck" not in data:
            raise PersistenceFailure(f"Invalid deck file {path}: missing 'deck' section")
        try:
            return load_deck_document(data)
        except (ValidationError, ValueError) as e:
            raise PersistenceFailure(f"Invalid deck file {path}: {e}") from e

    def _write(self, path: Path, document: dict[str, Any]) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            text = yaml.safe_dump(document, sort_keys=False, allow_unicode=True)
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.stem}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    fh.write(text)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise PersistenceFailure(f"Could not write {path}: {e}") from e
