"""
Registre des moteurs de lecture par serveur.

Chaque serveur Discord possède son propre PlaybackEngine, créé à la demande
et conservé pour toute la durée de vie du processus.
"""

import logging
from typing import Callable, Dict, List, Optional

from core.engine import PlaybackEngine

logger = logging.getLogger(__name__)


class GuildStateRegistry:
    """
    Associe un identifiant de serveur à son moteur de lecture.

    Attributes:
        factory (Callable[[int], PlaybackEngine]): construit le moteur d'un serveur
    """

    def __init__(self, factory: Callable[[int], PlaybackEngine]):
        self.factory = factory
        self._engines: Dict[int, PlaybackEngine] = {}

    def get_or_create(self, guild_id: int) -> PlaybackEngine:
        """
        Retourne le moteur du serveur, en le créant au premier appel.

        Les appels concurrents pour un même serveur reçoivent la même instance:
        la création se fait sans await.
        """
        engine = self._engines.get(guild_id)
        if engine is None:
            engine = self.factory(guild_id)
            self._engines[guild_id] = engine
            logger.info(f"Created playback engine for guild {guild_id}")
        return engine

    def get(self, guild_id: int) -> Optional[PlaybackEngine]:
        return self._engines.get(guild_id)

    def __contains__(self, guild_id: int) -> bool:
        return guild_id in self._engines

    def __len__(self) -> int:
        return len(self._engines)

    def guild_ids(self) -> List[int]:
        return list(self._engines)

    async def shutdown(self):
        """Arrête tous les moteurs (file vidée, pipeline détruit, vocal quitté)."""
        for guild_id in list(self._engines):
            try:
                await self._engines[guild_id].close()
            except Exception as e:
                logger.error(f"Error shutting down engine for guild {guild_id}: {e}")
        logger.info(f"Shut down {len(self._engines)} playback engines")
