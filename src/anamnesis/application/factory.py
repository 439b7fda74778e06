"""
Engine Factory
Centralizes the logic for selecting the update algorithm and storage adapter.
"""

from anamnesis.application.algorithms import SimplifiedFsrs, Sm2Algorithm
from anamnesis.application.config import AppConfig
from anamnesis.application.study_service import StudyService
from anamnesis.domain.ports import DeckRepository, UpdateAlgorithm
from anamnesis.infrastructure.adapters.memory_repository import InMemoryDeckRepository
from anamnesis.infrastructure.adapters.yaml_repository import YamlDeckRepository

ALGORITHMS: dict[str, type[UpdateAlgorithm]] = {
    SimplifiedFsrs.name: SimplifiedFsrs,
    Sm2Algorithm.name: Sm2Algorithm,
}


def get_update_algorithm(name: str) -> UpdateAlgorithm:
    """
    Returns the UpdateAlgorithm registered under ``name``.
    """
    try:
        return ALGORITHMS[name]()
    except KeyError:
        raise ValueError(
            f"Unknown algorithm {name!r}; expected one of {sorted(ALGORITHMS)}"
        ) from None


def get_deck_repository(config: AppConfig) -> DeckRepository:
    """
    Returns the appropriate DeckRepository implementation based on config.
    """
    if config.storage == "memory":
        return InMemoryDeckRepository()
    return YamlDeckRepository(config.data_dir)


def get_study_service(config: AppConfig) -> StudyService:
    return StudyService(
        get_deck_repository(config),
        algorithm=get_update_algorithm(config.algorithm),
        default_settings=config.deck_settings(),
    )
