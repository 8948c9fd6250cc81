"""
In-memory Model Registry, Rule Store and workflow store.

Entities are validated when they enter the store, so the engine only ever
sees well-formed configuration. The store can be seeded from and persisted
to a JSON document with top-level ``models``, ``rules`` and ``workflows``
lists.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..consensus.internal.ConsensusErrors import ConfigurationError, EntityNotFound
from ..consensus.internal.ConsensusProtocols import ConfigurationEntity, ConfigurationSource, EntityKind
from ..consensus.internal.ConsensusTypes import AgentWorkflow, AIModel, ConsensusRule

logger = logging.getLogger(__name__)

_SECTIONS = {
    EntityKind.MODEL: "models",
    EntityKind.RULE: "rules",
    EntityKind.WORKFLOW: "workflows",
}


def _kind_of(entity: ConfigurationEntity) -> EntityKind:
    if isinstance(entity, AIModel):
        return EntityKind.MODEL
    if isinstance(entity, ConsensusRule):
        return EntityKind.RULE
    if isinstance(entity, AgentWorkflow):
        return EntityKind.WORKFLOW
    raise TypeError(f"Unsupported configuration entity: {type(entity).__name__}")


class InMemoryConfigurationStore(ConfigurationSource):
    """
    Configuration source held in process memory.

    ``upsert`` and ``remove`` are the write path for whatever CRUD surface
    manages configuration; the engine itself only reads through
    ``list_active`` and ``get_by_id``. Entities are immutable, so readers
    holding an earlier listing are unaffected by later writes.
    """

    def __init__(
        self,
        models: Optional[List[AIModel]] = None,
        rules: Optional[List[ConsensusRule]] = None,
        workflows: Optional[List[AgentWorkflow]] = None,
    ) -> None:
        self._entities: Dict[EntityKind, Dict[str, ConfigurationEntity]] = {kind: {} for kind in EntityKind}
        for entity in [*(models or []), *(rules or []), *(workflows or [])]:
            self.upsert(entity)

    async def list_active(self, kind: EntityKind) -> List[ConfigurationEntity]:
        return [entity for entity in self._entities[kind].values() if entity.is_active]

    async def get_by_id(self, kind: EntityKind, entity_id: str) -> ConfigurationEntity:
        try:
            return self._entities[kind][entity_id]
        except KeyError:
            raise EntityNotFound(kind.value, entity_id) from None

    def upsert(self, entity: ConfigurationEntity) -> None:
        kind = _kind_of(entity)
        replaced = entity.id in self._entities[kind]
        self._entities[kind][entity.id] = entity
        logger.debug(f"{'Updated' if replaced else 'Added'} {kind.value} '{entity.id}'")

    def remove(self, kind: EntityKind, entity_id: str) -> None:
        if self._entities[kind].pop(entity_id, None) is None:
            raise EntityNotFound(kind.value, entity_id)
        logger.debug(f"Removed {kind.value} '{entity_id}'")

    def counts(self) -> Dict[str, int]:
        return {_SECTIONS[kind]: len(entities) for kind, entities in self._entities.items()}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "InMemoryConfigurationStore":
        """
        Build a store from a configuration document.

        Raises:
            InvalidRuleConfiguration: a rule fails validation
            InvalidWorkflowConfiguration: a workflow fails validation
            ConfigurationError: a model fails validation or the document is malformed
        """
        unknown = set(data) - set(_SECTIONS.values())
        if unknown:
            raise ConfigurationError(f"Unknown configuration sections: {sorted(unknown)}")

        models = []
        for raw in data.get("models", []):
            try:
                models.append(AIModel.model_validate(raw))
            except ValueError as e:
                raise ConfigurationError(f"Invalid model {raw.get('id', '<unknown>')}: {e}") from e

        return cls(
            models=models,
            rules=[ConsensusRule.load(raw) for raw in data.get("rules", [])],
            workflows=[AgentWorkflow.load(raw) for raw in data.get("workflows", [])],
        )

    @classmethod
    def from_json_file(cls, path: Union[str, Path]) -> "InMemoryConfigurationStore":
        """
        Load and validate a JSON configuration file.

        Raises:
            FileNotFoundError: If the file doesn't exist
            ConfigurationError: If the file is not valid JSON or any entity is invalid
        """
        load_path = Path(path)
        if not load_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {load_path}")

        logger.info(f"Loading consensus configuration from {load_path}")
        try:
            data = json.loads(load_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Configuration file {load_path} is not valid JSON: {e}") from e

        store = cls.from_dict(data)
        counts = store.counts()
        logger.info(
            f"Loaded {counts['models']} models, {counts['rules']} rules, {counts['workflows']} workflows"
        )
        return store

    def persist(self, path: Union[str, Path]) -> None:
        """Write every entity, active or not, to a JSON configuration file."""
        save_path = Path(path)
        save_path.parent.mkdir(parents=True, exist_ok=True)

        document = {
            _SECTIONS[kind]: [entity.model_dump(mode="json") for entity in entities.values()]
            for kind, entities in self._entities.items()
        }
        save_path.write_text(json.dumps(document, indent=2), encoding="utf-8")
        logger.info(f"Persisted consensus configuration to {save_path}")
