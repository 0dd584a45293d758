"""Scenario storage."""
import logging
from typing import List, Optional, Sequence, Tuple
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ScenarioDefect, ScenarioNotFound
from app.db.models import Scenario, ScenarioVersion
from app.services.scenario.graph import ScenarioGraph
from app.services.scenario.validator import Defect, ScenarioValidator

logger = logging.getLogger(__name__)


class ScenarioRepository:
    """Loads and saves scenario graphs.

    Every save writes a new version row and points the scenario at it.
    Graph instances already handed to running calls are never touched.
    """

    def __init__(self, db: AsyncSession, validator: ScenarioValidator):
        self.db = db
        self.validator = validator

    async def _get_row(self, scenario_id: str) -> Optional[Scenario]:
        result = await self.db.execute(select(Scenario).where(Scenario.id == scenario_id))
        return result.scalar_one_or_none()

    @staticmethod
    def _to_graph(row: Scenario) -> ScenarioGraph:
        return ScenarioGraph.from_dict(
            {
                "id": row.id,
                "name": row.name,
                "description": row.description,
                "scenario_data": row.scenario_data,
                "is_active": row.is_active,
                "version": row.version,
                "created_at": row.created_at,
                "updated_at": row.updated_at,
            }
        )

    async def get_scenario(self, scenario_id: str) -> Optional[ScenarioGraph]:
        """Get a scenario regardless of its activation state."""
        row = await self._get_row(scenario_id)
        return self._to_graph(row) if row else None

    async def load_active_scenario(self, scenario_id: str) -> ScenarioGraph:
        """Get an active scenario.

        Raises:
            ScenarioNotFound: the scenario is missing or inactive.
        """
        row = await self._get_row(scenario_id)
        if row is None or not row.is_active:
            raise ScenarioNotFound(scenario_id)
        return self._to_graph(row)

    async def get_scenario_version(self, scenario_id: str, version: int) -> Optional[ScenarioGraph]:
        """Get a scenario as it was saved at ``version``.

        Only the newest version can be active.
        """
        result = await self.db.execute(
            select(ScenarioVersion, Scenario)
            .join(Scenario, ScenarioVersion.scenario_id == Scenario.id)
            .where(ScenarioVersion.scenario_id == scenario_id, ScenarioVersion.version == version)
        )
        found = result.first()
        if found is None:
            return None
        saved, row = found
        return ScenarioGraph.from_dict(
            {
                "id": row.id,
                "name": saved.name,
                "description": saved.description,
                "scenario_data": saved.scenario_data,
                "is_active": row.is_active and saved.version == row.version,
                "version": saved.version,
                "created_at": saved.created_at,
                "updated_at": saved.created_at,
            }
        )

    async def list_versions(self, scenario_id: str) -> List[int]:
        result = await self.db.execute(
            select(ScenarioVersion.version)
            .where(ScenarioVersion.scenario_id == scenario_id)
            .order_by(ScenarioVersion.version)
        )
        return list(result.scalars().all())

    async def list_scenarios(self, active_only: bool = False) -> List[ScenarioGraph]:
        query = select(Scenario).order_by(Scenario.created_at)
        if active_only:
            query = query.where(Scenario.is_active.is_(True))
        result = await self.db.execute(query)
        return [self._to_graph(row) for row in result.scalars().all()]

    async def save_scenario(self, graph: ScenarioGraph, defects: Sequence[Defect]) -> str:
        """Persist a graph and return its id.

        Raises:
            ScenarioDefect: the graph is marked active but has defects.
        """
        if graph.is_active and defects:
            raise ScenarioDefect(defects)

        row = await self._get_row(graph.id) if graph.id else None
        scenario_data = graph.data.model_dump(mode="json")
        if row is None:
            row = Scenario(
                id=graph.id or str(uuid4()),
                name=graph.name,
                description=graph.description,
                scenario_data=scenario_data,
                is_active=graph.is_active,
                version=1,
            )
            self.db.add(row)
        else:
            row.name = graph.name
            row.description = graph.description
            row.scenario_data = scenario_data
            row.is_active = graph.is_active
            row.version = row.version + 1

        self.db.add(
            ScenarioVersion(
                scenario_id=row.id,
                version=row.version,
                name=row.name,
                description=row.description,
                scenario_data=scenario_data,
            )
        )
        await self.db.commit()
        await self.db.refresh(row)
        logger.info(
            f"[SCENARIOS] Saved scenario {row.id} v{row.version} (active: {row.is_active})"
        )
        return row.id

    async def activate(self, scenario_id: str) -> Tuple[ScenarioGraph, List[str]]:
        """Activate a scenario after validation.

        Returns the activated graph and the runtime policy notes for it.

        Raises:
            ScenarioNotFound: no such scenario.
            ScenarioDefect: the scenario has defects.
        """
        graph = await self.get_scenario(scenario_id)
        if graph is None:
            raise ScenarioNotFound(scenario_id)

        self.validator.ensure_activatable(graph)
        notes = self.validator.activation_notes(graph)
        for note in notes:
            logger.info(f"[SCENARIOS] Activation note for {scenario_id}: {note}")

        await self.save_scenario(graph.with_activation(True), [])
        return await self.get_scenario(scenario_id), notes

    async def deactivate(self, scenario_id: str) -> ScenarioGraph:
        graph = await self.get_scenario(scenario_id)
        if graph is None:
            raise ScenarioNotFound(scenario_id)
        await self.save_scenario(graph.with_activation(False), [])
        return await self.get_scenario(scenario_id)

    async def import_yaml(self, path, overwrite: bool = False) -> str:
        """Load a scenario file, validate it and save it.

        A file whose id is already stored is skipped unless ``overwrite``.
        """
        graph = ScenarioGraph.from_yaml(path)
        if graph.id and not overwrite and await self._get_row(graph.id) is not None:
            logger.info(f"[SCENARIOS] Scenario {graph.id} already stored, skipping {path}")
            return graph.id
        defects = self.validator.validate(graph)
        return await self.save_scenario(graph, defects)
