#!/usr/bin/env python3
"""
Example: Editing Session - Building a Pipeline Against a Local Store

This example opens an editing session on a pipeline stored on disk, builds a
source → target pipeline by following the open-lane hint, and lets auto-save
persist the edits.

Run with:
    python examples/editing_session.py
"""

import asyncio
import logging
from pathlib import Path

from pipeline_session import (
    Definitions,
    FilesystemBackend,
    GraphLoaded,
    Issue,
    NodeAdded,
    PipelineDocument,
    PipelineInfo,
    PipelineIssues,
    SessionConfig,
    SessionController,
    StageDefinition,
    StageType,
)

STORE_DIR = Path("./pipeline-store/demo")

DEFINITIONS = Definitions(
    stages=[
        StageDefinition(name="dev_raw_data_source", version="1", type=StageType.SOURCE, label="Dev Raw Data Source"),
        StageDefinition(name="trash_target", version="1", type=StageType.TARGET, label="Trash"),
    ]
)


async def seed_store(backend: FilesystemBackend) -> None:
    """Write definitions and an empty pipeline if the store is new."""
    if (STORE_DIR / "pipelines" / "demo.json").exists():
        return
    STORE_DIR.mkdir(parents=True, exist_ok=True)
    (STORE_DIR / "definitions.json").write_text(DEFINITIONS.model_dump_json(by_alias=True))
    await backend.save_pipeline_config("demo", PipelineDocument(info=PipelineInfo(name="demo")))


async def main():
    """Build a two-stage pipeline in an editing session."""

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    backend = FilesystemBackend(base_dir=str(STORE_DIR))
    await seed_store(backend)

    config = SessionConfig(poll_interval=0.5, save_delay=0.2)
    async with SessionController(backend, config=config) as session:
        session.events.subscribe(
            GraphLoaded, lambda event: print(f"  graph: {len(event.nodes)} stages, {len(event.edges)} edges")
        )
        session.events.subscribe(
            NodeAdded, lambda event: print(f"  added {event.node.instance_name}")
        )

        print("Opening pipeline 'demo'...")
        await session.initialize()

        # ==========================================
        # STEP 1: Add a source
        # ==========================================
        if not session.source_exists:
            source = session.add_stage(session.catalog.sources[0])
            # Validation normally reports the unconsumed lane; fake it locally
            session.document.issues = PipelineIssues(
                stage_issues={
                    source.instance_name: [
                        Issue(message=f"VALIDATION_0011 - open lane {source.output_lanes[0]}")
                    ]
                }
            )
            session.refresh_graph()

        # ==========================================
        # STEP 2: Attach a target to the open lane
        # ==========================================
        open_lane = session.first_open_lane
        if open_lane is not None:
            print(f"Open lane: {open_lane.stage_instance.instance_name}.{open_lane.lane_name}")
            session.add_stage(session.catalog.targets[0], open_lane)

        # Let auto-save persist the edits
        await asyncio.sleep(config.save_delay * 3)

        print(f"\nPipeline '{session.document.name}' (version {session.document.uuid}):")
        for edge in session.edges:
            print(f"  {edge.source.instance_name} → {edge.target.instance_name} via {edge.output_lane}")
        print(f"Running: {session.is_running()}")


if __name__ == "__main__":
    asyncio.run(main())
