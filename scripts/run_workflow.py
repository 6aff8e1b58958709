"""
Script to run one workflow to completion from a JSON input file
"""

import argparse
import asyncio
import json
import sys
import os
import logging

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.exceptions import OrchestrationError
from core.logging import setup_logging
from models.base import WorkflowKind, WorkflowPhase
from orchestration.engine import WorkflowEngine

setup_logging()
logger = logging.getLogger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run a data sync, schema discovery or data quality workflow")
    parser.add_argument("kind", choices=[k.value for k in WorkflowKind], help="Workflow kind")
    parser.add_argument("input_file", help="Path to the workflow input JSON document")
    parser.add_argument("--workflow-id", default=None, help="Override the workflow id (reuse it to resume a sync)")
    parser.add_argument("--store", choices=["sql", "memory"], default=None, help="Store backend (default: settings)")
    return parser.parse_args(argv)


async def run_workflow(args: argparse.Namespace) -> int:
    with open(args.input_file) as f:
        workflow_input = json.load(f)

    engine = WorkflowEngine.for_backend(args.store)
    try:
        workflow = engine.create(WorkflowKind(args.kind), workflow_input, workflow_id=args.workflow_id)
    except OrchestrationError as e:
        logger.error(f"Invalid input: {e}")
        return 2

    workflow_id = await engine.start(workflow)
    status = await engine.result(workflow_id)

    logger.info(
        f"Workflow {workflow_id} finished: phase={status.phase.value}, "
        f"tables={status.progress.processed_tables}/{status.progress.total_tables}, "
        f"records={status.progress.records_processed}, errors={len(status.errors)}"
    )
    for entry in status.errors:
        logger.info(f"  {entry.object or 'workflow'}: {entry.message}")

    return 0 if status.phase == WorkflowPhase.COMPLETED else 1


if __name__ == "__main__":
    sys.exit(asyncio.run(run_workflow(parse_args())))
