"""Example workflow loader - sample graphs shipped as JSON files."""
import json
from pathlib import Path
from typing import List, Dict, Any, Optional

from core.logging import get_logger

logger = get_logger(__name__)

# Workflows folder at project root (parent of server/)
EXAMPLES_DIR = Path(__file__).parent.parent.parent / "workflows"


def get_example_workflows(examples_dir: Path = EXAMPLES_DIR) -> List[Dict[str, Any]]:
    """Load all example workflow JSON files from disk."""
    examples = []
    if not examples_dir.exists():
        logger.warning("Examples directory not found", path=str(examples_dir))
        return examples

    for file in sorted(examples_dir.glob("*.json")):
        try:
            with open(file, encoding="utf-8") as f:
                workflow = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            logger.error("Failed to load example", file=file.name, error=str(e))
            continue
        workflow["_filename"] = file.name  # Track source
        examples.append(workflow)
        logger.debug("Loaded example", file=file.name)

    return examples


def get_example_workflow(workflow_id: str,
                         examples_dir: Path = EXAMPLES_DIR) -> Optional[Dict[str, Any]]:
    for workflow in get_example_workflows(examples_dir):
        if workflow.get("id") == workflow_id:
            return workflow
    return None
