#!/usr/bin/env python3
"""
Checkpointed, resumable MongoDB collection migration tool
"""

__version__ = "0.1.0"

from step_migrator.core.batches import iter_batches
from step_migrator.core.checkpoint import CheckpointStore, MigrationCheckpoint
from step_migrator.core.config import load_config

# Import the main classes and functions for easier access
from step_migrator.core.connection import ConnectionManager
from step_migrator.core.results import ResultTally, combine_results
from step_migrator.core.runner import MigrationRunner
from step_migrator.core.verification import VerificationResult, verify_step

# Import step helpers
from step_migrator.steps.composite import SubStep, run_composite_step
from step_migrator.steps.processors import make_document_processor, upsert_writer
from step_migrator.types import (
    BatchResult,
    MigrationResult,
    Outcome,
    ResultStatus,
    StepStatus,
)
