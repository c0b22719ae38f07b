"""Step bodies and the builders of the three provisioning pipelines."""

from .base import Pipeline
from .join import build_join_pipeline, parse_join_command, redact_join_command
from .master import build_master_pipeline
from .reset import build_reset_pipeline

PIPELINE_BUILDERS = {
    'master_install': build_master_pipeline,
    'node_join': build_join_pipeline,
    'reset': build_reset_pipeline,
}

__all__ = [
    'Pipeline',
    'PIPELINE_BUILDERS',
    'build_master_pipeline',
    'build_join_pipeline',
    'build_reset_pipeline',
    'parse_join_command',
    'redact_join_command',
]
