"""Bracket dependency and scoring engine.

Pure components: topology, scoring, team resolution, path validation and the
cascade walk.  Storage-bound operations live in ``services``.
"""

from bracket_engine.errors import (
    BracketError,
    DuplicateResourceError,
    NotFoundError,
    PermissionDenied,
    PreconditionViolation,
    StorageUnavailable,
    TopologyError,
    ValidationError,
)
from bracket_engine.resolution import TeamResolver
from bracket_engine.scoring import DEFAULT_POLICY, ScoringPolicy, policy_from_config, score
from bracket_engine.validator import is_valid_bracket_path

__all__ = [
    'BracketError',
    'DuplicateResourceError',
    'NotFoundError',
    'PermissionDenied',
    'PreconditionViolation',
    'StorageUnavailable',
    'TopologyError',
    'ValidationError',
    'TeamResolver',
    'DEFAULT_POLICY',
    'ScoringPolicy',
    'policy_from_config',
    'score',
    'is_valid_bracket_path',
]
