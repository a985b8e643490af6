"""Constants and default configuration for flowcast."""

CONFIG_FILES = [
    '.flowcast.yaml',
    '.flowcast.yml',
    '.flowcast.toml',
    '.flowcast.json',
]

# Workflow labels that mark an item as finished even while it is still open
DEFAULT_TERMINAL_LABELS = ['Done']

# Cycle-time records outside (MIN, MAX) days are treated as noise
MIN_CYCLE_TIME_DAYS = 0.0
MAX_CYCLE_TIME_DAYS = 90.0

MAX_TRIALS = 50_000

DEFAULT_CONFIG = {
    'graph': {
        'terminal_labels': list(DEFAULT_TERMINAL_LABELS),
        'bottleneck_limit': 10,
        'critical_threshold': 5,
        'high_threshold': 3,
    },
    'sampling': {
        'min_days': MIN_CYCLE_TIME_DAYS,
        'max_days': MAX_CYCLE_TIME_DAYS,
        'min_area_samples': 5,
        'min_samples': 3,
        'synthetic_count': 20,
        'synthetic_min_days': 3.0,
        'synthetic_max_days': 7.0,
        'high_confidence_samples': 20,
        'medium_confidence_samples': 10,
    },
    'simulation': {
        'trials': 10_000,
        'max_trials': MAX_TRIALS,
        'wip_limit': 1,
        'sprint_days': 14,
        'item_count': 10,
        'step_days': 0.25,
        'max_backlog_days': 365,
        'breakdown_trials': 2_000,
        'max_breakdown_sprints': 12,
        'seed': None,
    },
    'logging': {
        'level': 'INFO',
    },
}
