"""
Core constants and limits.

Defines system-wide defaults for simulation, metrics and optimization.
"""

# Signal filtering
DEFAULT_MIN_CONFIDENCE = 0.6  # Signals below this confidence are discarded

# Progress reporting
DEFAULT_PROGRESS_INTERVAL = 1000  # Emit progress every N processed timestamps

# Metrics
TRADING_DAYS_PER_YEAR = 252  # Sharpe annualization factor
DAYS_PER_YEAR = 365.25  # Calendar year used for annualized return
SECONDS_PER_DAY = 86400

# Composite optimization score weights
COMPOSITE_WIN_RATE_WEIGHT = 0.3
COMPOSITE_PROFIT_FACTOR_WEIGHT = 10.0
COMPOSITE_SHARPE_WEIGHT = 20.0
COMPOSITE_DRAWDOWN_WEIGHT = 2.0

# Optimization limits
MAX_GRID_COMBINATIONS = 1_000_000  # Refuse grids larger than this
GRID_STEP_EPSILON = 1e-9  # Tolerance when counting float grid steps
GRID_VALUE_DECIMALS = 10  # Grid values are rounded to suppress float drift

# Result storage
MAX_STORED_RESULTS = 100  # LRU bound for the in-memory result store
